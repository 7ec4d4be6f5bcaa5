"""Application configuration using Pydantic Settings."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./tourgen.db"

    # OpenRouter
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    SITE_URL: str = ""
    SITE_NAME: str = "Tourgen"
    LLM_MODEL: str = "openai/gpt-4o-mini"
    LLM_TIMEOUT: float = 120.0
    LLM_TEMPERATURE: float = 0.4
    LLM_MAX_TOKENS: int = 8000

    # LLM retries (total attempts, base delay in seconds, linear backoff factor)
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY: float = 1.0
    LLM_RETRY_BACKOFF: float = 1.0

    # Geoapify
    GEOAPIFY_API_KEY: str = ""
    GEOAPIFY_BASE_URL: str = "https://api.geoapify.com/v2"
    GEOAPIFY_GEOCODE_URL: str = "https://api.geoapify.com/v1/geocode"
    PLACES_RATE_LIMIT: int = 5  # hard ceiling, requests per second
    PLACES_BATCH_INTERVAL: float = 1.1  # must stay above one second
    PLACES_SEARCH_RADIUS: int = 15_000  # meters
    PLACES_LANGUAGE: str = "en"
    PLACES_API_LIMIT: int = 100
    PLACES_TIMEOUT: float = 30.0

    # Target market
    TARGET_COUNTRY: str = "Bosnia and Herzegovina"
    TARGET_COUNTRY_CODE: str = "ba"
    SUPPORTED_LOCALES: List[str] = ["en", "bs"]

    # Generation quotas (0 = unlimited)
    DEFAULT_MAX_LOCATIONS: int = 100
    DEFAULT_MAX_EXPERIENCES: int = 200
    DEFAULT_MAX_PLANS: int = 50
    MIN_LOCATIONS_PER_EXPERIENCE: int = 2
    MIN_EXPERIENCES_PER_PLAN: int = 2
    MULTI_CITY_PROFILE_LIMIT: int = 3

    # Run control
    STATUS_POLL_LIMIT_PER_MINUTE: int = 30

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()


@dataclass(frozen=True)
class StartOptions:
    """Options supplied by the caller that starts a generation run."""

    max_locations: Optional[int] = None
    max_experiences: Optional[int] = None
    max_plans: Optional[int] = None
    skip_locations: bool = False
    skip_experiences: bool = False
    skip_plans: bool = False


@dataclass(frozen=True)
class GenerationConfig:
    """Typed per-run configuration, assembled once when a run starts."""

    target_country: str
    target_country_code: str
    locales: Tuple[str, ...]
    places_rate_limit: int
    places_batch_interval: float
    search_radius: int
    min_locations_per_experience: int
    min_experiences_per_plan: int
    multi_city_profile_limit: int
    options: StartOptions = field(default_factory=StartOptions)

    @classmethod
    def from_settings(cls, options: Optional[StartOptions] = None, source: Optional[Settings] = None) -> "GenerationConfig":
        source = source or settings
        return cls(
            target_country=source.TARGET_COUNTRY,
            target_country_code=source.TARGET_COUNTRY_CODE.lower(),
            locales=tuple(source.SUPPORTED_LOCALES),
            places_rate_limit=source.PLACES_RATE_LIMIT,
            places_batch_interval=source.PLACES_BATCH_INTERVAL,
            search_radius=source.PLACES_SEARCH_RADIUS,
            min_locations_per_experience=source.MIN_LOCATIONS_PER_EXPERIENCE,
            min_experiences_per_plan=source.MIN_EXPERIENCES_PER_PLAN,
            multi_city_profile_limit=source.MULTI_CITY_PROFILE_LIMIT,
            options=options or StartOptions(),
        )
