"""Validated shapes of language-model output.

Everything the model returns goes through these models before business logic
touches it. Missing or malformed fields fall back to safe defaults instead of
failing the run.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from tourgen.services.places import RawPlace

logger = logging.getLogger(__name__)

DEFAULT_LOCATIONS_TO_FETCH = 20
DEFAULT_PROFILES = ["family", "couple", "culture"]

M = TypeVar("M", bound=BaseModel)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_strings(value: Any) -> List[str]:
    return [str(v).strip() for v in _as_list(value) if isinstance(v, (str, int, float)) and str(v).strip()]


def _as_ints(value: Any) -> List[int]:
    ints = []
    for v in _as_list(value):
        try:
            ints.append(int(v))
        except (TypeError, ValueError):
            continue
    return ints


def _as_locale_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k).strip().lower(): v.strip() for k, v in value.items() if isinstance(v, str) and v.strip()}


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_confidence(value: Any) -> float:
    try:
        return min(max(float(value), 0.0), 1.0)
    except (TypeError, ValueError):
        return 0.0


def validate_each(items: Any, model: Type[M], context: str = "") -> List[M]:
    """Validate a list of raw mappings, dropping entries that do not fit the model."""
    valid = []
    for item in _as_list(items):
        if not isinstance(item, dict):
            continue
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"[{context or model.__name__}] Dropping invalid entry: {e.error_count()} error(s)")
    return valid


class Coordinates(BaseModel):
    """A point; both values are required."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class CityPlan(BaseModel):
    """One target city of the orchestration plan. Advisory."""

    city: str
    country: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    locations_to_fetch: int = DEFAULT_LOCATIONS_TO_FETCH
    categories: List[str] = Field(default_factory=list)  # empty means no fetch
    reasoning: str = ""

    @field_validator("city", mode="before")
    @classmethod
    def _city(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("city is required")
        return value.strip()

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coordinates(cls, value: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(value, dict):
            return None
        try:
            return Coordinates.model_validate(value).model_dump()
        except ValidationError:
            return None

    @field_validator("locations_to_fetch", mode="before")
    @classmethod
    def _locations_to_fetch(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError):
            return DEFAULT_LOCATIONS_TO_FETCH
        return max(count, 1)

    @field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, value: Any) -> List[str]:
        return _as_strings(value)

    @field_validator("country", mode="before")
    @classmethod
    def _country(cls, value: Any) -> Optional[str]:
        return value.strip() if isinstance(value, str) and value.strip() else None

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, value: Any) -> str:
        return _as_text(value)

    def proximity(self) -> Optional[Dict[str, float]]:
        return self.coordinates.model_dump() if self.coordinates else None


class OrchestrationPlan(BaseModel):
    """Output of the reasoning phase."""

    analysis: str = ""
    target_cities: List[CityPlan] = Field(default_factory=list)
    tourist_profiles_to_generate: List[str] = Field(default_factory=lambda: list(DEFAULT_PROFILES))
    estimated_new_content: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("analysis", mode="before")
    @classmethod
    def _analysis(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("target_cities", mode="before")
    @classmethod
    def _target_cities(cls, value: Any) -> List[CityPlan]:
        return validate_each(value, CityPlan, context="OrchestrationPlan")

    @field_validator("tourist_profiles_to_generate", mode="before")
    @classmethod
    def _profiles(cls, value: Any) -> List[str]:
        profiles = [p.lower() for p in _as_strings(value)]
        return profiles or list(DEFAULT_PROFILES)

    @field_validator("estimated_new_content", mode="before")
    @classmethod
    def _estimate(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def is_empty(self) -> bool:
        return not self.target_cities


class LocationProposal(BaseModel):
    """A place candidate plus its language-model enrichment."""

    kind: Literal["location"] = "location"
    candidate: RawPlace
    tags: List[str] = Field(default_factory=list)
    suitable_experiences: List[str] = Field(default_factory=list)
    practical_info: Dict[str, Any] = Field(default_factory=dict)
    descriptions: Dict[str, str] = Field(default_factory=dict)
    historical_context: Dict[str, str] = Field(default_factory=dict)
    confidence: float = 0.0
    reasoning: str = ""

    @field_validator("tags", "suitable_experiences", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> List[str]:
        return _as_strings(value)

    @field_validator("practical_info", mode="before")
    @classmethod
    def _practical_info(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("descriptions", "historical_context", mode="before")
    @classmethod
    def _locales(cls, value: Any) -> Dict[str, str]:
        return _as_locale_map(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _as_confidence(value)


class ExperienceProposal(BaseModel):
    """A themed grouping of existing locations."""

    kind: Literal["experience"] = "experience"
    location_ids: List[int] = Field(default_factory=list)
    location_names: List[str] = Field(default_factory=list)
    category_key: Optional[str] = None
    estimated_duration: Optional[int] = None
    seasons: List[str] = Field(default_factory=list)
    titles: Dict[str, str] = Field(default_factory=dict)
    descriptions: Dict[str, str] = Field(default_factory=dict)
    theme_reasoning: str = ""
    confidence: float = 0.0

    @field_validator("location_ids", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> List[int]:
        return _as_ints(value)

    @field_validator("location_names", "seasons", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> List[str]:
        return _as_strings(value)

    @field_validator("category_key", mode="before")
    @classmethod
    def _category_key(cls, value: Any) -> Optional[str]:
        return value.strip().lower() if isinstance(value, str) and value.strip() else None

    @field_validator("estimated_duration", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Optional[int]:
        try:
            duration = int(value)
        except (TypeError, ValueError):
            return None
        return duration if duration > 0 else None

    @field_validator("titles", "descriptions", mode="before")
    @classmethod
    def _locales(cls, value: Any) -> Dict[str, str]:
        return _as_locale_map(value)

    @field_validator("theme_reasoning", mode="before")
    @classmethod
    def _reasoning(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _as_confidence(value)


class PlanDay(BaseModel):
    """Experiences scheduled on one day of a plan."""

    day_number: int = Field(ge=1)
    experience_ids: List[int] = Field(default_factory=list)

    @field_validator("experience_ids", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> List[int]:
        return _as_ints(value)


class PlanProposal(BaseModel):
    """A multi-day itinerary over existing experiences."""

    kind: Literal["plan"] = "plan"
    titles: Dict[str, str] = Field(default_factory=dict)
    notes: Dict[str, str] = Field(default_factory=dict)
    duration_days: Optional[int] = None
    days: List[PlanDay] = Field(default_factory=list)
    reasoning: str = ""
    confidence: float = 0.0

    @field_validator("titles", "notes", mode="before")
    @classmethod
    def _locales(cls, value: Any) -> Dict[str, str]:
        return _as_locale_map(value)

    @field_validator("duration_days", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Optional[int]:
        try:
            days = int(value)
        except (TypeError, ValueError):
            return None
        return days if days > 0 else None

    @field_validator("days", mode="before")
    @classmethod
    def _days(cls, value: Any) -> List[PlanDay]:
        return validate_each(value, PlanDay, context="PlanProposal")

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _as_confidence(value)

    def experience_ids(self) -> List[int]:
        """All scheduled experience ids in day order, duplicates kept."""
        return [eid for day in sorted(self.days, key=lambda d: d.day_number) for eid in day.experience_ids]

