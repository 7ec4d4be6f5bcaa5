"""Pytest configuration and fixtures."""

import re
from typing import Any, Callable, Dict, List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

import tourgen.models  # noqa: F401
from tourgen.config import GenerationConfig, StartOptions
from tourgen.database import Base, build_engine
from tourgen.services.places import RawPlace
from tourgen.services.run_state import GenerationRunStore

ID_PATTERN = re.compile(r"ID: (\d+)")
COUNT_PATTERN = re.compile(r"TASK: Create (\d+)")


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """File-backed SQLite per test so every session sees committed data."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def store(session_factory):
    return GenerationRunStore(session_factory)


def make_config(**options) -> GenerationConfig:
    return GenerationConfig(
        target_country="Bosnia and Herzegovina",
        target_country_code="ba",
        locales=("en", "bs"),
        places_rate_limit=5,
        places_batch_interval=1.1,
        search_radius=15000,
        min_locations_per_experience=2,
        min_experiences_per_plan=2,
        multi_city_profile_limit=3,
        options=StartOptions(**options),
    )


@pytest.fixture
def config():
    return make_config()


class FakeLLM:
    """
    Stand-in for LLMClient.

    Handlers are keyed by schema name; a handler is a value, an exception to
    raise, or a callable(prompt, schema, context) returning either.
    """

    api_key = "test-key"

    def __init__(self, handlers: Optional[Dict[str, Any]] = None):
        self.handlers = dict(default_handlers())
        self.handlers.update(handlers or {})
        self.calls: List[Dict[str, Any]] = []

    def request(self, prompt, schema=None, context="LLMClient", schema_name="response"):
        self.calls.append({"prompt": prompt, "schema": schema, "context": context, "schema_name": schema_name})
        handler = self.handlers.get(schema_name, {})
        result = handler(prompt, schema, context) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return result

    def calls_for(self, schema_name: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["schema_name"] == schema_name]


def city_plan(city: str, categories=None, locations_to_fetch: int = 10, coordinates=None) -> Dict[str, Any]:
    return {
        "city": city,
        "country": "Bosnia and Herzegovina",
        "coordinates": coordinates,
        "locations_to_fetch": locations_to_fetch,
        "categories": ["tourism.sights", "catering.restaurant"] if categories is None else categories,
        "reasoning": f"More content for {city}",
    }


def orchestration_plan(*cities: Dict[str, Any], profiles=("family", "couple")) -> Dict[str, Any]:
    return {
        "analysis": "Test plan",
        "target_cities": list(cities),
        "tourist_profiles_to_generate": list(profiles),
        "estimated_new_content": {"locations": 10, "experiences": 4, "plans": 4},
    }


def enrichment_handler(prompt, schema, context):
    """Metadata, descriptions or history depending on the requested schema."""
    properties = schema["properties"]
    for key in ("descriptions", "historical_context"):
        if key in properties:
            locales = properties[key]["required"]
            return {key: {locale: f"{key} {locale}" for locale in locales}}
    return {
        "suitable_experiences": ["culture"],
        "tags": ["historical-site"],
        "practical_info": {"best_time": "morning", "duration_minutes": 60, "tips": ["Go early"]},
        "confidence": 0.9,
    }


def experiences_handler(prompt, schema, context):
    """Pairs of neighbouring listed locations, as many as the prompt asks for."""
    ids = [int(i) for i in ID_PATTERN.findall(prompt)]
    wanted = int(COUNT_PATTERN.search(prompt).group(1))
    experiences = []
    for start in range(min(wanted, max(len(ids) - 1, 0))):
        pair = ids[start:start + 2]
        experiences.append(
            {
                "location_ids": pair,
                "location_names": [],
                "category_key": "cultural_heritage",
                "estimated_duration": 120,
                "seasons": [],
                "titles": {"en": f"{context} walk {pair[0]}-{pair[1]}", "bs": f"Šetnja {pair[0]}-{pair[1]}"},
                "descriptions": {"en": "A walk", "bs": "Šetnja"},
                "theme_reasoning": "Close together",
                "confidence": 0.8,
            }
        )
    return {"experiences": experiences}


def plan_handler(prompt, schema, context):
    ids = [int(i) for i in ID_PATTERN.findall(prompt)]
    return {
        "duration_days": 1,
        "titles": {"en": f"{context} plan", "bs": f"{context} plan"},
        "notes": {"en": "Bring water", "bs": "Ponesite vodu"},
        "days": [{"day_number": 1, "theme": "Highlights", "experience_ids": ids[:2]}],
        "reasoning": "Fits the profile",
        "confidence": 0.7,
    }


def default_handlers() -> Dict[str, Any]:
    return {
        "orchestration_plan": orchestration_plan(city_plan("Sarajevo")),
        "location_enrichment": enrichment_handler,
        "experience_proposals": experiences_handler,
        "plan_proposal": plan_handler,
    }


class FakePlaces:
    """Stand-in for PlacesClient returning per_call fresh places for every search."""

    def __init__(self, per_call: int = 2, fail_for: Optional[Callable[[str, str], Optional[Exception]]] = None):
        self.per_call = per_call
        self.fail_for = fail_for
        self.calls: List[Dict[str, Any]] = []
        self._counter = 0

    def search(self, categories, city, proximity=None, country_filter=None, limit=20, radius=None):
        self.calls.append({"categories": list(categories), "city": city, "proximity": proximity, "limit": limit})
        if self.fail_for is not None:
            error = self.fail_for(city, categories[0])
            if error is not None:
                raise error

        places = []
        for _ in range(min(self.per_call, limit)):
            self._counter += 1
            n = self._counter
            places.append(
                RawPlace(
                    place_id=f"place-{n}",
                    name=f"{city} {categories[0].split('.')[-1]} {n}",
                    lat=43.0 + n * 0.01,
                    lng=18.0 + n * 0.01,
                    address=f"Street {n}, {city}, Bosnia and Herzegovina",
                    categories=list(categories),
                    website=f"www.place{n}.ba",
                )
            )
        return places


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_places():
    return FakePlaces()
