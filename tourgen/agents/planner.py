"""Reasoning agent that decides which cities and content to generate."""

import json
import logging
from typing import Any, Dict, List

from tourgen.agents.base import BaseAgent
from tourgen.schemas.proposals import DEFAULT_PROFILES, OrchestrationPlan

logger = logging.getLogger(__name__)

# Cities below this many locations count as under-covered
THIN_CITY_THRESHOLD = 10
FALLBACK_LOCATIONS_TO_FETCH = 20
FALLBACK_MAX_CITIES = 3

DEFAULT_CATEGORIES = [
    "tourism.attraction",
    "tourism.sights",
    "catering.restaurant",
    "catering.cafe",
    "entertainment.museum",
    "heritage",
    "religion.place_of_worship",
    "natural",
]

DEFAULT_TARGET_CITIES = [
    {
        "city": "Sarajevo",
        "coordinates": {"lat": 43.8563, "lng": 18.4131},
        "locations_to_fetch": 30,
        "reasoning": "Capital city, main tourist destination",
    },
    {
        "city": "Mostar",
        "coordinates": {"lat": 43.3438, "lng": 17.8078},
        "locations_to_fetch": 25,
        "reasoning": "UNESCO World Heritage Site - Stari Most",
    },
    {
        "city": "Jajce",
        "coordinates": {"lat": 44.3422, "lng": 17.2703},
        "locations_to_fetch": 15,
        "reasoning": "Historic town with waterfall",
    },
]

PLACES_CATEGORY_HINTS = """tourism.attraction, tourism.sights, tourism.sights.castle, tourism.sights.fort,
tourism.sights.monastery, tourism.sights.memorial, tourism.viewpoint,
catering.restaurant, catering.cafe, catering.bar,
entertainment.museum, entertainment.culture.theatre, entertainment.culture.gallery,
tourism.sights.place_of_worship.mosque, tourism.sights.place_of_worship.church,
natural.water, natural.water.spring, natural.water.hot_spring,
natural.mountain.peak, natural.mountain.cave_entrance, natural.protected_area,
heritage.unesco, leisure.park, leisure.spa, accommodation.hotel, accommodation.hostel"""


def orchestration_plan_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "analysis": {"type": "string"},
            "target_cities": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "city": {"type": "string"},
                        "country": {"type": "string"},
                        "coordinates": {
                            "type": "object",
                            "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}},
                            "required": ["lat", "lng"],
                            "additionalProperties": False,
                        },
                        "locations_to_fetch": {"type": "integer"},
                        "categories": {"type": "array", "items": {"type": "string"}},
                        "reasoning": {"type": "string"},
                    },
                    "required": ["city", "country", "coordinates", "locations_to_fetch", "categories", "reasoning"],
                    "additionalProperties": False,
                },
            },
            "tourist_profiles_to_generate": {"type": "array", "items": {"type": "string"}},
            "estimated_new_content": {
                "type": "object",
                "properties": {
                    "locations": {"type": "integer"},
                    "experiences": {"type": "integer"},
                    "plans": {"type": "integer"},
                },
                "required": ["locations", "experiences", "plans"],
                "additionalProperties": False,
            },
        },
        "required": ["analysis", "target_cities", "tourist_profiles_to_generate", "estimated_new_content"],
        "additionalProperties": False,
    }


def fallback_plan(state: Dict[str, Any]) -> Dict[str, Any]:
    """Deterministic plan: thin existing cities first, else the default destinations."""
    per_city = state.get("locations_per_city") or {}
    target_cities: List[Dict[str, Any]] = [
        {
            "city": city,
            "locations_to_fetch": FALLBACK_LOCATIONS_TO_FETCH,
            "categories": list(DEFAULT_CATEGORIES),
            "reasoning": "Existing city with insufficient content",
        }
        for city in state.get("existing_cities") or []
        if per_city.get(city, 0) < THIN_CITY_THRESHOLD
    ]

    if not target_cities:
        target_cities = [dict(city, categories=list(DEFAULT_CATEGORIES)) for city in DEFAULT_TARGET_CITIES]

    return {
        "analysis": "Fallback plan - using default configuration",
        "target_cities": target_cities[:FALLBACK_MAX_CITIES],
        "tourist_profiles_to_generate": list(DEFAULT_PROFILES),
        "estimated_new_content": {"locations": 60, "experiences": 10, "plans": 12},
    }


class PlannerAgent(BaseAgent):
    """Agent for the reasoning phase."""

    SCHEMA_NAME = "orchestration_plan"

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the model for an orchestration plan based on the content snapshot."""
        prompt = self._build_prompt(payload)
        return self.ask(prompt, orchestration_plan_schema(), context="PlannerAgent")

    def _validate(self, result: Dict[str, Any]) -> bool:
        """Valid when at least one usable target city survives validation."""
        if not result:
            return False
        return not OrchestrationPlan.model_validate(result).is_empty

    def _fallback(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.warning("Reasoning returned no usable plan, using fallback plan")
        return fallback_plan(payload)

    def _build_prompt(self, state: Dict[str, Any]) -> str:
        existing = ", ".join(state.get("existing_cities") or []) or "None"
        country = state.get("target_country") or self.config.target_country
        code = state.get("target_country_code") or self.config.target_country_code
        limit = state.get("max_experiences")
        limit_line = f"- Maximum experiences to create: {int(limit)}\n" if limit not in (None, float("inf")) else ""

        return f"""{self.cultural_context()}

---

TASK: Analyze the current state of tourism content and create an action plan.

TARGET COUNTRY: {country} ({code})

CURRENT STATE:
- Existing cities: {existing}
- Locations per city: {json.dumps(state.get("locations_per_city") or {}, ensure_ascii=False)}
- Experiences per city: {json.dumps(state.get("experiences_per_city") or {}, ensure_ascii=False)}
- AI plans per city: {json.dumps(state.get("plans_per_city") or {}, ensure_ascii=False)}
{limit_line}
YOUR TASK:
1. Identify cities with insufficient content (fewer than {THIN_CITY_THRESHOLD} locations)
2. Suggest new cities that should be covered (major tourist destinations in {country})
3. Decide which location categories are needed for each city
4. Suggest tourist profiles for plans (family, couple, adventure, culture, budget, luxury, foodie, solo)

PLACES CATEGORIES (choose relevant ones for tourism):
{PLACES_CATEGORY_HINTS}

Balance cultural and natural content. Give real city-centre coordinates.

Return JSON with "analysis", "target_cities" (city, country, coordinates, locations_to_fetch,
categories, reasoning), "tourist_profiles_to_generate" and "estimated_new_content".
"""
