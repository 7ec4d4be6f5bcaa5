"""Experience proposal agent for local and cross-city themes."""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from tourgen.agents.base import BaseAgent, locale_object_schema
from tourgen.models.location import Location
from tourgen.schemas.proposals import ExperienceProposal, validate_each

logger = logging.getLogger(__name__)

MAX_LOCAL_PER_REQUEST = 5
MAX_THEMATIC_PER_REQUEST = 3


def experiences_schema(locales: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "experiences": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "location_ids": {"type": "array", "items": {"type": "integer"}},
                        "location_names": {"type": "array", "items": {"type": "string"}},
                        "category_key": {"type": "string"},
                        "estimated_duration": {"type": "integer"},
                        "seasons": {"type": "array", "items": {"type": "string"}},
                        "titles": locale_object_schema(locales),
                        "descriptions": locale_object_schema(locales),
                        "theme_reasoning": {"type": "string"},
                        "confidence": {"type": "number"},
                    },
                    "required": [
                        "location_ids",
                        "location_names",
                        "category_key",
                        "estimated_duration",
                        "seasons",
                        "titles",
                        "descriptions",
                        "theme_reasoning",
                        "confidence",
                    ],
                    "additionalProperties": False,
                },
            }
        },
        "required": ["experiences"],
        "additionalProperties": False,
    }


def format_location(location: Location) -> str:
    kinds = ", ".join(location.suitable_experiences or []) or "general"
    tags = ", ".join(location.tags or []) or "-"
    return (
        f"ID: {location.id} | {location.name}\n"
        f"  City: {location.city}\n"
        f"  Type: {location.location_type or 'place'} ({kinds})\n"
        f"  Tags: {tags}"
    )


class ExperienceCreator(BaseAgent):
    """Agent proposing experiences over existing locations."""

    SCHEMA_NAME = "experience_proposals"

    def propose_local(self, locations: Sequence[Location], city: str, remaining: float) -> List[ExperienceProposal]:
        """Up to min(remaining, 5) experiences within one city."""
        return self.execute(
            {
                "locations": list(locations),
                "city": city,
                "max_to_create": int(min(remaining, MAX_LOCAL_PER_REQUEST)),
            }
        )

    def propose_thematic(self, locations: Sequence[Location], remaining: float) -> List[ExperienceProposal]:
        """Up to min(remaining, 3) experiences spanning several cities."""
        return self.execute(
            {
                "locations": list(locations),
                "city": None,
                "max_to_create": int(min(remaining, MAX_THEMATIC_PER_REQUEST)),
            }
        )

    def _run(self, payload: Dict[str, Any]) -> List[ExperienceProposal]:
        locations: List[Location] = payload["locations"]
        city: Optional[str] = payload["city"]
        max_to_create: int = payload["max_to_create"]

        if max_to_create < 1 or len(locations) < self.config.min_locations_per_experience:
            logger.info(f"Not enough locations or quota for experiences in {city or 'cross-city'}")
            return []

        if city:
            prompt = self._local_prompt(locations, city, max_to_create)
        else:
            prompt = self._thematic_prompt(locations, max_to_create)

        context = f"ExperienceCreator:{city or 'thematic'}"
        result = self.ask(prompt, experiences_schema(self.config.locales), context=context)
        proposals = validate_each(result.get("experiences"), ExperienceProposal, context=context)
        return proposals[:max_to_create]

    def _validate(self, result: Any) -> bool:
        return isinstance(result, list)

    def _fallback(self, payload: Dict[str, Any]) -> List[ExperienceProposal]:
        return []

    def _local_prompt(self, locations: Sequence[Location], city: str, max_to_create: int) -> str:
        listing = "\n\n".join(format_location(loc) for loc in locations)
        return f"""{self.cultural_context()}

---

TASK: Create {max_to_create} curated tourism experiences for {city}.

AVAILABLE LOCATIONS IN {city.upper()}:
{listing}

GUIDELINES:
1. Group locations thematically (history, food, nature, culture, etc.)
2. Each experience should have 3-5 locations that make sense together
3. Consider walking distance and logical route flow
4. One location can appear in several experiences
5. Create diverse experiences for different types of tourists
6. Use evocative local titles, not generic ones like "City Tour"

Use only the IDs listed above. Languages to include: {", ".join(self.config.locales)}
"""

    def _thematic_prompt(self, locations: Sequence[Location], max_to_create: int) -> str:
        by_city: Dict[str, List[Location]] = defaultdict(list)
        for loc in locations:
            by_city[loc.city or "Unknown"].append(loc)
        listing = "\n\n".join(
            f"=== {city} ===\n" + "\n".join(format_location(loc) for loc in city_locations)
            for city, city_locations in sorted(by_city.items())
        )
        return f"""{self.cultural_context()}

---

TASK: Create {max_to_create} cross-city thematic experiences that connect locations from different cities.

AVAILABLE LOCATIONS BY CITY:
{listing}

GUIDELINES:
1. Connect locations from at least 2 different cities
2. Find a compelling theme that unites distant locations (fortresses, bridges, UNESCO sites, rivers)
3. 4-6 locations per experience, balanced across cities
4. Consider a practical multi-day route

Use only the IDs listed above. Languages to include: {", ".join(self.config.locales)}
"""
