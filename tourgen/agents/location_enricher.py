"""Location enrichment agent: metadata, descriptions and historical context."""

import logging
from typing import Any, Dict, Optional, Sequence

from tourgen.agents.base import BaseAgent, batched, locale_object_schema
from tourgen.schemas.proposals import LocationProposal
from tourgen.services.places import RawPlace

logger = logging.getLogger(__name__)

# Locales per request, keeps long multi-language answers under the token limit
LOCALES_PER_DESCRIPTION_BATCH = 5
LOCALES_PER_HISTORY_BATCH = 3

EXPERIENCE_TYPES = [
    "culture",
    "history",
    "nature",
    "food",
    "adventure",
    "relaxation",
    "religion",
    "nightlife",
    "shopping",
    "family",
]

METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "suitable_experiences": {"type": "array", "items": {"type": "string"}},
        "tags": {"type": "array", "items": {"type": "string"}},
        "practical_info": {
            "type": "object",
            "properties": {
                "best_time": {"type": "string"},
                "duration_minutes": {"type": "integer"},
                "tips": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["best_time", "duration_minutes", "tips"],
            "additionalProperties": False,
        },
        "confidence": {"type": "number"},
    },
    "required": ["suitable_experiences", "tags", "practical_info", "confidence"],
    "additionalProperties": False,
}


def localized_schema(key: str, locales: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {key: locale_object_schema(locales)},
        "required": [key],
        "additionalProperties": False,
    }


class LocationEnricher(BaseAgent):
    """Agent turning a raw place into a location proposal."""

    SCHEMA_NAME = "location_enrichment"

    def enrich(self, candidate: RawPlace, city: str) -> Optional[LocationProposal]:
        """Enriched proposal, or None when the candidate lacks a name or coordinates."""
        return self.execute({"candidate": candidate, "city": city})

    def _run(self, payload: Dict[str, Any]) -> Optional[LocationProposal]:
        candidate: RawPlace = payload["candidate"]
        city: str = payload["city"]

        if not candidate.name or candidate.lat is None or candidate.lng is None:
            logger.info(f"Skipping candidate without name or coordinates in {city}")
            return None

        logger.info(f"Enriching location: {candidate.name} ({city})")
        info = self._info_block(candidate, city)

        metadata = self.ask(self._metadata_prompt(info, city), METADATA_SCHEMA, context=f"LocationEnricher:{city}")

        descriptions: Dict[str, str] = {}
        for locales in batched(self.config.locales, LOCALES_PER_DESCRIPTION_BATCH):
            result = self.ask(
                self._descriptions_prompt(info, city, locales),
                localized_schema("descriptions", locales),
                context=f"LocationEnricher:{city}",
            )
            descriptions.update(result.get("descriptions") or {})

        history: Dict[str, str] = {}
        for locales in batched(self.config.locales, LOCALES_PER_HISTORY_BATCH):
            result = self.ask(
                self._history_prompt(info, city, locales),
                localized_schema("historical_context", locales),
                context=f"LocationEnricher:{city}",
            )
            history.update(result.get("historical_context") or {})

        return LocationProposal(
            candidate=candidate,
            tags=metadata.get("tags"),
            suitable_experiences=metadata.get("suitable_experiences"),
            practical_info=metadata.get("practical_info"),
            descriptions=descriptions,
            historical_context=history,
            confidence=metadata.get("confidence"),
            reasoning=f"Fetched for {city}",
        )

    def _validate(self, result: Optional[LocationProposal]) -> bool:
        return result is not None

    def _info_block(self, candidate: RawPlace, city: str) -> str:
        categories = ", ".join(candidate.categories) or "unknown"
        return (
            "LOCATION INFORMATION:\n"
            f"- Name: {candidate.name}\n"
            f"- City: {city}\n"
            f"- Categories: {categories}\n"
            f"- Address: {candidate.address or 'unknown'}\n"
            f"- Coordinates: {candidate.lat}, {candidate.lng}"
        )

    def _metadata_prompt(self, info: str, city: str) -> str:
        return f"""{self.cultural_context()}

---

TASK: Provide metadata for this tourism location in {city}.

{info}

Return JSON with:
1. suitable_experiences: experience types this place is good for, chosen from: {", ".join(EXPERIENCE_TYPES)}
2. tags: 3-5 relevant tags in English, lowercase, hyphens instead of spaces (e.g. historical-site, scenic-view)
3. practical_info: best_time (morning, afternoon, evening, any), duration_minutes, tips (3-5 practical tips)
4. confidence: 0-1, how sure you are this is a genuine tourism location
"""

    def _descriptions_prompt(self, info: str, city: str, locales: Sequence[str]) -> str:
        return f"""{self.cultural_context()}

---

TASK: Write engaging descriptions for this tourism location in {city}.

{info}

Write descriptions in these languages: {", ".join(locales)}

For each language write 1-2 paragraphs (around 100-150 words): what makes the place special,
its connection to local culture and heritage, atmosphere and sensory details.

Return JSON with a "descriptions" object keyed by locale code.
"""

    def _history_prompt(self, info: str, city: str, locales: Sequence[str]) -> str:
        return f"""{self.cultural_context()}

---

TASK: Write historical and cultural context for audio narration at this tourism location in {city}.

{info}

Write historical context in these languages: {", ".join(locales)}

For each language write an essay-style narrative (2-3 paragraphs, around 200-300 words) with
dates, people, events, legends and how the place evolved through different eras.

Return JSON with a "historical_context" object keyed by locale code.
"""
