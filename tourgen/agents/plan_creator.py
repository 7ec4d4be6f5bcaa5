"""Plan proposal agent for tourist profiles."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from tourgen.agents.base import BaseAgent, locale_object_schema
from tourgen.models.experience import Experience
from tourgen.schemas.proposals import PlanProposal

logger = logging.getLogger(__name__)

TOURIST_PROFILES: Dict[str, Dict[str, Any]] = {
    "family": {
        "description": "Families with children",
        "preferences": {"pace": "relaxed", "activities": ["nature", "culture", "food"], "budget": "medium"},
    },
    "couple": {
        "description": "Romantic getaway for couples",
        "preferences": {"pace": "moderate", "activities": ["culture", "food", "relaxation"], "budget": "medium"},
    },
    "adventure": {
        "description": "Adventure seekers and outdoor enthusiasts",
        "preferences": {"pace": "active", "activities": ["adventure", "sport", "nature"], "budget": "medium"},
    },
    "culture": {
        "description": "History and culture enthusiasts",
        "preferences": {"pace": "moderate", "activities": ["culture", "history"], "budget": "medium"},
    },
    "budget": {
        "description": "Budget-conscious backpackers",
        "preferences": {"pace": "active", "activities": ["culture", "nature"], "budget": "low"},
    },
    "luxury": {
        "description": "Luxury travelers",
        "preferences": {"pace": "relaxed", "activities": ["culture", "food", "relaxation"], "budget": "high"},
    },
    "foodie": {
        "description": "Food and culinary enthusiasts",
        "preferences": {"pace": "relaxed", "activities": ["food", "culture"], "budget": "medium"},
    },
    "solo": {
        "description": "Solo travelers",
        "preferences": {"pace": "flexible", "activities": ["culture", "nature", "adventure"], "budget": "medium"},
    },
}


def plan_schema(locales: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "duration_days": {"type": "integer"},
            "titles": locale_object_schema(locales),
            "notes": locale_object_schema(locales),
            "days": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "day_number": {"type": "integer"},
                        "theme": {"type": "string"},
                        "experience_ids": {"type": "array", "items": {"type": "integer"}},
                    },
                    "required": ["day_number", "theme", "experience_ids"],
                    "additionalProperties": False,
                },
            },
            "reasoning": {"type": "string"},
            "confidence": {"type": "number"},
        },
        "required": ["duration_days", "titles", "notes", "days", "reasoning", "confidence"],
        "additionalProperties": False,
    }


def format_experience(experience: Experience) -> str:
    cities = sorted({loc.city for loc in experience.locations if loc.city})
    return (
        f"ID: {experience.id} | {experience.title}\n"
        f"  Category: {experience.category_key or 'general'}\n"
        f"  Duration: {experience.estimated_duration or 60} min\n"
        f"  Cities: {', '.join(cities) or 'unknown'}\n"
        f"  Locations: {len(experience.location_links)}"
    )


class PlanCreator(BaseAgent):
    """Agent proposing a multi-day plan for one tourist profile."""

    SCHEMA_NAME = "plan_proposal"

    def propose(
        self,
        experiences: Sequence[Experience],
        profile: str,
        city: Optional[str] = None,
        duration_days: Optional[int] = None,
    ) -> Optional[PlanProposal]:
        """Plan over the given experiences; None for unknown profiles or too few experiences."""
        if profile not in TOURIST_PROFILES:
            logger.warning(f"Unknown tourist profile: {profile}")
            return None
        return self.execute(
            {"experiences": list(experiences), "profile": profile, "city": city, "duration_days": duration_days}
        )

    def _run(self, payload: Dict[str, Any]) -> Optional[PlanProposal]:
        experiences: List[Experience] = payload["experiences"]
        profile: str = payload["profile"]
        city: Optional[str] = payload["city"]

        if len(experiences) < self.config.min_experiences_per_plan:
            logger.info(f"Not enough experiences for a {profile} plan in {city or 'multi-city'}")
            return None

        prompt = self._build_prompt(experiences, profile, city, payload.get("duration_days"))
        result = self.ask(prompt, plan_schema(self.config.locales), context=f"PlanCreator:{profile}:{city or 'multi'}")
        if not result:
            return None
        return PlanProposal.model_validate(result)

    def _validate(self, result: Optional[PlanProposal]) -> bool:
        return result is not None and bool(result.days)

    def _build_prompt(
        self,
        experiences: Sequence[Experience],
        profile: str,
        city: Optional[str],
        duration_days: Optional[int],
    ) -> str:
        profile_data = TOURIST_PROFILES[profile]
        preferences = profile_data["preferences"]
        listing = "\n\n".join(format_experience(exp) for exp in experiences)

        if duration_days:
            duration_instruction = f"The plan MUST be exactly {duration_days} days."
        else:
            duration_instruction = "Decide the optimal duration (1-5 days) based on the available experiences."

        return f"""{self.cultural_context()}

---

TASK: Create a {profile.upper()} travel plan for {city or self.config.target_country}.

TOURIST PROFILE: {profile_data["description"]}
Preferred pace: {preferences["pace"]}
Preferred activities: {", ".join(preferences["activities"])}
Budget level: {preferences["budget"]}

{duration_instruction}

AVAILABLE EXPERIENCES:
{listing}

GUIDELINES:
1. Choose experiences that match the {profile} profile, 2-4 per day
2. Keep a logical geographical flow and minimize travel
3. Balance active and relaxed activities
4. Titles should be compelling; notes hold practical tips for {profile} travelers

Use only the IDs listed above. Languages to include: {", ".join(self.config.locales)}
"""
