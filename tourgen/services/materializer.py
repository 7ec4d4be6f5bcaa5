"""Turns validated proposals into persisted content records, idempotently."""

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tourgen.config import GenerationConfig
from tourgen.models.experience import Experience, ExperienceLocation
from tourgen.models.location import Location
from tourgen.models.plan import Plan, PlanExperience
from tourgen.models.translation import Translation
from tourgen.schemas.proposals import ExperienceProposal, LocationProposal, PlanProposal

logger = logging.getLogger(__name__)

COORDINATE_TOLERANCE = 0.0001  # degrees, roughly 11 m

MINUTES_PER_LOCATION = 60

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")

LOCATION_TYPE_PATTERNS = [
    ("restaurant", re.compile(r"restaurant|cafe|bar|food|catering")),
    ("accommodation", re.compile(r"hotel|accommodation|lodging|hostel")),
    ("guide", re.compile(r"guide|\btours?\b")),
    ("business", re.compile(r"shop|store|business|commercial")),
    ("artisan", re.compile(r"craft|artisan")),
]

DEFAULT_PLAN_TITLES = {
    "en": {
        "family": "Family Adventure",
        "couple": "Romantic Getaway",
        "adventure": "Adventure Experience",
        "culture": "Cultural Discovery",
        "budget": "Budget Explorer",
        "luxury": "Luxury Escape",
        "foodie": "Culinary Journey",
        "solo": "Solo Discovery",
    },
    "bs": {
        "family": "Porodična avantura",
        "couple": "Romantični bijeg",
        "adventure": "Avanturističko iskustvo",
        "culture": "Kulturno otkriće",
        "budget": "Budget putovanje",
        "luxury": "Luksuzni odmor",
        "foodie": "Kulinarska tura",
        "solo": "Solo istraživanje",
    },
}


def sanitize_external_string(value: Optional[str]) -> Optional[str]:
    """Strip NUL and other control characters (tab, newline and CR are kept)."""
    if value is None or not isinstance(value, str):
        return value
    return CONTROL_CHARS.sub("", value).strip()


def normalize_website_url(url: Optional[str]) -> Optional[str]:
    url = sanitize_external_string(url)
    if not url:
        return None
    if re.match(r"^https?://", url, re.IGNORECASE):
        return url
    return f"https://{url}"


def determine_location_type(categories: Sequence[str]) -> str:
    text = " ".join(categories or [])
    for location_type, pattern in LOCATION_TYPE_PATTERNS:
        if pattern.search(text):
            return location_type
    return "place"


def category_tags(categories: Sequence[str], limit: int = 3) -> List[str]:
    """Leaf names of places API categories as tags, e.g. tourism.sights.castle -> castle."""
    tags: List[str] = []
    for category in categories or []:
        tag = category.split(".")[-1].replace("_", "-")
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:limit]


def default_plan_title(profile: str, city: Optional[str], locale: str, region: str) -> str:
    names = DEFAULT_PLAN_TITLES.get(locale) or DEFAULT_PLAN_TITLES["en"]
    name = names.get(profile) or DEFAULT_PLAN_TITLES["en"].get(profile) or profile.replace("_", " ").title()
    return f"{name} - {city or region}"


def _unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class Materializer:
    """
    Applies proposals to the database.

    Every create method either commits its work or rolls the session back and
    re-raises; callers log and skip the item. Re-applying a proposal never
    duplicates a record, a join row or a translation.
    """

    def __init__(self, db: Session, config: GenerationConfig):
        self.db = db
        self.config = config
        self.locales = config.locales

    # Translations

    def upsert_translation(self, resource_type: str, resource_id: int, locale: str, field: str, value: Optional[str]) -> None:
        """Insert or overwrite one translated field. Does not commit."""
        if value is None:
            return
        row = (
            self.db.query(Translation)
            .filter(
                Translation.resource_type == resource_type,
                Translation.resource_id == resource_id,
                Translation.locale == locale,
                Translation.field == field,
            )
            .first()
        )
        if row is None:
            self.db.add(
                Translation(resource_type=resource_type, resource_id=resource_id, locale=locale, field=field, value=value)
            )
        else:
            row.value = value
            row.updated_at = datetime.utcnow()

    def translations_for(self, resource_type: str, resource_id: int) -> Dict[Tuple[str, str], str]:
        rows = (
            self.db.query(Translation)
            .filter(Translation.resource_type == resource_type, Translation.resource_id == resource_id)
            .all()
        )
        return {(row.locale, row.field): row.value for row in rows}

    # Locations

    def find_existing_location(self, name: str, lat: float, lng: float, city: str, external_id: Optional[str]) -> Optional[Location]:
        """Same coordinates (within tolerance) or external id first, then same name in the same city."""
        match = (
            self.db.query(Location)
            .filter(
                Location.lat.between(lat - COORDINATE_TOLERANCE, lat + COORDINATE_TOLERANCE),
                Location.lng.between(lng - COORDINATE_TOLERANCE, lng + COORDINATE_TOLERANCE),
            )
            .first()
        )
        if match is None and external_id:
            match = self.db.query(Location).filter(Location.external_id == external_id).first()
        if match is None:
            match = (
                self.db.query(Location)
                .filter(func.lower(Location.name) == name.lower(), Location.city == city)
                .first()
            )
        return match

    def create_location(self, proposal: LocationProposal, city: str) -> Tuple[Location, bool]:
        """
        Persist an enriched place.

        Returns:
            (location, created); created is False when an equivalent record existed

        Raises:
            ValueError: If the candidate has no name or coordinates
        """
        candidate = proposal.candidate
        name = sanitize_external_string(candidate.name)
        if not name or candidate.lat is None or candidate.lng is None:
            raise ValueError("candidate has no name or coordinates")

        try:
            existing = self.find_existing_location(name, candidate.lat, candidate.lng, city, candidate.place_id)
            if existing is not None:
                logger.info(f"Location already exists: {existing.name} (id={existing.id})")
                return existing, False

            location = Location(
                name=name,
                city=city,
                lat=candidate.lat,
                lng=candidate.lng,
                external_id=sanitize_external_string(candidate.place_id),
                location_type=determine_location_type(candidate.categories),
                budget=candidate.price_level or "medium",
                website=normalize_website_url(candidate.website),
                phone=sanitize_external_string(candidate.phone),
                email=sanitize_external_string(candidate.email),
                tags=_unique(category_tags(candidate.categories) + proposal.tags),
                suitable_experiences=_unique(proposal.suitable_experiences),
                practical_info=proposal.practical_info,
                ai_generated=True,
            )
            self.db.add(location)
            self.db.flush()

            for locale in self.locales:
                self.upsert_translation("location", location.id, locale, "name", name)
                self.upsert_translation("location", location.id, locale, "description", proposal.descriptions.get(locale))
                self.upsert_translation(
                    "location", location.id, locale, "historical_context", proposal.historical_context.get(locale)
                )

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created location: {location.name} in {city} (id={location.id})")
        return location, True

    # Experiences

    def link_location(self, experience: Experience, location: Location, position: int) -> bool:
        """
        Add a location to an experience unless already linked.

        Returns:
            True if a new link was created
        """
        exists = (
            self.db.query(ExperienceLocation)
            .filter(ExperienceLocation.experience_id == experience.id, ExperienceLocation.location_id == location.id)
            .first()
        )
        if exists is not None:
            return False

        self.db.add(ExperienceLocation(experience_id=experience.id, location_id=location.id, position=position))
        try:
            self.db.commit()
        except IntegrityError:
            # Linked concurrently
            self.db.rollback()
            return False
        return True

    def resolve_locations(self, proposal: ExperienceProposal, available: Sequence[Location]) -> List[Location]:
        """Locations by id; by name when the ids do not resolve enough of them."""
        by_id = {loc.id: loc for loc in available}
        resolved: List[Location] = []
        for location_id in proposal.location_ids:
            location = by_id.get(location_id)
            if location is not None and location not in resolved:
                resolved.append(location)

        if len(resolved) >= self.config.min_locations_per_experience or not proposal.location_names:
            return resolved

        by_name: List[Location] = []
        for wanted in proposal.location_names:
            wanted_lower = wanted.lower()
            match = next((loc for loc in available if loc.name.lower() == wanted_lower), None)
            if match is None:
                match = next(
                    (loc for loc in available if wanted_lower in loc.name.lower() or loc.name.lower() in wanted_lower),
                    None,
                )
            if match is not None and match not in by_name:
                by_name.append(match)
        return by_name

    def create_experience(
        self,
        proposal: ExperienceProposal,
        available_locations: Sequence[Location],
    ) -> Tuple[Optional[Experience], bool]:
        """
        Persist an experience over existing locations.

        Returns:
            (experience, created); (None, False) when too few locations resolve.
            An experience with the same title is reused and linked idempotently.
        """
        locations = self.resolve_locations(proposal, available_locations)
        if len(locations) < self.config.min_locations_per_experience:
            logger.info(f"Skipping experience proposal: only {len(locations)} location(s) resolved")
            return None, False

        title = sanitize_external_string(
            proposal.titles.get("en") or next(iter(proposal.titles.values()), None)
        ) or f"{locations[0].city or self.config.target_country} experience"

        try:
            experience = self.db.query(Experience).filter(func.lower(Experience.title) == title.lower()).first()
            created = experience is None

            if created:
                experience = Experience(
                    title=title,
                    category_key=proposal.category_key,
                    estimated_duration=proposal.estimated_duration or MINUTES_PER_LOCATION * len(locations),
                    seasons=proposal.seasons,
                    ai_generated=True,
                )
                self.db.add(experience)
                self.db.flush()

                for locale in self.locales:
                    self.upsert_translation("experience", experience.id, locale, "title", proposal.titles.get(locale) or title)
                    self.upsert_translation("experience", experience.id, locale, "description", proposal.descriptions.get(locale))

                # Record, translations and links land in one commit
                for position, location in enumerate(locations, start=1):
                    self.db.add(ExperienceLocation(experience_id=experience.id, location_id=location.id, position=position))
                self.db.commit()
            else:
                for position, location in enumerate(locations, start=1):
                    self.link_location(experience, location, position)
        except Exception:
            self.db.rollback()
            raise

        if created:
            logger.info(f"Created experience: {experience.title} with {len(locations)} locations")
        else:
            logger.info(f"Experience already exists: {experience.title} (id={experience.id})")
        return experience, created

    # Plans

    def primary_city(self, experience_ids: Sequence[int], experiences: Sequence[Experience]) -> Optional[str]:
        """Most frequent city among the locations of the scheduled experiences."""
        wanted = set(experience_ids)
        cities = Counter(
            loc.city
            for exp in experiences
            if exp.id in wanted
            for loc in exp.locations
            if loc.city
        )
        if not cities:
            return None
        return cities.most_common(1)[0][0]

    def create_plan(
        self,
        proposal: PlanProposal,
        experiences: Sequence[Experience],
        profile: str,
        city: Optional[str] = None,
        preferences: Optional[Dict[str, Any]] = None,
    ) -> Optional[Plan]:
        """
        Persist a plan for a tourist profile.

        Returns:
            The new plan, or None when no scheduled experience resolves
        """
        by_id = {exp.id: exp for exp in experiences}
        schedule: List[Tuple[int, int, int]] = []  # (day_number, position, experience_id)
        seen = set()
        for day in proposal.days:
            position = 0
            for experience_id in day.experience_ids:
                if experience_id not in by_id or (day.day_number, experience_id) in seen:
                    continue
                seen.add((day.day_number, experience_id))
                position += 1
                schedule.append((day.day_number, position, experience_id))

        if not schedule:
            logger.info(f"Skipping {profile} plan for {city or 'multi-city'}: no resolvable experiences")
            return None

        duration_days = proposal.duration_days or len(proposal.days) or 1
        city_name = city or self.primary_city([eid for _, _, eid in schedule], experiences)
        titles = {
            locale: proposal.titles.get(locale) or default_plan_title(profile, city, locale, self.config.target_country)
            for locale in self.locales
        }
        title = sanitize_external_string(
            titles.get("en") or next(iter(titles.values()), None)
        ) or default_plan_title(profile, city, "en", self.config.target_country)

        try:
            plan = Plan(
                title=title,
                city_name=city_name,
                tourist_profile=profile,
                duration_days=duration_days,
                preferences={
                    **(preferences or {}),
                    "tourist_profile": profile,
                    "generated_by_ai": True,
                    "generation_metadata": {
                        "generated_at": datetime.now(timezone.utc).isoformat(),
                        "reasoning": proposal.reasoning,
                        "duration_days": duration_days,
                    },
                },
                ai_generated=True,
            )
            self.db.add(plan)
            self.db.flush()

            for locale in self.locales:
                self.upsert_translation("plan", plan.id, locale, "title", titles[locale])
                self.upsert_translation("plan", plan.id, locale, "notes", proposal.notes.get(locale))

            for day_number, position, experience_id in schedule:
                self.db.add(
                    PlanExperience(plan_id=plan.id, experience_id=experience_id, day_number=day_number, position=position)
                )

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created plan: {plan.title} ({len(schedule)} experiences, {duration_days} days)")
        return plan
