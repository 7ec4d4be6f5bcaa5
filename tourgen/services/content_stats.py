"""Read-only content snapshot used for reasoning and the stats endpoint."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tourgen.models.experience import Experience, ExperienceLocation
from tourgen.models.location import Location
from tourgen.models.plan import Plan


def locations_per_city(db: Session) -> Dict[str, int]:
    rows = (
        db.query(Location.city, func.count(Location.id))
        .filter(Location.city.isnot(None))
        .group_by(Location.city)
        .all()
    )
    return {city: count for city, count in rows}


def experiences_per_city(db: Session) -> Dict[str, int]:
    """Experiences with at least one location in the city; multi-city experiences count once per city."""
    rows = (
        db.query(Location.city, func.count(func.distinct(Experience.id)))
        .join(ExperienceLocation, ExperienceLocation.location_id == Location.id)
        .join(Experience, Experience.id == ExperienceLocation.experience_id)
        .filter(Location.city.isnot(None))
        .group_by(Location.city)
        .all()
    )
    return {city: count for city, count in rows}


def plans_per_city(db: Session, ai_only: bool = False) -> Dict[str, int]:
    query = db.query(Plan.city_name, func.count(Plan.id)).filter(Plan.city_name.isnot(None))
    if ai_only:
        query = query.filter(Plan.ai_generated.is_(True))
    return {city: count for city, count in query.group_by(Plan.city_name).all()}


def current_state(
    db: Session,
    target_country: str,
    target_country_code: str,
    max_experiences: Optional[float] = None,
) -> Dict[str, Any]:
    """What already exists, as the reasoning prompt sees it."""
    per_city = locations_per_city(db)
    return {
        "existing_cities": sorted(per_city),
        "locations_per_city": per_city,
        "experiences_per_city": experiences_per_city(db),
        "plans_per_city": plans_per_city(db, ai_only=True),
        "target_country": target_country,
        "target_country_code": target_country_code,
        "max_experiences": max_experiences,
    }


def content_stats(db: Session) -> Dict[str, Any]:
    """Per-city counts sorted by location count, plus totals."""
    locations = locations_per_city(db)
    experiences = experiences_per_city(db)
    plans = plans_per_city(db)
    ai_plans = plans_per_city(db, ai_only=True)

    cities: List[Dict[str, Any]] = [
        {
            "city": city,
            "locations": count,
            "experiences": experiences.get(city, 0),
            "plans": plans.get(city, 0),
            "ai_plans": ai_plans.get(city, 0),
        }
        for city, count in locations.items()
    ]
    cities.sort(key=lambda s: (-s["locations"], s["city"]))

    totals = {
        key: sum(s[key] for s in cities)
        for key in ("locations", "experiences", "plans", "ai_plans")
    }
    return {"cities": cities, "totals": totals}
