"""SQLAlchemy ORM models."""

from tourgen.models.setting import Setting
from tourgen.models.location import Location
from tourgen.models.experience import Experience, ExperienceLocation
from tourgen.models.plan import Plan, PlanExperience
from tourgen.models.translation import Translation

__all__ = [
    "Setting",
    "Location",
    "Experience",
    "ExperienceLocation",
    "Plan",
    "PlanExperience",
    "Translation",
]
