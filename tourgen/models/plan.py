"""Plan and plan/experience join models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from tourgen.database import Base


class Plan(Base):
    """A multi-day itinerary for one tourist profile."""

    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    city_name = Column(Text)  # None for multi-city plans without a dominant city
    tourist_profile = Column(Text)
    duration_days = Column(Integer, default=1)
    preferences = Column(JSON, default=dict)
    ai_generated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    experience_links = relationship(
        "PlanExperience",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanExperience.day_number",
    )


class PlanExperience(Base):
    """An experience scheduled on a given day of a plan."""

    __tablename__ = "plan_experiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False)
    experience_id = Column(Integer, ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False)
    day_number = Column(Integer, nullable=False, default=1)
    position = Column(Integer, default=1)

    plan = relationship("Plan", back_populates="experience_links")
    experience = relationship("Experience")

    __table_args__ = (
        UniqueConstraint("plan_id", "experience_id", "day_number", name="uq_plan_experience_day"),
    )
