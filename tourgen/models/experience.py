"""Experience and experience/location join models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from tourgen.database import Base


class Experience(Base):
    """An ordered grouping of locations around a theme."""

    __tablename__ = "experiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    category_key = Column(Text)
    estimated_duration = Column(Integer)  # minutes
    seasons = Column(JSON, default=list)
    ai_generated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    location_links = relationship(
        "ExperienceLocation",
        back_populates="experience",
        cascade="all, delete-orphan",
        order_by="ExperienceLocation.position",
    )

    @property
    def locations(self):
        return [link.location for link in self.location_links]


class ExperienceLocation(Base):
    """Many-to-many join between experiences and locations."""

    __tablename__ = "experience_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    experience_id = Column(Integer, ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, default=1)

    experience = relationship("Experience", back_populates="location_links")
    location = relationship("Location", back_populates="experience_links")

    __table_args__ = (
        UniqueConstraint("experience_id", "location_id", name="uq_experience_location"),
    )
