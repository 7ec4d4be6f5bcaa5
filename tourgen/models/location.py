"""Location model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, Text
from sqlalchemy.orm import relationship

from tourgen.database import Base


class Location(Base):
    """A point of interest fetched from the places API."""

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    city = Column(Text)
    lat = Column(Float)
    lng = Column(Float)
    external_id = Column(Text)  # places API place_id
    location_type = Column(Text)
    budget = Column(Text)  # 'low', 'medium', 'high'
    website = Column(Text)
    phone = Column(Text)
    email = Column(Text)
    tags = Column(JSON, default=list)
    suitable_experiences = Column(JSON, default=list)
    practical_info = Column(JSON, default=dict)
    ai_generated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    experience_links = relationship("ExperienceLocation", back_populates="location", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_locations_coordinates", "lat", "lng"),
        Index("idx_locations_city", "city"),
        Index("idx_locations_external_id", "external_id"),
    )
