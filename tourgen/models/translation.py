"""Translation model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Text, UniqueConstraint

from tourgen.database import Base


class Translation(Base):
    """Localized text for one field of one resource."""

    __tablename__ = "translations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_type = Column(Text, nullable=False)  # 'location', 'experience', 'plan'
    resource_id = Column(Integer, nullable=False)
    locale = Column(Text, nullable=False)
    field = Column(Text, nullable=False)
    value = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", "locale", "field", name="uq_translation_key"),
    )
