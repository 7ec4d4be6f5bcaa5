"""Key-value setting model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Text

from tourgen.database import Base


class Setting(Base):
    """A single string-keyed value. Holds the generation run record."""

    __tablename__ = "settings"

    key = Column(Text, primary_key=True)
    value = Column(Text)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
