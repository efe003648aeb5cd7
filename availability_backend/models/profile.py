"""Availability profile model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, String
from availability_backend.database import Base


class AvailabilityProfile(Base):
    """Stores one user's published availability document."""
    __tablename__ = "availability_profiles"

    user_id = Column(String, primary_key=True, index=True)
    slots = Column(JSON, nullable=False, default=list)
    is_looking = Column(Boolean, nullable=False, default=True)
    owner = Column(JSON, nullable=False, default=dict)
    preferences = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True))
