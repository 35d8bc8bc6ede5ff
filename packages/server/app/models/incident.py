"""Incident and IncidentUpdate models."""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UTCDateTime, UUIDMixin, utcnow


class Incident(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "incidents"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    impact: str = Field(nullable=False, default="none")  # none | minor | major | critical
    # Set once, by the first resolved update; null means open
    resolved_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime(timezone=True))
    created_by: Optional[uuid.UUID] = None


class IncidentUpdate(UUIDMixin, SQLModel, table=True):
    """Append-only lifecycle step; the latest one is the incident's phase."""

    __tablename__ = "incident_updates"

    incident_id: uuid.UUID = Field(foreign_key="incidents.id", nullable=False, index=True)
    status: str = Field(nullable=False)  # investigating | identified | monitoring | resolved
    message: str = Field(nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
        sa_type=UTCDateTime(timezone=True),
    )
    created_by: Optional[uuid.UUID] = None
