"""ScheduledMaintenance and MaintenanceUpdate models."""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UTCDateTime, UUIDMixin, utcnow


class ScheduledMaintenance(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "scheduled_maintenances"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    impact: str = Field(nullable=False, default="none")
    # Phase is derived from these two; manual start/complete rewrite them
    start_time: datetime = Field(nullable=False, index=True, sa_type=UTCDateTime(timezone=True))
    end_time: datetime = Field(nullable=False, index=True, sa_type=UTCDateTime(timezone=True))
    created_by: Optional[uuid.UUID] = None


class MaintenanceUpdate(UUIDMixin, SQLModel, table=True):
    __tablename__ = "maintenance_updates"

    maintenance_id: uuid.UUID = Field(
        foreign_key="scheduled_maintenances.id", nullable=False, index=True
    )
    message: str = Field(nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=UTCDateTime(timezone=True),
    )
    created_by: Optional[uuid.UUID] = None
