"""Notification dispatch bookkeeping.

A NotificationDispatch row is the claim that an IncidentUpdate has been
fanned out; its primary key makes the claim at-most-once. Each subscriber
delivery attempt is recorded as a NotificationDelivery.
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import UTCDateTime, UUIDMixin, utcnow


class NotificationDispatch(SQLModel, table=True):
    __tablename__ = "notification_dispatches"

    incident_update_id: uuid.UUID = Field(foreign_key="incident_updates.id", primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    started_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=UTCDateTime(timezone=True)
    )
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime(timezone=True))
    sent_count: int = Field(default=0, nullable=False)
    failed_count: int = Field(default=0, nullable=False)


class NotificationDelivery(UUIDMixin, SQLModel, table=True):
    __tablename__ = "notification_deliveries"

    incident_update_id: uuid.UUID = Field(
        foreign_key="notification_dispatches.incident_update_id", nullable=False, index=True
    )
    subscriber_id: uuid.UUID = Field(nullable=False, index=True)
    email: str = Field(nullable=False)
    status: str = Field(nullable=False)  # sent | failed
    error: Optional[str] = None
    attempted_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=UTCDateTime(timezone=True)
    )
