"""Service model."""

from datetime import datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UTCDateTime, UUIDMixin


class Service(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "services"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    # Cached projection of the open status log interval
    current_status: str = Field(nullable=False, default="operational")
    deleted_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime(timezone=True))
