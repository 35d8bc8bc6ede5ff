"""StatusLogEntry model: one contiguous interval of a service's status."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, UUIDMixin


class StatusLogEntry(UUIDMixin, SQLModel, table=True):
    __tablename__ = "status_log_entries"
    __table_args__ = (
        # At most one open interval per service
        sa.Index(
            "uq_status_log_entries_open_interval",
            "service_id",
            unique=True,
            postgresql_where=sa.text("ended_at IS NULL"),
            sqlite_where=sa.text("ended_at IS NULL"),
        ),
    )

    service_id: uuid.UUID = Field(foreign_key="services.id", nullable=False, index=True)
    status: str = Field(nullable=False)
    started_at: datetime = Field(nullable=False, index=True, sa_type=UTCDateTime(timezone=True))
    ended_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime(timezone=True))
