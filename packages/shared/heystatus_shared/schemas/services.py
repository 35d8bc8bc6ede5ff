"""
Service catalogue, status history and uptime schemas.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .common import ServiceStatus


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    current_status: Optional[ServiceStatus] = Field(
        None,
        description="Manual override; written through the status log",
    )


class ServiceRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    description: Optional[str] = None
    current_status: ServiceStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StatusLogEntryRead(BaseModel):
    id: uuid.UUID
    service_id: uuid.UUID
    status: ServiceStatus
    started_at: datetime
    ended_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DateWindow(BaseModel):
    """Inclusive calendar-day window used by the analytics endpoints."""

    from_date: date
    to_date: date

    @model_validator(mode="after")
    def check_order(self) -> "DateWindow":
        if self.to_date < self.from_date:
            raise ValueError("to_date must not be before from_date")
        return self


class DailyDowntimeRead(BaseModel):
    service_id: uuid.UUID
    from_date: date
    to_date: date
    timezone: str
    downtime_minutes: dict[date, float]
    total_downtime_minutes: float


class UptimeRead(BaseModel):
    service_id: uuid.UUID
    from_date: date
    to_date: date
    timezone: str
    uptime_percentage: float
