"""Scheduled maintenance schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import UUID4

from .common import Impact, MaintenancePhase


def _as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class MaintenanceCreate(BaseModel):
    title: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    impact: Impact = Impact.NONE
    start_time: datetime
    end_time: datetime
    service_ids: List[UUID4] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def check_window(self) -> "MaintenanceCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class MaintenanceEdit(BaseModel):
    """Partial edit; the resulting window is re-validated server-side."""
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    impact: Optional[Impact] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    service_ids: Optional[List[UUID4]] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class MaintenanceUpdateCreate(BaseModel):
    message: str = Field(..., min_length=1)


class MaintenanceUpdateRead(BaseModel):
    id: UUID4
    maintenance_id: UUID4
    message: str
    created_at: datetime
    created_by: Optional[UUID4] = None

    model_config = {"from_attributes": True}


class MaintenanceRead(BaseModel):
    id: UUID4
    organization_id: UUID4
    title: str
    description: Optional[str] = None
    impact: Impact
    start_time: datetime
    end_time: datetime
    phase: MaintenancePhase
    service_ids: List[UUID4] = Field(default_factory=list)
    updates: List[MaintenanceUpdateRead] = Field(default_factory=list)
    created_at: datetime
