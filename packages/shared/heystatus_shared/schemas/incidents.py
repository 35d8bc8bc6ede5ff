"""Incident and incident-update schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

from .common import Impact, IncidentStatus


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

class IncidentUpdateCreate(BaseModel):
    """A new lifecycle step for an incident."""
    status: IncidentStatus
    message: str = Field(..., min_length=1)


class IncidentUpdateRead(BaseModel):
    id: UUID4
    incident_id: UUID4
    status: IncidentStatus
    message: str
    created_at: datetime
    created_by: Optional[UUID4] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Incident CRUD
# ---------------------------------------------------------------------------

class IncidentCreate(BaseModel):
    title: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    impact: Impact = Impact.NONE
    service_ids: List[UUID4] = Field(default_factory=list)
    status: IncidentStatus = IncidentStatus.INVESTIGATING
    message: str = Field(..., min_length=1, description="First status message")


class IncidentEdit(BaseModel):
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    impact: Optional[Impact] = None
    service_ids: Optional[List[UUID4]] = None


class IncidentRead(BaseModel):
    id: UUID4
    organization_id: UUID4
    title: str
    description: Optional[str] = None
    impact: Impact
    status: IncidentStatus
    service_ids: List[UUID4] = Field(default_factory=list)
    updates: List[IncidentUpdateRead] = Field(default_factory=list)
    created_at: datetime
    resolved_at: Optional[datetime] = None
