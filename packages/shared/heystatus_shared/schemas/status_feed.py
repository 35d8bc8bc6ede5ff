"""
Public status feed schemas.

The feed is the external, unauthenticated view of an organization: the
summary indicator, each service's current status, open incidents and
maintenances that have not ended yet. The history adds daily uptime and the
incidents resolved inside its window.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

from .common import Impact, IncidentStatus, MaintenancePhase, ServiceStatus

ALL_OPERATIONAL = "All Systems Operational"
SOME_ISSUES = "Some Systems Are Experiencing Issues"


class FeedOrganization(BaseModel):
    name: str
    url: str


class FeedIndicator(BaseModel):
    indicator: Literal["ok", "error"]
    description: str


class FeedService(BaseModel):
    name: str
    status: ServiceStatus


class FeedIncident(BaseModel):
    id: UUID4
    title: str
    impact: Impact
    created_at: datetime
    status: IncidentStatus
    last_updated_at: datetime


class HistoryIncident(FeedIncident):
    resolved_at: Optional[datetime] = None


class FeedMaintenance(BaseModel):
    id: UUID4
    title: str
    start_time: datetime
    end_time: datetime
    phase: MaintenancePhase


class StatusFeed(BaseModel):
    organization: FeedOrganization
    status: FeedIndicator
    services: List[FeedService] = Field(default_factory=list)
    incidents: List[FeedIncident] = Field(default_factory=list)
    scheduled_maintenances: List[FeedMaintenance] = Field(default_factory=list)


class ServiceHistory(BaseModel):
    """Daily uptime percentages for one service (status page heatmap row)."""
    service_id: UUID4
    name: str
    daily_uptime: dict[date, float]
    average_uptime: float


class StatusHistory(BaseModel):
    organization: FeedOrganization
    days: int
    services: List[ServiceHistory] = Field(default_factory=list)
    # Incidents resolved since the start of the window, newest first
    recent_incidents: List[HistoryIncident] = Field(default_factory=list)
