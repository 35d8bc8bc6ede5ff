"""
Organization activity analytics (dashboard charts).
"""

from __future__ import annotations

from datetime import date
from typing import List

from pydantic import BaseModel, Field

from .common import Impact
from .status_feed import FeedService


class DailyActivity(BaseModel):
    day: date
    incidents: int = 0
    maintenances: int = 0


class OrgAnalytics(BaseModel):
    from_date: date
    to_date: date
    timezone: str
    # Oldest day first, one entry per day of the window
    daily: List[DailyActivity] = Field(default_factory=list)
    total_incidents: int = 0
    total_maintenances: int = 0
    incidents_by_impact: dict[Impact, int] = Field(default_factory=dict)
    services: List[FeedService] = Field(default_factory=list)
