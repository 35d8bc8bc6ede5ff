"""
Organization activity over recent days: incidents opened and maintenances
starting per local calendar day, bucketed like the uptime aggregation.
"""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import date
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.incident import Incident
from app.models.maintenance import ScheduledMaintenance
from app.services import aggregator
from app.services.catalog import list_services
from heystatus_shared.schemas.analytics import DailyActivity, OrgAnalytics
from heystatus_shared.schemas.common import Impact
from heystatus_shared.schemas.status_feed import FeedService


async def org_activity(
    session: AsyncSession,
    org_id: uuid.UUID,
    from_date: date,
    to_date: date,
    tz_name: str = "UTC",
) -> OrgAnalytics:
    tz = ZoneInfo(tz_name)
    start, end = aggregator.window_bounds(from_date, to_date, tz)

    result = await session.execute(
        select(Incident.created_at, Incident.impact).where(
            Incident.organization_id == org_id,
            Incident.created_at >= start,
            Incident.created_at < end,
        )
    )
    incidents = result.all()

    result = await session.execute(
        select(ScheduledMaintenance.start_time).where(
            ScheduledMaintenance.organization_id == org_id,
            ScheduledMaintenance.start_time >= start,
            ScheduledMaintenance.start_time < end,
        )
    )
    maintenance_starts = [row[0] for row in result.all()]

    incident_days = aggregator.count_by_day(
        (created_at for created_at, _ in incidents), from_date, to_date, tz
    )
    maintenance_days = aggregator.count_by_day(maintenance_starts, from_date, to_date, tz)
    by_impact = Counter(Impact(impact) for _, impact in incidents)

    services = await list_services(session, org_id)
    return OrgAnalytics(
        from_date=from_date,
        to_date=to_date,
        timezone=tz_name,
        daily=[
            DailyActivity(
                day=day,
                incidents=incident_days[day],
                maintenances=maintenance_days[day],
            )
            for day in aggregator.iter_days(from_date, to_date)
        ],
        total_incidents=sum(incident_days.values()),
        total_maintenances=sum(maintenance_days.values()),
        incidents_by_impact={impact: by_impact.get(impact, 0) for impact in Impact},
        services=[FeedService(name=s.name, status=s.current_status) for s in services],
    )
