"""
Organization analytics endpoint.

GET /api/v1/orgs/{orgSlug}/analytics?days=30&tz=Europe/Amsterdam
    Incidents opened and maintenances starting per day, totals by impact
    and the current status of every service.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.params import aggregation_timezone, bounded
from app.core.auth import OrgContext, get_org_context
from app.core.database import get_session
from app.models.base import utcnow
from app.services import aggregator
from app.services.analytics import org_activity
from heystatus_shared.schemas.analytics import OrgAnalytics

router = APIRouter()

ANALYTICS_DEFAULT_DAYS = 30


@router.get("", response_model=OrgAnalytics)
async def org_analytics_endpoint(
    days: int = Query(ANALYTICS_DEFAULT_DAYS, ge=1, le=90),
    tz: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    tz_name = aggregation_timezone(tz)
    from_date, to_date = aggregator.trailing_days(days, tz_name, utcnow())
    return await bounded(org_activity(session, ctx.org_id, from_date, to_date, tz_name))
