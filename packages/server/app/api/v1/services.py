"""
Service endpoints: catalogue CRUD, manual status override, history and
uptime analytics.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.params import aggregation_timezone, bounded, date_window
from app.core.auth import OrgContext, get_org_context
from app.core.database import get_session
from app.core.events import refresh_feed
from app.services import aggregator, projector, status_log
from app.services.catalog import (
    create_service,
    delete_service,
    get_service_or_404,
    list_services,
    update_service,
)
from heystatus_shared.schemas.services import (
    DailyDowntimeRead,
    ServiceCreate,
    ServiceRead,
    ServiceUpdate,
    StatusLogEntryRead,
    UptimeRead,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Service CRUD
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[ServiceRead])
async def list_services_endpoint(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    services = await list_services(session, ctx.org_id)
    return [ServiceRead.model_validate(s) for s in services]


@router.post("/", response_model=ServiceRead, status_code=201)
async def create_service_endpoint(
    service_in: ServiceCreate,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Create a service; it starts operational."""
    service = await create_service(session, service_in, ctx.org_id)
    await session.commit()
    await session.refresh(service)
    await refresh_feed(ctx.org_id)
    return ServiceRead.model_validate(service)


@router.get("/{service_id}", response_model=ServiceRead)
async def get_service_endpoint(
    service_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    service = await get_service_or_404(session, service_id, ctx.org_id)
    return ServiceRead.model_validate(service)


@router.patch("/{service_id}", response_model=ServiceRead)
async def update_service_endpoint(
    service_id: uuid.UUID,
    service_in: ServiceUpdate,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Update name/description; ``current_status`` is a manual override."""
    service = await get_service_or_404(session, service_id, ctx.org_id)
    await update_service(session, service, service_in)

    transition = None
    if service_in.current_status is not None:
        transition = await projector.apply_manual_status(
            session, service.id, service_in.current_status
        )
    await session.commit()
    await session.refresh(service)

    if transition is not None:
        await projector.publish_transitions([transition])
    await refresh_feed(ctx.org_id)
    return ServiceRead.model_validate(service)


@router.delete("/{service_id}", status_code=204)
async def delete_service_endpoint(
    service_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Soft-delete a service; its status history is kept."""
    service = await get_service_or_404(session, service_id, ctx.org_id)
    await delete_service(session, service)
    await session.commit()
    await refresh_feed(ctx.org_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# History & analytics
# ---------------------------------------------------------------------------


@router.get("/{service_id}/history", response_model=List[StatusLogEntryRead])
async def service_history_endpoint(
    service_id: uuid.UUID,
    since: Optional[datetime] = None,
    limit: int = Query(200, ge=1, le=1000),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Status intervals, newest first."""
    await get_service_or_404(session, service_id, ctx.org_id)
    entries = await status_log.service_history(session, service_id, since, limit)
    return [StatusLogEntryRead.model_validate(e) for e in entries]


@router.get("/{service_id}/downtime", response_model=DailyDowntimeRead)
async def daily_downtime_endpoint(
    service_id: uuid.UUID,
    from_date: date = Query(..., alias="from"),
    to_date: date = Query(..., alias="to"),
    tz: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Downtime minutes per calendar day in ``[from, to]``."""
    await get_service_or_404(session, service_id, ctx.org_id)
    window = date_window(from_date, to_date)
    tz_name = aggregation_timezone(tz)
    per_day = await bounded(
        aggregator.daily_downtime(session, service_id, window.from_date, window.to_date, tz_name)
    )
    return DailyDowntimeRead(
        service_id=service_id,
        from_date=window.from_date,
        to_date=window.to_date,
        timezone=tz_name,
        downtime_minutes=per_day,
        total_downtime_minutes=sum(per_day.values()),
    )


@router.get("/{service_id}/uptime", response_model=UptimeRead)
async def uptime_endpoint(
    service_id: uuid.UUID,
    from_date: date = Query(..., alias="from"),
    to_date: date = Query(..., alias="to"),
    tz: Optional[str] = None,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Uptime percentage over ``[from, to]``."""
    await get_service_or_404(session, service_id, ctx.org_id)
    window = date_window(from_date, to_date)
    tz_name = aggregation_timezone(tz)
    pct = await bounded(
        aggregator.uptime_percentage(
            session, service_id, window.from_date, window.to_date, tz_name
        )
    )
    return UptimeRead(
        service_id=service_id,
        from_date=window.from_date,
        to_date=window.to_date,
        timezone=tz_name,
        uptime_percentage=pct,
    )
