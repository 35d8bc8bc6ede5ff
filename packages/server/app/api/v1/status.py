"""
Public status endpoints (unauthenticated, read-only).

GET /api/v1/status/{slug}          JSON feed
GET /api/v1/status/{slug}/history  daily uptime per service
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.services.organizations import get_org
from app.services.status_feed import build_status_history, get_status_feed
from heystatus_shared.schemas.status_feed import StatusFeed, StatusHistory

router = APIRouter()


@router.get("/{slug}", response_model=StatusFeed)
async def status_feed_endpoint(
    slug: str,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    org = await get_org(slug, session)
    feed = await get_status_feed(session, org)
    response.headers["Cache-Control"] = (
        f"public, max-age={get_settings().feed_cache_ttl_seconds}"
    )
    return feed


@router.get("/{slug}/history", response_model=StatusHistory)
async def status_history_endpoint(
    slug: str,
    days: Optional[int] = Query(None, ge=1, le=90),
    session: AsyncSession = Depends(get_session),
):
    settings = get_settings()
    org = await get_org(slug, session)
    return await build_status_history(
        session, org, days or settings.history_days, settings.aggregation_timezone
    )
