"""
Public Status Read Model.

Read-only projection of an organization for external consumers: the JSON
feed (current statuses, open incidents, upcoming maintenances) and the
per-service daily uptime history behind the status page heatmap, with the
incidents resolved inside the history window.

Two Redis caches sit in front of the store:
- ``hs:feed:{org_id}`` holds the rendered feed for ``feed_cache_ttl_seconds``
  and is dropped on every status change.
- ``hs:downtime:{service_id}:{tz}`` is a hash of downtime minutes for closed
  days only. A closed day never changes once the log has moved past it, so
  those entries need no invalidation; the reconciliation job drops the hash
  of a service whose log it had to repair.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.events import feed_cache_key
from app.core.redis import get_redis
from app.models.base import utcnow
from app.models.incident import Incident, IncidentUpdate
from app.models.maintenance import ScheduledMaintenance
from app.models.organization import Organization
from app.services import aggregator
from app.services.catalog import list_services
from app.services.impact import maintenance_phase
from heystatus_shared.schemas.common import IncidentStatus, ServiceStatus
from heystatus_shared.schemas.status_feed import (
    ALL_OPERATIONAL,
    SOME_ISSUES,
    FeedIncident,
    FeedIndicator,
    FeedMaintenance,
    FeedOrganization,
    FeedService,
    HistoryIncident,
    ServiceHistory,
    StatusFeed,
    StatusHistory,
)

log = structlog.get_logger()

RECENT_INCIDENT_DAYS = 7
FEED_ITEM_LIMIT = 5
DOWNTIME_CACHE_KEY_PREFIX = "hs:downtime:"


def status_page_url(org: Organization) -> str:
    return f"{get_settings().public_base_url.rstrip('/')}/{org.slug}"


def downtime_cache_key(service_id: uuid.UUID, tz_name: str) -> str:
    return f"{DOWNTIME_CACHE_KEY_PREFIX}{service_id}:{tz_name}"


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


async def _latest_update(
    session: AsyncSession, incident_id: uuid.UUID
) -> Optional[IncidentUpdate]:
    result = await session.execute(
        select(IncidentUpdate)
        .where(IncidentUpdate.incident_id == incident_id)
        .order_by(IncidentUpdate.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _feed_incidents(
    session: AsyncSession, org_id: uuid.UUID, now: datetime
) -> list[FeedIncident]:
    result = await session.execute(
        select(Incident)
        .where(
            Incident.organization_id == org_id,
            Incident.resolved_at.is_(None),
            Incident.created_at >= now - timedelta(days=RECENT_INCIDENT_DAYS),
        )
        .order_by(Incident.created_at.desc())
        .limit(FEED_ITEM_LIMIT)
    )
    items = []
    for incident in result.scalars().all():
        update = await _latest_update(session, incident.id)
        items.append(
            FeedIncident(
                id=incident.id,
                title=incident.title,
                impact=incident.impact,
                created_at=incident.created_at,
                status=update.status if update else IncidentStatus.INVESTIGATING,
                last_updated_at=update.created_at if update else incident.created_at,
            )
        )
    return items


async def _feed_maintenances(
    session: AsyncSession, org_id: uuid.UUID, now: datetime
) -> list[FeedMaintenance]:
    result = await session.execute(
        select(ScheduledMaintenance)
        .where(
            ScheduledMaintenance.organization_id == org_id,
            ScheduledMaintenance.end_time >= now,
        )
        .order_by(ScheduledMaintenance.start_time)
        .limit(FEED_ITEM_LIMIT)
    )
    return [
        FeedMaintenance(
            id=m.id,
            title=m.title,
            start_time=m.start_time,
            end_time=m.end_time,
            phase=maintenance_phase(m.start_time, m.end_time, now),
        )
        for m in result.scalars().all()
    ]


async def build_status_feed(
    session: AsyncSession, org: Organization, now: Optional[datetime] = None
) -> StatusFeed:
    """Assemble the feed straight from the store."""
    now = now or utcnow()
    services = await list_services(session, org.id)
    all_ok = all(s.current_status == ServiceStatus.OPERATIONAL.value for s in services)

    return StatusFeed(
        organization=FeedOrganization(name=org.name, url=status_page_url(org)),
        status=FeedIndicator(
            indicator="ok" if all_ok else "error",
            description=ALL_OPERATIONAL if all_ok else SOME_ISSUES,
        ),
        services=[FeedService(name=s.name, status=s.current_status) for s in services],
        incidents=await _feed_incidents(session, org.id, now),
        scheduled_maintenances=await _feed_maintenances(session, org.id, now),
    )


async def get_status_feed(session: AsyncSession, org: Organization) -> StatusFeed:
    """Cached feed; falls back to the store when Redis misses or fails."""
    key = feed_cache_key(org.id)
    try:
        redis = await get_redis()
        cached = await redis.get(key)
    except Exception:
        log.exception("status_feed.cache_read_failed", org_id=str(org.id))
        redis, cached = None, None

    if cached:
        return StatusFeed.model_validate_json(cached)

    feed = await build_status_feed(session, org)
    if redis is not None:
        try:
            await redis.set(
                key, feed.model_dump_json(), ex=get_settings().feed_cache_ttl_seconds
            )
        except Exception:
            log.exception("status_feed.cache_write_failed", org_id=str(org.id))
    return feed


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def cached_daily_downtime(
    session: AsyncSession,
    service_id: uuid.UUID,
    from_date: date,
    to_date: date,
    tz_name: str,
    now: Optional[datetime] = None,
) -> dict[date, float]:
    """``aggregator.daily_downtime`` with closed days served from Redis.

    A Redis failure on either side is logged and the store answers alone.
    """
    now = now or utcnow()
    tz = ZoneInfo(tz_name)
    key = downtime_cache_key(service_id, tz_name)
    days = list(aggregator.iter_days(from_date, to_date))

    try:
        redis = await get_redis()
        cached_values = await redis.hmget(key, [d.isoformat() for d in days])
    except Exception:
        log.exception("status_history.cache_read_failed", service_id=str(service_id))
        redis, cached_values = None, [None] * len(days)

    known = {
        day: float(value) for day, value in zip(days, cached_values) if value is not None
    }
    if len(known) == len(days):
        return known

    fresh = await aggregator.daily_downtime(session, service_id, from_date, to_date, tz_name, now)
    closed = {
        day.isoformat(): minutes
        for day, minutes in fresh.items()
        if day not in known and aggregator.day_bounds(day, tz)[1] <= now
    }
    if closed and redis is not None:
        try:
            await redis.hset(key, mapping=closed)
        except Exception:
            log.exception("status_history.cache_write_failed", service_id=str(service_id))
    return fresh


async def _resolved_incidents(
    session: AsyncSession, org_id: uuid.UUID, since: datetime
) -> list[HistoryIncident]:
    result = await session.execute(
        select(Incident)
        .where(
            Incident.organization_id == org_id,
            Incident.resolved_at.is_not(None),
            Incident.created_at >= since,
        )
        .order_by(Incident.created_at.desc())
    )
    items = []
    for incident in result.scalars().all():
        update = await _latest_update(session, incident.id)
        items.append(
            HistoryIncident(
                id=incident.id,
                title=incident.title,
                impact=incident.impact,
                created_at=incident.created_at,
                status=IncidentStatus.RESOLVED,
                last_updated_at=update.created_at if update else incident.resolved_at,
                resolved_at=incident.resolved_at,
            )
        )
    return items


async def build_status_history(
    session: AsyncSession,
    org: Organization,
    days: int,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> StatusHistory:
    """Daily uptime per live service for the last ``days`` days, today included.

    ``average_uptime`` is the mean of the daily percentages.
    """
    now = now or utcnow()
    tz = ZoneInfo(tz_name)
    from_date, to_date = aggregator.trailing_days(days, tz_name, now)

    rows = []
    for service in await list_services(session, org.id):
        downtime = await cached_daily_downtime(
            session, service.id, from_date, to_date, tz_name, now
        )
        daily = {
            day: aggregator.uptime_from(
                minutes, aggregator.elapsed_minutes(aggregator.day_bounds(day, tz), now)
            )
            for day, minutes in downtime.items()
        }
        rows.append(
            ServiceHistory(
                service_id=service.id,
                name=service.name,
                daily_uptime=daily,
                average_uptime=sum(daily.values()) / len(daily),
            )
        )

    window_start = aggregator.day_bounds(from_date, tz)[0]
    return StatusHistory(
        organization=FeedOrganization(name=org.name, url=status_page_url(org)),
        days=days,
        services=rows,
        recent_incidents=await _resolved_incidents(session, org.id, window_start),
    )


async def warm_history_cache(
    session: AsyncSession,
    service_id: uuid.UUID,
    days: int,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> None:
    """Precompute the closed days of the history window for one service."""
    now = now or utcnow()
    from_date, to_date = aggregator.trailing_days(days, tz_name, now)
    await cached_daily_downtime(session, service_id, from_date, to_date, tz_name, now)


async def drop_history_cache(service_id: uuid.UUID, tz_name: str = "UTC") -> None:
    """Forget cached closed days of one service; failures are only logged."""
    try:
        redis = await get_redis()
        await redis.delete(downtime_cache_key(service_id, tz_name))
    except Exception:
        log.exception("status_history.cache_drop_failed", service_id=str(service_id))
