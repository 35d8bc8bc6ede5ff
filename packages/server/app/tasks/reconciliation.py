"""
ARQ background tasks keeping the status log and notifications honest.

- reconcile_status_logs (hourly): repair services with more than one open
  interval, re-derive every live service and warm the history cache.
- sync_maintenance_phases (every minute): maintenance phase is derived from
  the clock, so services whose maintenance window opened or closed since the
  last run are recomputed here.
- redispatch_pending_notifications (every 10 minutes): incident updates whose
  dispatch never got claimed (process died before the background task ran)
  are dispatched now; the claim keeps each update to one cycle.

Run with ``arq app.tasks.reconciliation.WorkerSettings``.
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import func
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import async_session_factory
from app.core.events import refresh_feed
from app.core.logconfig import configure_logging
from app.core.mail import close_mail_sender
from app.core.redis import close_redis
from app.models.base import utcnow
from app.models.service import Service
from app.models.status_log import StatusLogEntry
from app.services import projector, status_log
from app.services.maintenances import services_with_boundary_between
from app.services.notifications import get_dispatcher, pending_update_ids
from app.services.status_feed import drop_history_cache, warm_history_cache

log = structlog.get_logger()
settings = get_settings()


async def _services_with_open_conflicts(session) -> list:
    result = await session.execute(
        select(StatusLogEntry.service_id)
        .where(StatusLogEntry.ended_at.is_(None))
        .group_by(StatusLogEntry.service_id)
        .having(func.count() > 1)
    )
    return [row[0] for row in result.all()]


async def reconcile_status_logs(ctx: dict) -> dict:
    """Repair open-interval violations and re-derive every live service.

    Returns counts of repaired and transitioned services.
    """
    now = utcnow()
    repaired = 0

    async with async_session_factory() as session:
        for service_id in await _services_with_open_conflicts(session):
            try:
                await status_log.repair_open_intervals(session, service_id)
                await session.commit()
            except Exception:
                await session.rollback()
                log.exception("reconcile.repair_failed", service_id=str(service_id))
                continue
            repaired += 1
            await drop_history_cache(service_id, settings.aggregation_timezone)

        result = await session.execute(
            select(Service.id, Service.organization_id).where(Service.deleted_at.is_(None))
        )
        services = result.all()

        transitions = await projector.recompute_services(
            session, [service_id for service_id, _ in services], now
        )
        for org_id in {org_id for _, org_id in services}:
            await refresh_feed(org_id)

        for service_id, _ in services:
            try:
                await warm_history_cache(
                    session, service_id, settings.history_days, settings.aggregation_timezone, now
                )
            except Exception:
                log.exception("reconcile.cache_warm_failed", service_id=str(service_id))

    log.info(
        "reconcile.completed",
        services=len(services),
        repaired=repaired,
        transitions=len(transitions),
    )
    return {"repaired": repaired, "transitions": len(transitions)}


async def sync_maintenance_phases(ctx: dict) -> int:
    """Recompute services whose maintenance window crossed a boundary recently.

    The look-back window overlaps consecutive runs; recomputing a service
    that is already correct writes nothing.
    """
    now = utcnow()
    since = now - timedelta(minutes=settings.maintenance_sync_window_minutes)

    async with async_session_factory() as session:
        service_ids = await services_with_boundary_between(session, since, now)
        if not service_ids:
            return 0
        result = await session.execute(
            select(Service.organization_id).where(Service.id.in_(service_ids)).distinct()
        )
        org_ids = [row[0] for row in result.all()]
        transitions = await projector.recompute_services(session, service_ids, now)

    for org_id in org_ids:
        await refresh_feed(org_id)

    if transitions:
        log.info("maintenance_sync.transitions", count=len(transitions))
    return len(transitions)


async def redispatch_pending_notifications(ctx: dict) -> int:
    """Dispatch incident updates that never got a dispatch claim."""
    async with async_session_factory() as session:
        update_ids = await pending_update_ids(session)

    dispatcher = get_dispatcher()
    dispatched = 0
    for update_id in update_ids:
        try:
            if await dispatcher.notify(update_id) is not None:
                dispatched += 1
        except Exception:
            log.exception("notification.redispatch_failed", update_id=str(update_id))

    if dispatched:
        log.info("notification.redispatched", count=dispatched)
    return dispatched


async def on_startup(ctx: dict) -> None:
    configure_logging(settings.log_level, settings.log_format)
    log.info("worker.started")


async def on_shutdown(ctx: dict) -> None:
    await close_mail_sender()
    await close_redis()
    log.info("worker.stopped")


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [reconcile_status_logs, sync_maintenance_phases, redispatch_pending_notifications]
    cron_jobs = [
        cron(reconcile_status_logs, minute=5),
        cron(sync_maintenance_phases, second=0),
        cron(redispatch_pending_notifications, minute={0, 10, 20, 30, 40, 50}, second=30),
    ]
    on_startup = on_startup
    on_shutdown = on_shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
