"""
Service Status Projector.

Derives a service's current status from every open incident and every
in-progress maintenance affecting it (worst impact wins) and writes changes
through the Status Log Store. ``recompute`` holds a row lock on the service
for the whole read-project-write sequence, so two concurrent transitions of
the same service serialise instead of both opening a new interval.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.events import StatusTransition, broadcast_status_change, refresh_feed
from app.models.assignments import ServiceIncident, ServiceMaintenance
from app.models.base import utcnow
from app.models.incident import Incident, IncidentUpdate
from app.models.maintenance import ScheduledMaintenance
from app.models.service import Service
from app.services import status_log
from app.services.impact import maintenance_phase, resolve_impact
from heystatus_shared.schemas.common import (
    Impact,
    IncidentStatus,
    ServiceStatus,
    worst_status,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Projection (read-only)
# ---------------------------------------------------------------------------


async def incident_phase(session: AsyncSession, incident_id: uuid.UUID) -> IncidentStatus:
    """Status of the most recent update; investigating if there is none."""
    result = await session.execute(
        select(IncidentUpdate.status)
        .where(IncidentUpdate.incident_id == incident_id)
        .order_by(IncidentUpdate.created_at.desc())
        .limit(1)
    )
    status = result.scalar_one_or_none()
    return IncidentStatus(status) if status else IncidentStatus.INVESTIGATING


async def project_status(
    session: AsyncSession, service_id: uuid.UUID, now: datetime
) -> ServiceStatus:
    """Worst status implied by everything currently affecting the service."""
    implied: list[ServiceStatus] = []

    result = await session.execute(
        select(Incident)
        .join(ServiceIncident, ServiceIncident.incident_id == Incident.id)
        .where(ServiceIncident.service_id == service_id, Incident.resolved_at.is_(None))
    )
    for incident in result.scalars().all():
        phase = await incident_phase(session, incident.id)
        implied.append(resolve_impact(Impact(incident.impact), phase))

    result = await session.execute(
        select(ScheduledMaintenance)
        .join(ServiceMaintenance, ServiceMaintenance.maintenance_id == ScheduledMaintenance.id)
        .where(
            ServiceMaintenance.service_id == service_id,
            ScheduledMaintenance.start_time <= now,
            ScheduledMaintenance.end_time > now,
        )
    )
    for maintenance in result.scalars().all():
        phase = maintenance_phase(maintenance.start_time, maintenance.end_time, now)
        implied.append(resolve_impact(Impact(maintenance.impact), phase))

    return worst_status(implied)


# ---------------------------------------------------------------------------
# Recompute (read-modify-write under a per-service lock)
# ---------------------------------------------------------------------------


async def _lock_service(session: AsyncSession, service_id: uuid.UUID) -> Optional[Service]:
    result = await session.execute(
        select(Service).where(Service.id == service_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def _open_entry_for(session: AsyncSession, service: Service):
    """Open interval of a locked service, seeding or repairing as needed."""
    entries = await status_log.get_open_entries(session, service.id)
    if len(entries) > 1:
        await status_log.repair_open_intervals(session, service.id)
        entries = entries[-1:]
    if not entries:
        return await status_log.seed_log(session, service)
    return entries[0]


async def recompute(
    session: AsyncSession,
    service_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[StatusTransition]:
    """Re-derive the status of one service; write a new interval if it changed.

    Does not commit. Returns the transition, or None when nothing changed
    (or the service is gone).
    """
    now = now or utcnow()
    service = await _lock_service(session, service_id)
    if service is None or service.deleted_at is not None:
        return None

    open_entry = await _open_entry_for(session, service)
    logged = ServiceStatus(open_entry.status)
    if service.current_status != logged.value:
        # The cache follows the log, never the other way round
        log.warning(
            "service.status_cache_drift",
            service_id=str(service.id),
            cached=service.current_status,
            logged=logged.value,
        )
        service.current_status = logged.value

    projected = await project_status(session, service.id, now)
    if projected == logged:
        session.add(service)
        await session.flush()
        return None

    entry = await status_log.append_interval(session, service.id, projected, now)
    service.current_status = projected.value
    session.add(service)
    await session.flush()

    return StatusTransition(
        service_id=service.id,
        organization_id=service.organization_id,
        from_status=logged.value,
        to_status=projected.value,
        at=entry.started_at,
    )


async def apply_manual_status(
    session: AsyncSession,
    service_id: uuid.UUID,
    status: ServiceStatus,
    now: Optional[datetime] = None,
) -> Optional[StatusTransition]:
    """Operator override of the current status, written through the log.

    The next recompute of the service derives its status again.
    """
    now = now or utcnow()
    service = await _lock_service(session, service_id)
    if service is None or service.deleted_at is not None:
        return None

    open_entry = await _open_entry_for(session, service)
    if open_entry.status == status.value:
        return None

    entry = await status_log.append_interval(session, service.id, status, now)
    from_status = open_entry.status
    service.current_status = status.value
    session.add(service)
    await session.flush()

    log.info("service.status_overridden", service_id=str(service.id), status=status.value)
    return StatusTransition(
        service_id=service.id,
        organization_id=service.organization_id,
        from_status=from_status,
        to_status=status.value,
        at=entry.started_at,
        reason="manual",
    )


async def publish_transitions(transitions: Iterable[StatusTransition]) -> None:
    """Emit committed transitions; a failing publish never propagates."""
    for transition in transitions:
        try:
            await broadcast_status_change(transition)
        except Exception:
            log.exception("service.status_event_failed", service_id=str(transition.service_id))


async def recompute_services(
    session: AsyncSession,
    service_ids: Iterable[uuid.UUID],
    now: Optional[datetime] = None,
) -> list[StatusTransition]:
    """Recompute several services, one committed transaction each.

    Meant to run after the triggering lifecycle write has been committed: a
    failure for one service is rolled back and logged without touching the
    others or the caller. Services are locked in id order.
    """
    now = now or utcnow()
    transitions: list[StatusTransition] = []
    for service_id in sorted(set(service_ids)):
        try:
            transition = await recompute(session, service_id, now)
            await session.commit()
        except Exception:
            await session.rollback()
            log.exception("service.recompute_failed", service_id=str(service_id))
            continue
        if transition is not None:
            transitions.append(transition)
    await publish_transitions(transitions)
    return transitions


async def settle_services(
    session: AsyncSession,
    org_id: uuid.UUID,
    service_ids: Iterable[uuid.UUID],
    now: Optional[datetime] = None,
) -> list[StatusTransition]:
    """Post-commit step of every lifecycle write: recompute and refresh the feed."""
    transitions = await recompute_services(session, service_ids, now)
    await refresh_feed(org_id)
    return transitions
