"""
Scheduled maintenance service layer.

A maintenance's phase is derived from the wall clock against its window
(see ``impact.maintenance_phase``). The two manual overrides rewrite the
window: "start now" moves start_time to now while scheduled, "complete now"
moves end_time to now while in progress. Maintenance updates are commentary
only and never change the phase.

As with incidents, nothing here commits; callers settle the returned
services after committing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import DomainValidationError, NotFoundError
from app.models.assignments import ServiceMaintenance
from app.models.base import utcnow
from app.models.maintenance import MaintenanceUpdate, ScheduledMaintenance
from app.services.catalog import require_services
from app.services.impact import maintenance_phase
from heystatus_shared.schemas.common import MaintenancePhase
from heystatus_shared.schemas.maintenances import (
    MaintenanceCreate,
    MaintenanceEdit,
    MaintenanceRead,
    MaintenanceUpdateCreate,
    MaintenanceUpdateRead,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_maintenance_or_404(
    session: AsyncSession, maintenance_id: uuid.UUID, org_id: uuid.UUID
) -> ScheduledMaintenance:
    maintenance = await session.get(ScheduledMaintenance, maintenance_id)
    if not maintenance or maintenance.organization_id != org_id:
        raise NotFoundError("Maintenance not found")
    return maintenance


async def get_service_ids(session: AsyncSession, maintenance_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(ServiceMaintenance.service_id).where(
            ServiceMaintenance.maintenance_id == maintenance_id
        )
    )
    return [row[0] for row in result.all()]


async def _set_services(
    session: AsyncSession, maintenance_id: uuid.UUID, service_ids: list[uuid.UUID]
) -> None:
    await session.execute(
        delete(ServiceMaintenance).where(ServiceMaintenance.maintenance_id == maintenance_id)
    )
    for sid in service_ids:
        session.add(ServiceMaintenance(service_id=sid, maintenance_id=maintenance_id))


def phase_of(maintenance: ScheduledMaintenance, now: Optional[datetime] = None) -> MaintenancePhase:
    return maintenance_phase(maintenance.start_time, maintenance.end_time, now or utcnow())


async def enrich_maintenance(
    session: AsyncSession, maintenance: ScheduledMaintenance, now: Optional[datetime] = None
) -> MaintenanceRead:
    result = await session.execute(
        select(MaintenanceUpdate)
        .where(MaintenanceUpdate.maintenance_id == maintenance.id)
        .order_by(MaintenanceUpdate.created_at.desc())
    )
    updates = result.scalars().all()
    return MaintenanceRead(
        id=maintenance.id,
        organization_id=maintenance.organization_id,
        title=maintenance.title,
        description=maintenance.description,
        impact=maintenance.impact,
        start_time=maintenance.start_time,
        end_time=maintenance.end_time,
        phase=phase_of(maintenance, now),
        service_ids=await get_service_ids(session, maintenance.id),
        updates=[MaintenanceUpdateRead.model_validate(u) for u in updates],
        created_at=maintenance.created_at,
    )


async def enrich_maintenances(
    session: AsyncSession, maintenances: Sequence[ScheduledMaintenance]
) -> list[MaintenanceRead]:
    now = utcnow()
    return [await enrich_maintenance(session, m, now) for m in maintenances]


async def list_maintenances(
    session: AsyncSession,
    org_id: uuid.UUID,
    upcoming_only: bool = False,
    now: Optional[datetime] = None,
) -> list[ScheduledMaintenance]:
    """All maintenances by start time; ``upcoming_only`` keeps those not yet ended."""
    stmt = select(ScheduledMaintenance).where(ScheduledMaintenance.organization_id == org_id)
    if upcoming_only:
        stmt = stmt.where(ScheduledMaintenance.end_time > (now or utcnow()))
    result = await session.execute(stmt.order_by(ScheduledMaintenance.start_time))
    return list(result.scalars().all())


async def services_with_boundary_between(
    session: AsyncSession, since: datetime, until: datetime
) -> list[uuid.UUID]:
    """Services whose maintenance started or ended within ``(since, until]``."""
    result = await session.execute(
        select(ServiceMaintenance.service_id)
        .join(
            ScheduledMaintenance,
            ScheduledMaintenance.id == ServiceMaintenance.maintenance_id,
        )
        .where(
            or_(
                (ScheduledMaintenance.start_time > since)
                & (ScheduledMaintenance.start_time <= until),
                (ScheduledMaintenance.end_time > since)
                & (ScheduledMaintenance.end_time <= until),
            )
        )
        .distinct()
    )
    return [row[0] for row in result.all()]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def create_maintenance(
    session: AsyncSession,
    maintenance_in: MaintenanceCreate,
    org_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> ScheduledMaintenance:
    now = now or utcnow()
    service_ids = await require_services(session, org_id, maintenance_in.service_ids)

    maintenance = ScheduledMaintenance(
        organization_id=org_id,
        title=maintenance_in.title,
        description=maintenance_in.description,
        impact=maintenance_in.impact.value,
        start_time=maintenance_in.start_time,
        end_time=maintenance_in.end_time,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    session.add(maintenance)
    await session.flush()
    await _set_services(session, maintenance.id, service_ids)
    await session.flush()

    log.info(
        "maintenance.created",
        maintenance_id=str(maintenance.id),
        org_id=str(org_id),
        phase=phase_of(maintenance, now).value,
    )
    return maintenance


async def update_maintenance(
    session: AsyncSession,
    maintenance: ScheduledMaintenance,
    edit_in: MaintenanceEdit,
) -> list[uuid.UUID]:
    """Edit details, window or services. Returns every service to recompute."""
    data = edit_in.model_dump(exclude_unset=True)
    affected = set(await get_service_ids(session, maintenance.id))

    start = data.get("start_time") or maintenance.start_time
    end = data.get("end_time") or maintenance.end_time
    if end <= start:
        raise DomainValidationError("end_time must be after start_time")

    if "service_ids" in data:
        new_ids = await require_services(
            session, maintenance.organization_id, data.pop("service_ids") or []
        )
        await _set_services(session, maintenance.id, new_ids)
        affected.update(new_ids)

    if data.get("impact") is not None:
        data["impact"] = edit_in.impact.value

    for key, value in data.items():
        if value is not None or key == "description":
            setattr(maintenance, key, value)

    maintenance.updated_at = utcnow()
    session.add(maintenance)
    await session.flush()
    return sorted(affected)


async def start_now(
    session: AsyncSession,
    maintenance: ScheduledMaintenance,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """Begin a scheduled maintenance immediately."""
    now = now or utcnow()
    phase = phase_of(maintenance, now)
    if phase is not MaintenancePhase.SCHEDULED:
        raise DomainValidationError(f"Cannot start maintenance in phase '{phase.value}'")

    maintenance.start_time = now
    maintenance.updated_at = now
    session.add(maintenance)
    await session.flush()
    log.info("maintenance.started", maintenance_id=str(maintenance.id))
    return await get_service_ids(session, maintenance.id)


async def complete_now(
    session: AsyncSession,
    maintenance: ScheduledMaintenance,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """End an in-progress maintenance immediately."""
    now = now or utcnow()
    phase = phase_of(maintenance, now)
    if phase is not MaintenancePhase.IN_PROGRESS:
        raise DomainValidationError(f"Cannot complete maintenance in phase '{phase.value}'")

    # Keep the window non-empty when completed in the instant it started
    maintenance.end_time = max(now, maintenance.start_time + timedelta(microseconds=1))
    maintenance.updated_at = now
    session.add(maintenance)
    await session.flush()
    log.info("maintenance.completed", maintenance_id=str(maintenance.id))
    return await get_service_ids(session, maintenance.id)


async def add_maintenance_update(
    session: AsyncSession,
    maintenance: ScheduledMaintenance,
    update_in: MaintenanceUpdateCreate,
    actor_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> MaintenanceUpdate:
    update = MaintenanceUpdate(
        maintenance_id=maintenance.id,
        message=update_in.message,
        created_at=now or utcnow(),
        created_by=actor_id,
    )
    session.add(update)
    await session.flush()
    return update


async def delete_maintenance(
    session: AsyncSession, maintenance: ScheduledMaintenance
) -> list[uuid.UUID]:
    """Delete a maintenance and its commentary; history is left untouched."""
    affected = await get_service_ids(session, maintenance.id)
    await session.execute(
        delete(MaintenanceUpdate).where(MaintenanceUpdate.maintenance_id == maintenance.id)
    )
    await session.execute(
        delete(ServiceMaintenance).where(ServiceMaintenance.maintenance_id == maintenance.id)
    )
    await session.delete(maintenance)
    await session.flush()
    log.info("maintenance.deleted", maintenance_id=str(maintenance.id), services=len(affected))
    return affected
