"""
Incident service layer: lifecycle updates, edits and deletion.

Phase order is not enforced: an update may move an incident to any phase,
skip phases, or go back to investigating. Resolution is terminal for the
incident record: the first resolved update stamps ``resolved_at`` and later
updates are kept as commentary without reopening it.

None of these functions commit. Callers commit the write, then run
``projector.settle_services`` over the returned service ids and trigger the
notification dispatcher for new updates.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFoundError
from app.models.assignments import ServiceIncident
from app.models.base import utcnow
from app.models.incident import Incident, IncidentUpdate
from app.models.notification import NotificationDelivery, NotificationDispatch
from app.services.catalog import require_services
from heystatus_shared.schemas.common import IncidentStatus
from heystatus_shared.schemas.incidents import (
    IncidentCreate,
    IncidentEdit,
    IncidentRead,
    IncidentUpdateCreate,
    IncidentUpdateRead,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_incident_or_404(
    session: AsyncSession, incident_id: uuid.UUID, org_id: uuid.UUID
) -> Incident:
    incident = await session.get(Incident, incident_id)
    if not incident or incident.organization_id != org_id:
        raise NotFoundError("Incident not found")
    return incident


async def get_service_ids(session: AsyncSession, incident_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(ServiceIncident.service_id).where(ServiceIncident.incident_id == incident_id)
    )
    return [row[0] for row in result.all()]


async def get_updates(
    session: AsyncSession, incident_id: uuid.UUID, newest_first: bool = True
) -> list[IncidentUpdate]:
    order = IncidentUpdate.created_at.desc() if newest_first else IncidentUpdate.created_at
    result = await session.execute(
        select(IncidentUpdate).where(IncidentUpdate.incident_id == incident_id).order_by(order)
    )
    return list(result.scalars().all())


async def _set_services(
    session: AsyncSession, incident_id: uuid.UUID, service_ids: list[uuid.UUID]
) -> None:
    await session.execute(delete(ServiceIncident).where(ServiceIncident.incident_id == incident_id))
    for sid in service_ids:
        session.add(ServiceIncident(service_id=sid, incident_id=incident_id))


async def enrich_incident(session: AsyncSession, incident: Incident) -> IncidentRead:
    """Convert an Incident row to IncidentRead with services and updates."""
    updates = await get_updates(session, incident.id)
    if incident.resolved_at is not None:
        # Updates after resolution are commentary
        status = IncidentStatus.RESOLVED
    elif updates:
        status = IncidentStatus(updates[0].status)
    else:
        status = IncidentStatus.INVESTIGATING
    return IncidentRead(
        id=incident.id,
        organization_id=incident.organization_id,
        title=incident.title,
        description=incident.description,
        impact=incident.impact,
        status=status,
        service_ids=await get_service_ids(session, incident.id),
        updates=[IncidentUpdateRead.model_validate(u) for u in updates],
        created_at=incident.created_at,
        resolved_at=incident.resolved_at,
    )


async def enrich_incidents(
    session: AsyncSession, incidents: Sequence[Incident]
) -> list[IncidentRead]:
    return [await enrich_incident(session, i) for i in incidents]


async def list_incidents(
    session: AsyncSession, org_id: uuid.UUID, open_only: bool = False
) -> list[Incident]:
    stmt = select(Incident).where(Incident.organization_id == org_id)
    if open_only:
        stmt = stmt.where(Incident.resolved_at.is_(None))
    result = await session.execute(stmt.order_by(Incident.created_at.desc()))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _apply_status(incident: Incident, status: IncidentStatus, at: datetime) -> None:
    if status.is_terminal and incident.resolved_at is None:
        incident.resolved_at = at


async def create_incident(
    session: AsyncSession,
    incident_in: IncidentCreate,
    org_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> tuple[Incident, IncidentUpdate]:
    """Open an incident together with its first update."""
    now = now or utcnow()
    service_ids = await require_services(session, org_id, incident_in.service_ids)

    incident = Incident(
        organization_id=org_id,
        title=incident_in.title,
        description=incident_in.description,
        impact=incident_in.impact.value,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    session.add(incident)
    await session.flush()

    await _set_services(session, incident.id, service_ids)
    update = IncidentUpdate(
        incident_id=incident.id,
        status=incident_in.status.value,
        message=incident_in.message,
        created_at=now,
        created_by=actor_id,
    )
    session.add(update)
    _apply_status(incident, incident_in.status, now)
    session.add(incident)
    await session.flush()

    log.info(
        "incident.created",
        incident_id=str(incident.id),
        org_id=str(org_id),
        impact=incident.impact,
        services=len(service_ids),
    )
    return incident, update


async def add_incident_update(
    session: AsyncSession,
    incident: Incident,
    update_in: IncidentUpdateCreate,
    actor_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> IncidentUpdate:
    """Append a lifecycle step. Any phase may follow any other."""
    now = now or utcnow()
    if incident.resolved_at is not None and not update_in.status.is_terminal:
        log.info(
            "incident.update_after_resolution",
            incident_id=str(incident.id),
            status=update_in.status.value,
        )

    update = IncidentUpdate(
        incident_id=incident.id,
        status=update_in.status.value,
        message=update_in.message,
        created_at=now,
        created_by=actor_id,
    )
    session.add(update)
    _apply_status(incident, update_in.status, now)
    incident.updated_at = now
    session.add(incident)
    await session.flush()

    log.info(
        "incident.updated",
        incident_id=str(incident.id),
        update_id=str(update.id),
        status=update.status,
    )
    return update


async def update_incident(
    session: AsyncSession,
    incident: Incident,
    edit_in: IncidentEdit,
) -> list[uuid.UUID]:
    """Edit title/description/impact/services. Returns every service to recompute.

    History is not rewritten: only the projection from now on changes.
    """
    data = edit_in.model_dump(exclude_unset=True)
    affected = set(await get_service_ids(session, incident.id))

    if "service_ids" in data:
        new_ids = await require_services(
            session, incident.organization_id, data.pop("service_ids") or []
        )
        await _set_services(session, incident.id, new_ids)
        affected.update(new_ids)

    if data.get("impact") is not None:
        data["impact"] = edit_in.impact.value

    for key, value in data.items():
        if value is not None or key == "description":
            setattr(incident, key, value)

    incident.updated_at = utcnow()
    session.add(incident)
    await session.flush()
    return sorted(affected)


async def delete_incident(session: AsyncSession, incident: Incident) -> list[uuid.UUID]:
    """Delete an incident and its updates. Status history is left untouched.

    Returns the previously affected services, which must be recomputed.
    """
    affected = await get_service_ids(session, incident.id)
    update_ids = select(IncidentUpdate.id).where(IncidentUpdate.incident_id == incident.id)

    await session.execute(
        delete(NotificationDelivery).where(NotificationDelivery.incident_update_id.in_(update_ids))
    )
    await session.execute(
        delete(NotificationDispatch).where(NotificationDispatch.incident_update_id.in_(update_ids))
    )
    await session.execute(delete(IncidentUpdate).where(IncidentUpdate.incident_id == incident.id))
    await session.execute(delete(ServiceIncident).where(ServiceIncident.incident_id == incident.id))
    await session.delete(incident)
    await session.flush()

    log.info("incident.deleted", incident_id=str(incident.id), services=len(affected))
    return affected
