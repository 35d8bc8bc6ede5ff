"""
Service catalogue: CRUD for the services an organization reports on.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete
from sqlmodel import select

from app.core.errors import NotFoundError
from app.models.assignments import ServiceIncident, ServiceMaintenance
from app.models.base import utcnow
from app.models.service import Service
from app.services import status_log
from heystatus_shared.schemas.services import ServiceCreate, ServiceUpdate

log = structlog.get_logger()


async def get_service_or_404(
    session: AsyncSession, service_id: uuid.UUID, org_id: uuid.UUID
) -> Service:
    service = await session.get(Service, service_id)
    if not service or service.organization_id != org_id or service.deleted_at is not None:
        raise NotFoundError("Service not found")
    return service


async def list_services(session: AsyncSession, org_id: uuid.UUID) -> list[Service]:
    result = await session.execute(
        select(Service)
        .where(Service.organization_id == org_id, Service.deleted_at.is_(None))
        .order_by(Service.name)
    )
    return list(result.scalars().all())


async def require_services(
    session: AsyncSession, org_id: uuid.UUID, service_ids: list[uuid.UUID]
) -> list[uuid.UUID]:
    """Validate that every id is a live service of the org; returns them de-duplicated."""
    wanted = list(dict.fromkeys(service_ids))
    if not wanted:
        return []
    result = await session.execute(
        select(Service.id).where(
            Service.id.in_(wanted),
            Service.organization_id == org_id,
            Service.deleted_at.is_(None),
        )
    )
    found = {row[0] for row in result.all()}
    missing = [sid for sid in wanted if sid not in found]
    if missing:
        raise NotFoundError(f"Service not found: {', '.join(str(m) for m in missing)}")
    return wanted


async def create_service(
    session: AsyncSession,
    service_in: ServiceCreate,
    org_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Service:
    """Create a service and open its first (operational) status interval."""
    now = now or utcnow()
    service = Service(
        organization_id=org_id,
        name=service_in.name,
        description=service_in.description,
        created_at=now,
        updated_at=now,
    )
    session.add(service)
    await session.flush()
    await status_log.seed_log(session, service, at=now)

    log.info("service.created", service_id=str(service.id), org_id=str(org_id))
    return service


async def update_service(
    session: AsyncSession, service: Service, service_in: ServiceUpdate
) -> Service:
    """Update name/description. Status overrides go through the projector."""
    data = service_in.model_dump(exclude_unset=True, exclude={"current_status"})
    for key, value in data.items():
        setattr(service, key, value)
    session.add(service)
    await session.flush()
    return service


async def delete_service(
    session: AsyncSession, service: Service, now: Optional[datetime] = None
) -> None:
    """Soft-delete: drop incident/maintenance associations, keep the history."""
    await session.execute(delete(ServiceIncident).where(ServiceIncident.service_id == service.id))
    await session.execute(
        delete(ServiceMaintenance).where(ServiceMaintenance.service_id == service.id)
    )
    service.deleted_at = now or utcnow()
    session.add(service)
    await session.flush()
    log.info("service.deleted", service_id=str(service.id))
