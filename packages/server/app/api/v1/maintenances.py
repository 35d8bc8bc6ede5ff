"""
Scheduled maintenance endpoints.

Phase is derived from the window, so only writes that move the window or
the affected services trigger a recompute. Commentary updates do not.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import OrgContext, get_org_context
from app.core.database import get_session
from app.services import projector
from app.services.maintenances import (
    add_maintenance_update,
    complete_now,
    create_maintenance,
    delete_maintenance,
    update_maintenance,
    enrich_maintenance,
    enrich_maintenances,
    get_maintenance_or_404,
    get_service_ids,
    list_maintenances,
    start_now,
)
from heystatus_shared.schemas.maintenances import (
    MaintenanceCreate,
    MaintenanceEdit,
    MaintenanceRead,
    MaintenanceUpdateCreate,
    MaintenanceUpdateRead,
)

router = APIRouter()


@router.get("/", response_model=List[MaintenanceRead])
async def list_maintenances_endpoint(
    upcoming_only: bool = False,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    maintenances = await list_maintenances(session, ctx.org_id, upcoming_only=upcoming_only)
    return await enrich_maintenances(session, maintenances)


@router.post("/", response_model=MaintenanceRead, status_code=201)
async def create_maintenance_endpoint(
    maintenance_in: MaintenanceCreate,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Schedule a maintenance. A window that already began applies at once."""
    maintenance = await create_maintenance(session, maintenance_in, ctx.org_id, ctx.actor_id)
    service_ids = await get_service_ids(session, maintenance.id)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, service_ids)
    await session.refresh(maintenance)
    return await enrich_maintenance(session, maintenance)


@router.get("/{maintenance_id}", response_model=MaintenanceRead)
async def get_maintenance_endpoint(
    maintenance_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    return await enrich_maintenance(session, maintenance)


@router.patch("/{maintenance_id}", response_model=MaintenanceRead)
async def edit_maintenance_endpoint(
    maintenance_id: uuid.UUID,
    edit_in: MaintenanceEdit,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Edit details, window or services; end must stay after start."""
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    affected = await update_maintenance(session, maintenance, edit_in)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    await session.refresh(maintenance)
    return await enrich_maintenance(session, maintenance)


@router.post("/{maintenance_id}/start", response_model=MaintenanceRead)
async def start_maintenance_endpoint(
    maintenance_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Start now (only while scheduled)."""
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    affected = await start_now(session, maintenance)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    await session.refresh(maintenance)
    return await enrich_maintenance(session, maintenance)


@router.post("/{maintenance_id}/complete", response_model=MaintenanceRead)
async def complete_maintenance_endpoint(
    maintenance_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Complete now (only while in progress)."""
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    affected = await complete_now(session, maintenance)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    await session.refresh(maintenance)
    return await enrich_maintenance(session, maintenance)


@router.post(
    "/{maintenance_id}/updates", response_model=MaintenanceUpdateRead, status_code=201
)
async def add_update_endpoint(
    maintenance_id: uuid.UUID,
    update_in: MaintenanceUpdateCreate,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Post commentary; the phase is unaffected."""
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    update = await add_maintenance_update(session, maintenance, update_in, ctx.actor_id)
    await session.commit()
    return MaintenanceUpdateRead.model_validate(update)


@router.delete("/{maintenance_id}", status_code=204)
async def delete_maintenance_endpoint(
    maintenance_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    maintenance = await get_maintenance_or_404(session, maintenance_id, ctx.org_id)
    affected = await delete_maintenance(session, maintenance)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    return Response(status_code=204)
