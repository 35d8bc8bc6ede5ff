"""
Incident endpoints: create, lifecycle updates, edit, delete.

Every write follows the same order: commit the lifecycle change, settle the
affected services (recompute + feed refresh, each isolated), then schedule
the notification dispatch for the new update as a background task so mail
delivery never holds up or fails the response.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import OrgContext, get_org_context
from app.core.database import get_session
from app.services import projector
from app.services.incidents import (
    add_incident_update,
    create_incident,
    delete_incident,
    update_incident,
    enrich_incident,
    enrich_incidents,
    get_incident_or_404,
    get_service_ids,
    list_incidents,
)
from app.services.notifications import NotificationDispatcher, get_dispatcher
from heystatus_shared.schemas.incidents import (
    IncidentCreate,
    IncidentEdit,
    IncidentRead,
    IncidentUpdateCreate,
    IncidentUpdateRead,
)

router = APIRouter()


@router.get("/", response_model=List[IncidentRead])
async def list_incidents_endpoint(
    open_only: bool = False,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """List incidents, newest first; ``open_only`` hides resolved ones."""
    incidents = await list_incidents(session, ctx.org_id, open_only=open_only)
    return await enrich_incidents(session, incidents)


@router.post("/", response_model=IncidentRead, status_code=201)
async def create_incident_endpoint(
    incident_in: IncidentCreate,
    background: BackgroundTasks,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Open an incident with its first update."""
    incident, update = await create_incident(session, incident_in, ctx.org_id, ctx.actor_id)
    service_ids = await get_service_ids(session, incident.id)
    await session.commit()
    update_id = update.id

    # A failed recompute rolls the session back and expires loaded rows
    await projector.settle_services(session, ctx.org_id, service_ids)
    background.add_task(dispatcher.notify, update_id)
    await session.refresh(incident)
    return await enrich_incident(session, incident)


@router.get("/{incident_id}", response_model=IncidentRead)
async def get_incident_endpoint(
    incident_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    incident = await get_incident_or_404(session, incident_id, ctx.org_id)
    return await enrich_incident(session, incident)


@router.post("/{incident_id}/updates", response_model=IncidentUpdateRead, status_code=201)
async def add_update_endpoint(
    incident_id: uuid.UUID,
    update_in: IncidentUpdateCreate,
    background: BackgroundTasks,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Append a lifecycle step (any phase may follow any other)."""
    incident = await get_incident_or_404(session, incident_id, ctx.org_id)
    update = await add_incident_update(session, incident, update_in, ctx.actor_id)
    service_ids = await get_service_ids(session, incident.id)
    await session.commit()
    read = IncidentUpdateRead.model_validate(update)

    await projector.settle_services(session, ctx.org_id, service_ids)
    background.add_task(dispatcher.notify, read.id)
    return read


@router.patch("/{incident_id}", response_model=IncidentRead)
async def edit_incident_endpoint(
    incident_id: uuid.UUID,
    edit_in: IncidentEdit,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Edit details, impact or affected services; history is not rewritten."""
    incident = await get_incident_or_404(session, incident_id, ctx.org_id)
    affected = await update_incident(session, incident, edit_in)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    await session.refresh(incident)
    return await enrich_incident(session, incident)


@router.delete("/{incident_id}", status_code=204)
async def delete_incident_endpoint(
    incident_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Delete an incident; previously affected services are recomputed."""
    incident = await get_incident_or_404(session, incident_id, ctx.org_id)
    affected = await delete_incident(session, incident)
    await session.commit()

    await projector.settle_services(session, ctx.org_id, affected)
    return Response(status_code=204)
