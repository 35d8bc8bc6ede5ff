"""
Organization API endpoints.

POST   /api/v1/orgs                                  Create a new org
GET    /api/v1/orgs/{orgSlug}                        Get org details
PATCH  /api/v1/orgs/{orgSlug}                        Rename (slug re-validated)
POST   /api/v1/orgs/{orgSlug}/subscribers            Self-service subscription
GET    /api/v1/orgs/{orgSlug}/subscribers            List subscribers
DELETE /api/v1/orgs/{orgSlug}/subscribers/{id}       Unsubscribe
"""

from __future__ import annotations

import uuid
from typing import List

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import OrgContext, get_org_context
from app.core.database import get_session
from app.core.events import refresh_feed
from app.services import organizations as org_service
from heystatus_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgResponse,
    OrgUpdateRequest,
    SubscriberCreate,
    SubscriberRead,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization."""
    org = await org_service.create_org(body, session)
    await session.commit()
    await session.refresh(org)
    return OrgResponse.model_validate(org)


# ---------------------------------------------------------------------------
# Org-scoped routes (mounted under /orgs/{orgSlug})
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse)
async def get_org(ctx: OrgContext = Depends(get_org_context)):
    """Get org details."""
    return OrgResponse.model_validate(ctx.org)


@router_scoped.patch("", response_model=OrgResponse)
async def update_org(
    body: OrgUpdateRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Update org name or slug."""
    org = await org_service.update_org(ctx.org, body, session)
    await session.commit()
    await session.refresh(org)
    await refresh_feed(org.id)
    return OrgResponse.model_validate(org)


@router_scoped.post("/subscribers", response_model=SubscriberRead, status_code=201)
async def subscribe(
    body: SubscriberCreate,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    """Subscribe an email address to incident notifications."""
    subscriber = await org_service.subscribe(ctx.org, body, session)
    await session.commit()
    await session.refresh(subscriber)
    return SubscriberRead.model_validate(subscriber)


@router_scoped.get("/subscribers", response_model=List[SubscriberRead])
async def list_subscribers(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    subscribers = await org_service.list_subscribers(ctx.org_id, session)
    return [SubscriberRead.model_validate(s) for s in subscribers]


@router_scoped.delete("/subscribers/{subscriber_id}", status_code=204)
async def unsubscribe(
    subscriber_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    await org_service.unsubscribe(ctx.org_id, subscriber_id, session)
    await session.commit()
    return Response(status_code=204)
