"""
Organization lookup and creation, and subscriber sign-up.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import ConflictError, NotFoundError
from app.models.base import utcnow
from app.models.organization import Organization
from app.models.subscriber import Subscriber
from heystatus_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgUpdateRequest,
    SubscriberCreate,
)

log = structlog.get_logger()


async def _slug_taken(session: AsyncSession, slug: str) -> bool:
    existing = await session.execute(select(Organization.id).where(Organization.slug == slug))
    return existing.scalar_one_or_none() is not None


async def create_org(req: OrgCreateRequest, session: AsyncSession) -> Organization:
    if await _slug_taken(session, req.slug):
        raise ConflictError("Org slug already taken")

    org = Organization(name=req.name, slug=req.slug)
    session.add(org)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug)
    return org


async def get_org(org_slug: str, session: AsyncSession) -> Organization:
    """Get an org by slug; raises 404 if not found."""
    result = await session.execute(
        select(Organization).where(Organization.slug == org_slug)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFoundError("Organization not found")
    return org


async def update_org(
    org: Organization,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Rename an org; a new slug is re-validated for uniqueness."""
    if req.name is not None:
        org.name = req.name

    if req.slug is not None and req.slug != org.slug:
        if await _slug_taken(session, req.slug):
            raise ConflictError("Org slug already taken")
        log.info("org.slug_changed", org_id=str(org.id), old=org.slug, new=req.slug)
        org.slug = req.slug

    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.updated", org_id=str(org.id), slug=org.slug)
    return org


# ---------------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------------


async def subscribe(
    org: Organization, req: SubscriberCreate, session: AsyncSession
) -> Subscriber:
    existing = await session.execute(
        select(Subscriber).where(
            Subscriber.organization_id == org.id,
            Subscriber.email == req.email,
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("Email already subscribed")

    subscriber = Subscriber(organization_id=org.id, email=req.email)
    session.add(subscriber)
    await session.flush()
    log.info("subscriber.created", org_id=str(org.id), subscriber_id=str(subscriber.id))
    return subscriber


async def list_subscribers(org_id: uuid.UUID, session: AsyncSession) -> list[Subscriber]:
    result = await session.execute(
        select(Subscriber)
        .where(Subscriber.organization_id == org_id)
        .order_by(Subscriber.created_at)
    )
    return list(result.scalars().all())


async def unsubscribe(
    org_id: uuid.UUID, subscriber_id: uuid.UUID, session: AsyncSession
) -> None:
    subscriber = await session.get(Subscriber, subscriber_id)
    if not subscriber or subscriber.organization_id != org_id:
        raise NotFoundError("Subscriber not found")
    await session.delete(subscriber)
    await session.flush()
    log.info("subscriber.deleted", org_id=str(org_id), subscriber_id=str(subscriber_id))
