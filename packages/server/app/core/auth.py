"""
Request context for org-scoped endpoints.

Authentication lives in the external identity layer in front of this
service. What reaches us is the org slug in the path and, optionally, the
acting user's id in the ``X-Actor-Id`` header; the id is recorded as
``created_by`` on incidents, updates and maintenances.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import DomainValidationError
from app.models.organization import Organization
from app.services.organizations import get_org


class OrgContext:
    """Container for the resolved org and the acting user, if any."""

    def __init__(self, org: Organization, actor_id: Optional[uuid.UUID]):
        self.org = org
        self.org_id = org.id
        self.actor_id = actor_id


def _parse_actor(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise DomainValidationError("X-Actor-Id must be a UUID") from None


async def get_org_context(
    orgSlug: str,
    x_actor_id: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> OrgContext:
    """Main org dependency: resolves the slug (404) and the actor header."""
    org = await get_org(orgSlug, session)
    return OrgContext(org, _parse_actor(x_actor_id))
