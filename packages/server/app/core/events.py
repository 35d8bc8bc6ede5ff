"""
Status-change events and read-model cache invalidation.

The projector emits one event per committed status transition. Events are
published on a Redis Pub/Sub channel for live consumers (status page
widgets, webhooks) and drop the organization's cached public feed so the
next read reflects the change.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog

from app.core.redis import get_redis

log = structlog.get_logger()

REDIS_PUBSUB_CHANNEL = "hs:events:pubsub"
FEED_CACHE_KEY_PREFIX = "hs:feed:"
EVENT_STATUS_CHANGED = "service.status_changed"


@dataclass(frozen=True)
class StatusTransition:
    """A committed change of a service's projected status."""

    service_id: UUID
    organization_id: UUID
    from_status: str
    to_status: str
    at: datetime
    reason: str = "recompute"  # recompute | manual | reconcile

    def to_payload(self) -> dict:
        return {
            "type": EVENT_STATUS_CHANGED,
            "org_id": str(self.organization_id),
            "service_id": str(self.service_id),
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "timestamp": self.at.isoformat(),
        }


def feed_cache_key(org_id: UUID) -> str:
    return f"{FEED_CACHE_KEY_PREFIX}{org_id}"


async def invalidate_feed(org_id: UUID) -> None:
    """Drop the cached public feed for an org."""
    redis = await get_redis()
    await redis.delete(feed_cache_key(org_id))


async def broadcast_status_change(transition: StatusTransition) -> None:
    """Invalidate the org's feed cache and publish the transition."""
    await invalidate_feed(transition.organization_id)
    redis = await get_redis()
    await redis.publish(REDIS_PUBSUB_CHANNEL, json.dumps(transition.to_payload()))
    log.info(
        EVENT_STATUS_CHANGED,
        service_id=str(transition.service_id),
        from_status=transition.from_status,
        to_status=transition.to_status,
        reason=transition.reason,
    )


async def refresh_feed(org_id: UUID) -> None:
    """Best-effort invalidation after a committed write; failures are logged."""
    try:
        await invalidate_feed(org_id)
    except Exception:
        log.exception("status_feed.invalidate_failed", org_id=str(org_id))
