"""
Status Log Store: append-only ledger of per-service status intervals.

Invariant per service: intervals are contiguous and non-overlapping and
exactly one of them is open (``ended_at IS NULL``). Intervals are only ever
closed, never edited otherwise or deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_
from sqlmodel import select

from app.core.errors import ConsistencyError
from app.models.service import Service
from app.models.status_log import StatusLogEntry
from heystatus_shared.schemas.common import ServiceStatus

log = structlog.get_logger()


async def get_open_entries(
    session: AsyncSession, service_id: uuid.UUID
) -> list[StatusLogEntry]:
    """All open intervals for a service, eldest first (normally exactly one)."""
    result = await session.execute(
        select(StatusLogEntry)
        .where(
            StatusLogEntry.service_id == service_id,
            StatusLogEntry.ended_at.is_(None),
        )
        .order_by(StatusLogEntry.started_at, StatusLogEntry.id)
    )
    return list(result.scalars().all())


async def get_open_entry(
    session: AsyncSession, service_id: uuid.UUID
) -> Optional[StatusLogEntry]:
    """The single open interval; raises ConsistencyError if there are several."""
    entries = await get_open_entries(session, service_id)
    if len(entries) > 1:
        raise ConsistencyError(service_id, f"{len(entries)} open status intervals")
    return entries[0] if entries else None


async def seed_log(
    session: AsyncSession, service: Service, at: Optional[datetime] = None
) -> StatusLogEntry:
    """Open the first interval of a service: operational since creation."""
    entry = StatusLogEntry(
        service_id=service.id,
        status=ServiceStatus.OPERATIONAL.value,
        started_at=at or service.created_at,
    )
    session.add(entry)
    await session.flush()
    log.info("status_log.seeded", service_id=str(service.id))
    return entry


async def append_interval(
    session: AsyncSession,
    service_id: uuid.UUID,
    status: ServiceStatus,
    at: datetime,
) -> StatusLogEntry:
    """Close the open interval at ``at`` and open a new one with ``status``.

    Runs inside the caller's transaction; the close is flushed before the
    insert so the open-interval unique index is never violated mid-flush.
    """
    current = await get_open_entry(session, service_id)
    if current is not None:
        # A new interval never starts before the one it closes
        at = max(at, current.started_at)
        current.ended_at = at
        session.add(current)
        await session.flush()

    entry = StatusLogEntry(service_id=service_id, status=status.value, started_at=at)
    session.add(entry)
    await session.flush()
    return entry


async def repair_open_intervals(session: AsyncSession, service_id: uuid.UUID) -> int:
    """Close every elder open interval at the start of the next younger one.

    Returns the number of intervals closed. The youngest stays open.
    """
    entries = await get_open_entries(session, service_id)
    if len(entries) <= 1:
        return 0

    for elder, younger in zip(entries, entries[1:]):
        elder.ended_at = younger.started_at
        session.add(elder)
    await session.flush()

    repaired = len(entries) - 1
    log.warning(
        "status_log.repaired_open_intervals",
        service_id=str(service_id),
        closed=repaired,
    )
    return repaired


async def entries_overlapping(
    session: AsyncSession,
    service_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> list[StatusLogEntry]:
    """Intervals intersecting ``[start, end)``, oldest first."""
    result = await session.execute(
        select(StatusLogEntry)
        .where(
            StatusLogEntry.service_id == service_id,
            StatusLogEntry.started_at < end,
            or_(StatusLogEntry.ended_at.is_(None), StatusLogEntry.ended_at > start),
        )
        .order_by(StatusLogEntry.started_at)
    )
    return list(result.scalars().all())


async def service_history(
    session: AsyncSession,
    service_id: uuid.UUID,
    since: Optional[datetime] = None,
    limit: int = 200,
) -> list[StatusLogEntry]:
    """Intervals for display, newest first."""
    stmt = select(StatusLogEntry).where(StatusLogEntry.service_id == service_id)
    if since is not None:
        stmt = stmt.where(
            or_(StatusLogEntry.ended_at.is_(None), StatusLogEntry.ended_at > since)
        )
    stmt = stmt.order_by(StatusLogEntry.started_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
