"""
Status Aggregator: downtime and uptime over calendar-day windows.

Works directly on status log intervals. Any interval whose status is not
operational counts as downtime, whatever its severity. An open interval
runs until ``now``; days are cut in the reference timezone (UTC unless
configured otherwise). All functions are read-only, so callers can cancel
them (``asyncio.wait_for``) without leaving partial state.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.status_log import StatusLogEntry
from app.services import status_log
from heystatus_shared.schemas.common import ServiceStatus

Interval = tuple[datetime, datetime]


# ---------------------------------------------------------------------------
# Pure interval arithmetic
# ---------------------------------------------------------------------------


def day_bounds(day: date, tz: ZoneInfo) -> Interval:
    """UTC start/end of a local calendar day (23 or 25 hours across DST)."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def window_bounds(from_date: date, to_date: date, tz: ZoneInfo) -> Interval:
    return day_bounds(from_date, tz)[0], day_bounds(to_date, tz)[1]


def iter_days(from_date: date, to_date: date) -> Iterable[date]:
    day = from_date
    while day <= to_date:
        yield day
        day += timedelta(days=1)


def trailing_days(days: int, tz_name: str, now: datetime) -> tuple[date, date]:
    """The last ``days`` local calendar days, today included."""
    today = now.astimezone(ZoneInfo(tz_name)).date()
    return today - timedelta(days=days - 1), today


def count_by_day(
    instants: Iterable[datetime],
    from_date: date,
    to_date: date,
    tz: ZoneInfo,
) -> dict[date, int]:
    """Number of instants falling on each local day of the window."""
    counts = {day: 0 for day in iter_days(from_date, to_date)}
    for instant in instants:
        day = instant.astimezone(tz).date()
        if day in counts:
            counts[day] += 1
    return counts


def overlap_minutes(a: Interval, b: Interval) -> float:
    start = max(a[0], b[0])
    end = min(a[1], b[1])
    if end <= start:
        return 0.0
    return (end - start).total_seconds() / 60.0


def downtime_intervals(entries: Iterable[StatusLogEntry], now: datetime) -> list[Interval]:
    """Non-operational intervals, open ones closed at ``now``."""
    intervals = []
    for entry in entries:
        if entry.status == ServiceStatus.OPERATIONAL.value:
            continue
        end = entry.ended_at if entry.ended_at is not None else now
        if end > entry.started_at:
            intervals.append((entry.started_at, end))
    return intervals


def downtime_by_day(
    intervals: list[Interval],
    from_date: date,
    to_date: date,
    tz: ZoneInfo,
) -> dict[date, float]:
    """Minutes of downtime per calendar day; spanning intervals are split."""
    result: dict[date, float] = {}
    for day in iter_days(from_date, to_date):
        bounds = day_bounds(day, tz)
        result[day] = sum(overlap_minutes(interval, bounds) for interval in intervals)
    return result


def elapsed_minutes(window: Interval, now: datetime) -> float:
    """Length of the part of ``window`` that is not in the future."""
    return overlap_minutes(window, (window[0], min(window[1], now)))


def uptime_from(downtime_minutes: float, period_minutes: float) -> float:
    if period_minutes <= 0:
        return 100.0
    pct = 100.0 * (1.0 - downtime_minutes / period_minutes)
    return min(100.0, max(0.0, pct))


# ---------------------------------------------------------------------------
# Store-backed queries
# ---------------------------------------------------------------------------


async def _intervals(
    session: AsyncSession,
    service_id: uuid.UUID,
    window: Interval,
    now: datetime,
) -> list[Interval]:
    entries = await status_log.entries_overlapping(session, service_id, window[0], window[1])
    return downtime_intervals(entries, now)


async def daily_downtime(
    session: AsyncSession,
    service_id: uuid.UUID,
    from_date: date,
    to_date: date,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> dict[date, float]:
    """Downtime minutes for every day in ``[from_date, to_date]``."""
    now = now or utcnow()
    tz = ZoneInfo(tz_name)
    window = window_bounds(from_date, to_date, tz)
    intervals = await _intervals(session, service_id, window, now)
    return downtime_by_day(intervals, from_date, to_date, tz)


async def uptime_percentage(
    session: AsyncSession,
    service_id: uuid.UUID,
    from_date: date,
    to_date: date,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> float:
    """``100 * (1 - downtime / period)`` clamped to [0, 100].

    The period stops at ``now`` when the window reaches into the future; a
    window entirely in the future reports 100.
    """
    now = now or utcnow()
    tz = ZoneInfo(tz_name)
    window = window_bounds(from_date, to_date, tz)
    intervals = await _intervals(session, service_id, window, now)
    total = sum(overlap_minutes(interval, window) for interval in intervals)
    return uptime_from(total, elapsed_minutes(window, now))


async def daily_uptime(
    session: AsyncSession,
    service_id: uuid.UUID,
    from_date: date,
    to_date: date,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> dict[date, float]:
    """Uptime percentage per day (the status page history row)."""
    now = now or utcnow()
    tz = ZoneInfo(tz_name)
    downtime = await daily_downtime(session, service_id, from_date, to_date, tz_name, now)
    return {
        day: uptime_from(minutes, elapsed_minutes(day_bounds(day, tz), now))
        for day, minutes in downtime.items()
    }
