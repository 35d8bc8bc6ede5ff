"""
Shared checks for the aggregation endpoints.

Aggregation reads are bounded by ``aggregation_timeout_seconds``; a query that
runs longer is cancelled and answered with 504. The aggregator is read-only,
so cancellation leaves nothing behind.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from fastapi import HTTPException

from app.core.config import get_settings
from app.core.errors import DomainValidationError
from heystatus_shared.schemas.services import DateWindow

log = structlog.get_logger()


def date_window(from_date: date, to_date: date) -> DateWindow:
    try:
        return DateWindow(from_date=from_date, to_date=to_date)
    except ValueError as exc:
        raise DomainValidationError(str(exc)) from None


def aggregation_timezone(tz: Optional[str]) -> str:
    name = tz or get_settings().aggregation_timezone
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise DomainValidationError(f"Unknown timezone '{name}'") from None
    return name


async def bounded(coro):
    try:
        return await asyncio.wait_for(coro, timeout=get_settings().aggregation_timeout_seconds)
    except asyncio.TimeoutError:
        log.warning("aggregator.timeout")
        raise HTTPException(status_code=504, detail="Aggregation timed out") from None
