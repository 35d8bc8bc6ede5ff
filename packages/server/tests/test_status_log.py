"""
Tests for the Status Log Store.

Covers:
- Seeding and the single-open-interval invariant
- Close/open as one append
- Repair of two open intervals (elder closed at the younger's start)
- Store-level guard (partial unique index)
"""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.core.errors import ConsistencyError
from app.models.status_log import StatusLogEntry
from app.services import status_log
from heystatus_shared.schemas.common import ServiceStatus

from conftest import at


async def _entries(session, service_id):
    result = await session.execute(
        select(StatusLogEntry)
        .where(StatusLogEntry.service_id == service_id)
        .order_by(StatusLogEntry.started_at)
    )
    return list(result.scalars().all())


class TestSeedAndAppend:
    @pytest.mark.asyncio
    async def test_new_service_has_one_operational_open_interval(self, session, make_service):
        service = await make_service(created=at(8))
        entries = await _entries(session, service.id)
        assert len(entries) == 1
        assert entries[0].status == ServiceStatus.OPERATIONAL.value
        assert entries[0].started_at == at(8)
        assert entries[0].ended_at is None

    @pytest.mark.asyncio
    async def test_append_closes_previous_interval(self, session, make_service):
        service = await make_service(created=at(8))
        await status_log.append_interval(
            session, service.id, ServiceStatus.PARTIAL_OUTAGE, at(9)
        )
        await session.commit()

        entries = await _entries(session, service.id)
        assert [e.status for e in entries] == ["operational", "partial_outage"]
        assert entries[0].ended_at == at(9)
        assert entries[1].started_at == at(9)
        assert entries[1].ended_at is None

        open_entry = await status_log.get_open_entry(session, service.id)
        assert open_entry.id == entries[1].id

    @pytest.mark.asyncio
    async def test_intervals_stay_contiguous(self, session, make_service):
        service = await make_service(created=at(8))
        for hour, status in [
            (9, ServiceStatus.DEGRADED_PERFORMANCE),
            (10, ServiceStatus.MAJOR_OUTAGE),
            (11, ServiceStatus.OPERATIONAL),
        ]:
            await status_log.append_interval(session, service.id, status, at(hour))
        await session.commit()

        entries = await _entries(session, service.id)
        assert len(entries) == 4
        for elder, younger in zip(entries, entries[1:]):
            assert elder.ended_at == younger.started_at
        assert sum(1 for e in entries if e.ended_at is None) == 1

    @pytest.mark.asyncio
    async def test_append_never_starts_before_open_interval(self, session, make_service):
        service = await make_service(created=at(8))
        entry = await status_log.append_interval(
            session, service.id, ServiceStatus.MAJOR_OUTAGE, at(7)
        )
        assert entry.started_at == at(8)

    @pytest.mark.asyncio
    async def test_history_newest_first(self, session, make_service):
        service = await make_service(created=at(8))
        await status_log.append_interval(session, service.id, ServiceStatus.MAJOR_OUTAGE, at(9))
        await session.commit()
        history = await status_log.service_history(session, service.id)
        assert [e.status for e in history] == ["major_outage", "operational"]


class TestOpenIntervalGuard:
    @pytest.mark.asyncio
    async def test_store_rejects_second_open_interval(self, session, make_service):
        service = await make_service(created=at(8))
        session.add(
            StatusLogEntry(service_id=service.id, status="major_outage", started_at=at(9))
        )
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()


class TestRepair:
    @pytest.fixture
    async def broken_service(self, session, make_service):
        """A service with two open intervals (index dropped to allow it)."""
        service = await make_service(created=at(8))
        await session.execute(text("DROP INDEX uq_status_log_entries_open_interval"))
        session.add(
            StatusLogEntry(service_id=service.id, status="partial_outage", started_at=at(9))
        )
        await session.commit()
        return service

    @pytest.mark.asyncio
    async def test_get_open_entry_detects_violation(self, session, broken_service):
        with pytest.raises(ConsistencyError):
            await status_log.get_open_entry(session, broken_service.id)

    @pytest.mark.asyncio
    async def test_repair_closes_elder_at_younger_start(self, session, broken_service):
        closed = await status_log.repair_open_intervals(session, broken_service.id)
        await session.commit()
        assert closed == 1

        entries = await _entries(session, broken_service.id)
        assert entries[0].status == "operational"
        assert entries[0].ended_at == at(9)
        assert entries[1].ended_at is None

    @pytest.mark.asyncio
    async def test_repair_is_noop_when_consistent(self, session, make_service):
        service = await make_service()
        assert await status_log.repair_open_intervals(session, service.id) == 0
