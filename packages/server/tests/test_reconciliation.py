"""
Tests for the ARQ background jobs.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlmodel import select

from app.models.base import utcnow
from app.models.status_log import StatusLogEntry
from app.services import incidents as incident_service
from app.services import maintenances as maintenance_service
from app.tasks import reconciliation
from heystatus_shared.schemas.common import Impact
from heystatus_shared.schemas.incidents import IncidentCreate
from heystatus_shared.schemas.maintenances import MaintenanceCreate


@pytest.fixture(autouse=True)
def worker_session_factory(monkeypatch, session_factory, dispatcher):
    monkeypatch.setattr(reconciliation, "async_session_factory", session_factory)
    monkeypatch.setattr(reconciliation, "get_dispatcher", lambda: dispatcher)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_repairs_two_open_intervals(self, session, make_service):
        now = utcnow()
        service = await make_service(created=now - timedelta(hours=2))
        await session.execute(text("DROP INDEX uq_status_log_entries_open_interval"))
        session.add(
            StatusLogEntry(
                service_id=service.id,
                status="partial_outage",
                started_at=now - timedelta(hours=1),
            )
        )
        await session.commit()

        result = await reconciliation.reconcile_status_logs({})
        assert result["repaired"] == 1

        open_entries = (
            await session.execute(
                select(StatusLogEntry).where(
                    StatusLogEntry.service_id == service.id,
                    StatusLogEntry.ended_at.is_(None),
                )
            )
        ).scalars().all()
        assert len(open_entries) == 1
        # Nothing affects the service, so the projection closes the outage too
        assert open_entries[0].status == "operational"

    @pytest.mark.asyncio
    async def test_consistent_services_untouched(self, make_service):
        await make_service(created=utcnow() - timedelta(hours=1))
        result = await reconciliation.reconcile_status_logs({})
        assert result == {"repaired": 0, "transitions": 0}


class TestMaintenanceSync:
    @pytest.mark.asyncio
    async def test_window_opening_reaches_status(self, session, org, make_service):
        now = utcnow()
        service = await make_service(created=now - timedelta(hours=1))
        await maintenance_service.create_maintenance(
            session,
            MaintenanceCreate(
                title="Patch",
                impact=Impact.CRITICAL,
                start_time=now - timedelta(minutes=1),
                end_time=now + timedelta(hours=1),
                service_ids=[service.id],
            ),
            org.id,
            now=now - timedelta(minutes=30),
        )
        await session.commit()

        assert await reconciliation.sync_maintenance_phases({}) == 1
        await session.refresh(service)
        assert service.current_status == "major_outage"

        # A second run inside the same look-back window changes nothing
        assert await reconciliation.sync_maintenance_phases({}) == 0


class TestRedispatch:
    @pytest.mark.asyncio
    async def test_unclaimed_updates_dispatched_once(
        self, session, org, make_service, make_subscribers, mail_sender
    ):
        service = await make_service()
        await make_subscribers("ops@example.com")
        await incident_service.create_incident(
            session,
            IncidentCreate(title="Down", service_ids=[service.id], message="Down"),
            org.id,
        )
        await session.commit()

        assert await reconciliation.redispatch_pending_notifications({}) == 1
        assert await reconciliation.redispatch_pending_notifications({}) == 0
        assert len(mail_sender.sent) == 1
