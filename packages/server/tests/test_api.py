"""
Integration tests for the HTTP API.

Tests cover:
- Org creation, slug conflicts, subscribers
- Incident lifecycle end to end: status, log, notification
- Maintenance overrides and validation errors
- Public feed and history
- Analytics endpoints and their timeout
- Failure isolation: recompute errors after commit, Redis outages
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.core.config import get_settings
from app.services import aggregator, projector


@pytest.fixture
async def acme(client: AsyncClient):
    resp = await client.post("/api/v1/orgs", json={"name": "Acme", "slug": "acme"})
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
async def api_service(client: AsyncClient, acme):
    resp = await client.post("/api/v1/orgs/acme/services/", json={"name": "API"})
    assert resp.status_code == 201
    return resp.json()


class TestSystem:
    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_check(self, client: AsyncClient):
        """Ready endpoint pings the database and Redis."""
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "checks": {"database": "ok", "redis": "ok"},
        }

    @pytest.mark.asyncio
    async def test_api_root(self, client: AsyncClient):
        response = await client.get("/api/v1/")
        assert response.status_code == 200
        assert "/status/{slug}" in response.json()["endpoints"]

    @pytest.mark.asyncio
    async def test_security_and_request_headers(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "req-1"})
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Request-Id"] == "req-1"


class TestOrganizations:
    @pytest.mark.asyncio
    async def test_duplicate_slug_conflicts(self, client: AsyncClient, acme):
        resp = await client.post("/api/v1/orgs", json={"name": "Other", "slug": "acme"})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_slug_rejected(self, client: AsyncClient):
        resp = await client.post("/api/v1/orgs", json={"name": "Bad", "slug": "Not A Slug"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_org_is_404(self, client: AsyncClient):
        resp = await client.get("/api/v1/orgs/nope")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_rename(self, client: AsyncClient, acme):
        resp = await client.patch("/api/v1/orgs/acme", json={"name": "Acme Inc"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Acme Inc"

    @pytest.mark.asyncio
    async def test_subscribe_normalises_and_rejects_duplicates(self, client: AsyncClient, acme):
        resp = await client.post(
            "/api/v1/orgs/acme/subscribers", json={"email": " Ops@Example.com "}
        )
        assert resp.status_code == 201
        assert resp.json()["email"] == "ops@example.com"

        dup = await client.post("/api/v1/orgs/acme/subscribers", json={"email": "ops@example.com"})
        assert dup.status_code == 409

        listing = await client.get("/api/v1/orgs/acme/subscribers")
        assert [s["email"] for s in listing.json()] == ["ops@example.com"]

        gone = await client.delete(f"/api/v1/orgs/acme/subscribers/{resp.json()['id']}")
        assert gone.status_code == 204


class TestIncidentFlow:
    @pytest.mark.asyncio
    async def test_incident_lifecycle(
        self, client: AsyncClient, api_service, mail_sender, actor_headers
    ):
        await client.post("/api/v1/orgs/acme/subscribers", json={"email": "ops@example.com"})

        created = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Elevated errors",
                "impact": "critical",
                "service_ids": [api_service["id"]],
                "message": "Investigating",
            },
            headers=actor_headers,
        )
        assert created.status_code == 201
        incident = created.json()
        assert incident["status"] == "investigating"
        assert incident["resolved_at"] is None
        assert incident["updates"][0]["created_by"] == actor_headers["X-Actor-Id"]

        service = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert service.json()["current_status"] == "major_outage"
        assert mail_sender.sent[0]["subject"] == "New Incident: Elevated errors - Acme Status"

        resolved = await client.post(
            f"/api/v1/orgs/acme/incidents/{incident['id']}/updates",
            json={"status": "resolved", "message": "Fixed"},
        )
        assert resolved.status_code == 201

        service = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert service.json()["current_status"] == "operational"
        assert mail_sender.sent[1]["subject"] == "Update: Elevated errors - Acme Status"

        history = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}/history")
        statuses = [e["status"] for e in history.json()]
        assert statuses == ["operational", "major_outage", "operational"]
        assert sum(1 for e in history.json() if e["ended_at"] is None) == 1

        detail = await client.get(f"/api/v1/orgs/acme/incidents/{incident['id']}")
        assert detail.json()["resolved_at"] is not None

    @pytest.mark.asyncio
    async def test_invalid_enum_rejected(self, client: AsyncClient, api_service):
        resp = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={"title": "Bad", "impact": "apocalyptic", "message": "x"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_service_is_404(self, client: AsyncClient, acme):
        resp = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Ghost",
                "service_ids": ["7d0c1c9e-6f37-4d0e-9d7f-1d6f0d3b4a11"],
                "message": "x",
            },
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_incident_restores_status(self, client: AsyncClient, api_service):
        created = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Slow",
                "impact": "minor",
                "service_ids": [api_service["id"]],
                "message": "Slow responses",
            },
        )
        resp = await client.delete(f"/api/v1/orgs/acme/incidents/{created.json()['id']}")
        assert resp.status_code == 204

        service = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert service.json()["current_status"] == "operational"

    @pytest.mark.asyncio
    async def test_recompute_failure_does_not_fail_write(
        self, client: AsyncClient, api_service, monkeypatch
    ):
        other = (await client.post("/api/v1/orgs/acme/services/", json={"name": "Web"})).json()
        original = projector.recompute

        async def flaky_recompute(session, service_id, now=None):
            transition = await original(session, service_id, now)
            if str(service_id) == api_service["id"]:
                raise RuntimeError("lock timeout")
            return transition

        monkeypatch.setattr(projector, "recompute", flaky_recompute)

        created = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Partial failure",
                "impact": "critical",
                "service_ids": [api_service["id"], other["id"]],
                "message": "Investigating",
            },
        )
        assert created.status_code == 201
        assert created.json()["title"] == "Partial failure"
        assert sorted(created.json()["service_ids"]) == sorted([api_service["id"], other["id"]])

        failed = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert failed.json()["current_status"] == "operational"
        recomputed = await client.get(f"/api/v1/orgs/acme/services/{other['id']}")
        assert recomputed.json()["current_status"] == "major_outage"

        listing = await client.get("/api/v1/orgs/acme/incidents/")
        assert [i["title"] for i in listing.json()] == ["Partial failure"]

    @pytest.mark.asyncio
    async def test_bad_actor_header(self, client: AsyncClient, acme):
        resp = await client.get("/api/v1/orgs/acme", headers={"X-Actor-Id": "not-a-uuid"})
        assert resp.status_code == 422


class TestMaintenanceFlow:
    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, client: AsyncClient, api_service):
        now = datetime.now(timezone.utc)
        resp = await client.post(
            "/api/v1/orgs/acme/maintenances/",
            json={
                "title": "Backwards",
                "start_time": (now + timedelta(hours=2)).isoformat(),
                "end_time": (now + timedelta(hours=1)).isoformat(),
            },
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_start_and_complete_now(self, client: AsyncClient, api_service):
        now = datetime.now(timezone.utc)
        created = await client.post(
            "/api/v1/orgs/acme/maintenances/",
            json={
                "title": "DB upgrade",
                "impact": "major",
                "start_time": (now + timedelta(hours=1)).isoformat(),
                "end_time": (now + timedelta(hours=2)).isoformat(),
                "service_ids": [api_service["id"]],
            },
        )
        assert created.status_code == 201
        maintenance = created.json()
        assert maintenance["phase"] == "scheduled"

        premature = await client.post(
            f"/api/v1/orgs/acme/maintenances/{maintenance['id']}/complete"
        )
        assert premature.status_code == 422

        started = await client.post(f"/api/v1/orgs/acme/maintenances/{maintenance['id']}/start")
        assert started.status_code == 200
        assert started.json()["phase"] == "in_progress"
        service = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert service.json()["current_status"] == "partial_outage"

        note = await client.post(
            f"/api/v1/orgs/acme/maintenances/{maintenance['id']}/updates",
            json={"message": "Halfway there"},
        )
        assert note.status_code == 201

        completed = await client.post(
            f"/api/v1/orgs/acme/maintenances/{maintenance['id']}/complete"
        )
        assert completed.status_code == 200
        assert completed.json()["phase"] == "completed"
        service = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert service.json()["current_status"] == "operational"


class TestServices:
    @pytest.mark.asyncio
    async def test_manual_override(self, client: AsyncClient, api_service):
        resp = await client.patch(
            f"/api/v1/orgs/acme/services/{api_service['id']}",
            json={"current_status": "degraded_performance"},
        )
        assert resp.status_code == 200
        assert resp.json()["current_status"] == "degraded_performance"

        history = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}/history")
        assert [e["status"] for e in history.json()] == ["degraded_performance", "operational"]

    @pytest.mark.asyncio
    async def test_soft_delete_hides_service(self, client: AsyncClient, api_service):
        resp = await client.delete(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert resp.status_code == 204
        missing = await client.get(f"/api/v1/orgs/acme/services/{api_service['id']}")
        assert missing.status_code == 404
        listing = await client.get("/api/v1/orgs/acme/services/")
        assert listing.json() == []

    @pytest.mark.asyncio
    async def test_uptime_and_downtime(self, client: AsyncClient, api_service):
        today = datetime.now(timezone.utc).date()
        params = {"from": (today - timedelta(days=6)).isoformat(), "to": today.isoformat()}

        uptime = await client.get(
            f"/api/v1/orgs/acme/services/{api_service['id']}/uptime", params=params
        )
        assert uptime.status_code == 200
        assert uptime.json()["uptime_percentage"] == 100.0

        downtime = await client.get(
            f"/api/v1/orgs/acme/services/{api_service['id']}/downtime", params=params
        )
        assert downtime.status_code == 200
        body = downtime.json()
        assert len(body["downtime_minutes"]) == 7
        assert body["total_downtime_minutes"] == 0.0

    @pytest.mark.asyncio
    async def test_reversed_window_rejected(self, client: AsyncClient, api_service):
        resp = await client.get(
            f"/api/v1/orgs/acme/services/{api_service['id']}/uptime",
            params={"from": "2026-03-07", "to": "2026-03-01"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_timezone_rejected(self, client: AsyncClient, api_service):
        resp = await client.get(
            f"/api/v1/orgs/acme/services/{api_service['id']}/downtime",
            params={"from": "2026-03-01", "to": "2026-03-01", "tz": "Mars/Olympus"},
        )
        assert resp.status_code == 422


class TestPublicStatus:
    @pytest.mark.asyncio
    async def test_feed(self, client: AsyncClient, api_service):
        resp = await client.get("/api/v1/status/acme")
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "public, max-age=60"
        body = resp.json()
        assert body["status"] == {"indicator": "ok", "description": "All Systems Operational"}
        assert body["services"] == [{"name": "API", "status": "operational"}]

    @pytest.mark.asyncio
    async def test_feed_reflects_new_incident(self, client: AsyncClient, api_service):
        await client.get("/api/v1/status/acme")
        await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Errors",
                "impact": "major",
                "service_ids": [api_service["id"]],
                "message": "Looking",
            },
        )
        body = (await client.get("/api/v1/status/acme")).json()
        assert body["status"]["indicator"] == "error"
        assert body["incidents"][0]["title"] == "Errors"

    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient, api_service):
        resp = await client.get("/api/v1/status/acme/history", params={"days": 7})
        assert resp.status_code == 200
        body = resp.json()
        assert body["days"] == 7
        assert len(body["services"][0]["daily_uptime"]) == 7

    @pytest.mark.asyncio
    async def test_unknown_slug(self, client: AsyncClient):
        resp = await client.get("/api/v1/status/missing")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_history_survives_redis_outage(
        self, client: AsyncClient, api_service, monkeypatch
    ):
        async def unreachable():
            raise ConnectionError("redis down")

        monkeypatch.setattr("app.services.status_feed.get_redis", unreachable)

        history = await client.get("/api/v1/status/acme/history", params={"days": 7})
        assert history.status_code == 200
        body = history.json()
        assert len(body["services"][0]["daily_uptime"]) == 7
        assert body["services"][0]["average_uptime"] == 100.0
        assert body["recent_incidents"] == []

        feed = await client.get("/api/v1/status/acme")
        assert feed.status_code == 200
        assert feed.json()["status"]["indicator"] == "ok"

    @pytest.mark.asyncio
    async def test_history_lists_resolved_incidents(self, client: AsyncClient, api_service):
        created = await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Timeouts",
                "impact": "minor",
                "service_ids": [api_service["id"]],
                "message": "Looking",
            },
        )
        incident_id = created.json()["id"]
        await client.post(
            f"/api/v1/orgs/acme/incidents/{incident_id}/updates",
            json={"status": "resolved", "message": "Fixed"},
        )
        await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={"title": "Still open", "impact": "minor", "message": "Looking"},
        )

        body = (await client.get("/api/v1/status/acme/history", params={"days": 7})).json()
        assert [i["title"] for i in body["recent_incidents"]] == ["Timeouts"]
        assert body["recent_incidents"][0]["status"] == "resolved"
        assert body["recent_incidents"][0]["resolved_at"] is not None


class TestAnalytics:
    @pytest.mark.asyncio
    async def test_activity_counts(self, client: AsyncClient, api_service):
        await client.post(
            "/api/v1/orgs/acme/incidents/",
            json={
                "title": "Errors",
                "impact": "major",
                "service_ids": [api_service["id"]],
                "message": "Looking",
            },
        )
        start = datetime.now(timezone.utc) + timedelta(minutes=5)
        await client.post(
            "/api/v1/orgs/acme/maintenances/",
            json={
                "title": "Upgrade",
                "description": "Database upgrade",
                "start_time": start.isoformat(),
                "end_time": (start + timedelta(hours=1)).isoformat(),
                "service_ids": [api_service["id"]],
            },
        )

        resp = await client.get("/api/v1/orgs/acme/analytics", params={"days": 7})
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["daily"]) == 7
        assert body["to_date"] == body["daily"][-1]["day"]
        assert body["total_incidents"] == 1
        assert body["daily"][-1]["incidents"] == 1
        assert body["incidents_by_impact"] == {
            "none": 0,
            "minor": 0,
            "major": 1,
            "critical": 0,
        }
        assert body["services"] == [{"name": "API", "status": "partial_outage"}]

    @pytest.mark.asyncio
    async def test_window_is_bounded(self, client: AsyncClient, acme):
        resp = await client.get("/api/v1/orgs/acme/analytics", params={"days": 91})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_aggregation_timeout_is_504(
        self, client: AsyncClient, api_service, monkeypatch
    ):
        async def stalled(*args, **kwargs):
            await asyncio.sleep(1)
            return 100.0

        monkeypatch.setattr(get_settings(), "aggregation_timeout_seconds", 0.01)
        monkeypatch.setattr(aggregator, "uptime_percentage", stalled)

        resp = await client.get(
            f"/api/v1/orgs/acme/services/{api_service['id']}/uptime",
            params={"from": "2026-03-01", "to": "2026-03-07"},
        )
        assert resp.status_code == 504
        assert resp.json()["detail"] == "Aggregation timed out"
