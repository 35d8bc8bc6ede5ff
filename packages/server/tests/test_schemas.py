"""
Schema validation tests (no DB needed).
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from heystatus_shared.schemas.common import Impact, IncidentStatus
from heystatus_shared.schemas.incidents import IncidentCreate, IncidentUpdateCreate
from heystatus_shared.schemas.maintenances import MaintenanceCreate, MaintenanceEdit
from heystatus_shared.schemas.organizations import OrgCreateRequest, SubscriberCreate
from heystatus_shared.schemas.services import DateWindow


class TestMaintenanceSchemas:
    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            MaintenanceCreate(
                title="Upgrade",
                start_time=datetime(2026, 3, 1, 11, tzinfo=timezone.utc),
                end_time=datetime(2026, 3, 1, 10, tzinfo=timezone.utc),
            )

    def test_equal_bounds_rejected(self):
        t = datetime(2026, 3, 1, 10, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            MaintenanceCreate(title="Upgrade", start_time=t, end_time=t)

    def test_naive_times_are_utc(self):
        m = MaintenanceCreate(
            title="Upgrade",
            start_time=datetime(2026, 3, 1, 10),
            end_time=datetime(2026, 3, 1, 11),
        )
        assert m.start_time.tzinfo is not None
        assert m.start_time.utcoffset().total_seconds() == 0

    def test_edit_is_partial(self):
        edit = MaintenanceEdit(title="Renamed")
        assert edit.model_dump(exclude_unset=True) == {"title": "Renamed"}


class TestIncidentSchemas:
    def test_defaults(self):
        incident = IncidentCreate(title="Outage", message="Looking")
        assert incident.impact == Impact.NONE
        assert incident.status == IncidentStatus.INVESTIGATING
        assert incident.service_ids == []

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            IncidentUpdateCreate(status="escalated", message="x")

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError):
            IncidentUpdateCreate(status="resolved", message="")


class TestOrgSchemas:
    @pytest.mark.parametrize("slug", ["acme", "acme-cloud", "a1"])
    def test_valid_slugs(self, slug):
        assert OrgCreateRequest(name="Acme", slug=slug).slug == slug

    @pytest.mark.parametrize("slug", ["-acme", "acme-", "Acme", "ac me", "a"])
    def test_invalid_slugs(self, slug):
        with pytest.raises(ValidationError):
            OrgCreateRequest(name="Acme", slug=slug)

    def test_subscriber_email_normalised(self):
        assert SubscriberCreate(email="  Ops@Example.COM").email == "ops@example.com"

    def test_subscriber_email_shape(self):
        with pytest.raises(ValidationError):
            SubscriberCreate(email="not-an-email")


class TestDateWindow:
    def test_single_day(self):
        w = DateWindow(from_date=date(2026, 3, 1), to_date=date(2026, 3, 1))
        assert w.from_date == w.to_date

    def test_reversed(self):
        with pytest.raises(ValidationError):
            DateWindow(from_date=date(2026, 3, 2), to_date=date(2026, 3, 1))
