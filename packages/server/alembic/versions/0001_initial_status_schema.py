"""Initial status page schema with status log guards and append-only updates.

Revision ID: 0001_initial_status_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_status_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def _ts(name: str, nullable: bool = False, default_now: bool = False) -> sa.Column:
    kwargs = {"server_default": sa.text("now()")} if default_now else {}
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Organizations and the service catalogue
    # -----------------------------------------------------------------------

    op.create_table(
        "organizations",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.CheckConstraint("slug = lower(slug)", name="ck_organizations_slug_lower"),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])

    op.create_table(
        "services",
        _uuid("id", primary_key=True),
        _uuid("organization_id", sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("current_status", sa.Text(), nullable=False, server_default="operational"),
        _ts("deleted_at", nullable=True),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.CheckConstraint(
            "current_status IN ('operational', 'degraded_performance', "
            "'partial_outage', 'major_outage')",
            name="ck_services_current_status",
        ),
    )
    op.create_index("ix_services_organization_id", "services", ["organization_id"])

    op.create_table(
        "subscribers",
        _uuid("id", primary_key=True),
        _uuid("organization_id", sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.UniqueConstraint("organization_id", "email", name="uq_subscribers_org_email"),
    )
    op.create_index("ix_subscribers_organization_id", "subscribers", ["organization_id"])

    # -----------------------------------------------------------------------
    # 2. Incidents and maintenances
    # -----------------------------------------------------------------------

    op.create_table(
        "incidents",
        _uuid("id", primary_key=True),
        _uuid("organization_id", sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("impact", sa.Text(), nullable=False, server_default="none"),
        _ts("resolved_at", nullable=True),
        _uuid("created_by", nullable=True),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.CheckConstraint(
            "impact IN ('none', 'minor', 'major', 'critical')", name="ck_incidents_impact"
        ),
    )
    op.create_index("ix_incidents_organization_id", "incidents", ["organization_id"])

    op.create_table(
        "incident_updates",
        _uuid("id", primary_key=True),
        _uuid("incident_id", sa.ForeignKey("incidents.id"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _ts("created_at", default_now=True),
        _uuid("created_by", nullable=True),
        sa.CheckConstraint(
            "status IN ('investigating', 'identified', 'monitoring', 'resolved')",
            name="ck_incident_updates_status",
        ),
    )
    op.create_index("ix_incident_updates_incident_id", "incident_updates", ["incident_id"])
    op.create_index("ix_incident_updates_created_at", "incident_updates", ["created_at"])

    op.create_table(
        "scheduled_maintenances",
        _uuid("id", primary_key=True),
        _uuid("organization_id", sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("impact", sa.Text(), nullable=False, server_default="none"),
        _ts("start_time"),
        _ts("end_time"),
        _uuid("created_by", nullable=True),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.CheckConstraint("end_time > start_time", name="ck_scheduled_maintenances_window"),
        sa.CheckConstraint(
            "impact IN ('none', 'minor', 'major', 'critical')",
            name="ck_scheduled_maintenances_impact",
        ),
    )
    op.create_index(
        "ix_scheduled_maintenances_organization_id", "scheduled_maintenances", ["organization_id"]
    )
    op.create_index("ix_scheduled_maintenances_start_time", "scheduled_maintenances", ["start_time"])
    op.create_index("ix_scheduled_maintenances_end_time", "scheduled_maintenances", ["end_time"])

    op.create_table(
        "maintenance_updates",
        _uuid("id", primary_key=True),
        _uuid("maintenance_id", sa.ForeignKey("scheduled_maintenances.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _ts("created_at", default_now=True),
        _uuid("created_by", nullable=True),
    )
    op.create_index(
        "ix_maintenance_updates_maintenance_id", "maintenance_updates", ["maintenance_id"]
    )

    # Junction tables (no extra attributes)
    op.create_table(
        "services_incidents",
        _uuid("service_id", sa.ForeignKey("services.id"), primary_key=True),
        _uuid("incident_id", sa.ForeignKey("incidents.id"), primary_key=True),
    )
    op.create_table(
        "services_scheduled_maintenances",
        _uuid("service_id", sa.ForeignKey("services.id"), primary_key=True),
        _uuid("maintenance_id", sa.ForeignKey("scheduled_maintenances.id"), primary_key=True),
    )

    # -----------------------------------------------------------------------
    # 3. Status log (at most one open interval per service)
    # -----------------------------------------------------------------------

    op.create_table(
        "status_log_entries",
        _uuid("id", primary_key=True),
        _uuid("service_id", sa.ForeignKey("services.id"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        _ts("started_at"),
        _ts("ended_at", nullable=True),
        sa.CheckConstraint(
            "ended_at IS NULL OR ended_at >= started_at", name="ck_status_log_entries_order"
        ),
    )
    op.create_index("ix_status_log_entries_service_id", "status_log_entries", ["service_id"])
    op.create_index("ix_status_log_entries_started_at", "status_log_entries", ["started_at"])
    op.create_index(
        "uq_status_log_entries_open_interval",
        "status_log_entries",
        ["service_id"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
    )

    # -----------------------------------------------------------------------
    # 4. Notification dispatch bookkeeping
    # -----------------------------------------------------------------------

    op.create_table(
        "notification_dispatches",
        _uuid("incident_update_id", sa.ForeignKey("incident_updates.id"), primary_key=True),
        _uuid("organization_id", sa.ForeignKey("organizations.id"), nullable=False),
        _ts("started_at", default_now=True),
        _ts("completed_at", nullable=True),
        sa.Column("sent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_notification_dispatches_organization_id",
        "notification_dispatches",
        ["organization_id"],
    )

    op.create_table(
        "notification_deliveries",
        _uuid("id", primary_key=True),
        _uuid(
            "incident_update_id",
            sa.ForeignKey("notification_dispatches.incident_update_id"),
            nullable=False,
        ),
        _uuid("subscriber_id", nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        _ts("attempted_at", default_now=True),
    )
    op.create_index(
        "ix_notification_deliveries_incident_update_id",
        "notification_deliveries",
        ["incident_update_id"],
    )
    op.create_index(
        "ix_notification_deliveries_subscriber_id", "notification_deliveries", ["subscriber_id"]
    )

    # -----------------------------------------------------------------------
    # 5. Append-only guards
    # -----------------------------------------------------------------------

    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_incident_update_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'Incident updates are append-only. UPDATE is not permitted.';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER incident_updates_append_only
        BEFORE UPDATE ON incident_updates
        FOR EACH ROW EXECUTE FUNCTION prevent_incident_update_mutation()
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION guard_status_log_entry()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'Status log entries cannot be deleted.';
            END IF;
            IF OLD.ended_at IS NOT NULL
               OR NEW.service_id IS DISTINCT FROM OLD.service_id
               OR NEW.status IS DISTINCT FROM OLD.status
               OR NEW.started_at IS DISTINCT FROM OLD.started_at THEN
                RAISE EXCEPTION 'Status log entries may only be closed, once.';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER status_log_entries_guard
        BEFORE UPDATE OR DELETE ON status_log_entries
        FOR EACH ROW EXECUTE FUNCTION guard_status_log_entry()
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS status_log_entries_guard ON status_log_entries")
    op.execute("DROP FUNCTION IF EXISTS guard_status_log_entry()")
    op.execute("DROP TRIGGER IF EXISTS incident_updates_append_only ON incident_updates")
    op.execute("DROP FUNCTION IF EXISTS prevent_incident_update_mutation()")

    # Drop tables in reverse dependency order
    op.drop_table("notification_deliveries")
    op.drop_table("notification_dispatches")
    op.drop_table("status_log_entries")
    op.drop_table("services_scheduled_maintenances")
    op.drop_table("services_incidents")
    op.drop_table("maintenance_updates")
    op.drop_table("scheduled_maintenances")
    op.drop_table("incident_updates")
    op.drop_table("incidents")
    op.drop_table("subscribers")
    op.drop_table("services")
    op.drop_table("organizations")
