"""
Impact resolution and maintenance phase derivation.

Both are pure functions: no I/O, total over their inputs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Union

from heystatus_shared.schemas.common import (
    Impact,
    IncidentStatus,
    MaintenancePhase,
    ServiceStatus,
)

Phase = Union[IncidentStatus, MaintenancePhase]

IMPACT_TO_STATUS: dict[Impact, ServiceStatus] = {
    Impact.NONE: ServiceStatus.OPERATIONAL,
    Impact.MINOR: ServiceStatus.DEGRADED_PERFORMANCE,
    Impact.MAJOR: ServiceStatus.PARTIAL_OUTAGE,
    Impact.CRITICAL: ServiceStatus.MAJOR_OUTAGE,
}


def resolve_impact(impact: Impact, phase: Phase) -> ServiceStatus:
    """Service status implied by an incident or maintenance in ``phase``.

    Only the terminal phases (resolved, completed) neutralise the impact;
    callers decide which maintenances are relevant at all.
    """
    if phase.is_terminal:
        return ServiceStatus.OPERATIONAL
    return IMPACT_TO_STATUS[impact]


def maintenance_phase(start_time: datetime, end_time: datetime, now: datetime) -> MaintenancePhase:
    if now < start_time:
        return MaintenancePhase.SCHEDULED
    if now < end_time:
        return MaintenancePhase.IN_PROGRESS
    return MaintenancePhase.COMPLETED
