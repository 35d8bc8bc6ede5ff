from enum import Enum


class ServiceStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED_PERFORMANCE = "degraded_performance"
    PARTIAL_OUTAGE = "partial_outage"
    MAJOR_OUTAGE = "major_outage"

    @property
    def label(self) -> str:
        return _SERVICE_STATUS_LABELS[self]

    @property
    def severity(self) -> int:
        return SERVICE_STATUS_ORDER.index(self)


# Ordered from least to most severe
SERVICE_STATUS_ORDER: list["ServiceStatus"] = [
    ServiceStatus.OPERATIONAL,
    ServiceStatus.DEGRADED_PERFORMANCE,
    ServiceStatus.PARTIAL_OUTAGE,
    ServiceStatus.MAJOR_OUTAGE,
]

_SERVICE_STATUS_LABELS = {
    ServiceStatus.OPERATIONAL: "Operational",
    ServiceStatus.DEGRADED_PERFORMANCE: "Degraded Performance",
    ServiceStatus.PARTIAL_OUTAGE: "Partial Outage",
    ServiceStatus.MAJOR_OUTAGE: "Major Outage",
}


def worst_status(statuses) -> ServiceStatus:
    """Most severe status of an iterable; operational when empty."""
    return max(statuses, key=lambda s: s.severity, default=ServiceStatus.OPERATIONAL)


class Impact(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class IncidentStatus(str, Enum):
    INVESTIGATING = "investigating"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self is IncidentStatus.RESOLVED


class MaintenancePhase(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_terminal(self) -> bool:
        return self is MaintenancePhase.COMPLETED


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
