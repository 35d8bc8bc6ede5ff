# Table models, imported here so Alembic sees the full metadata.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .service import Service  # noqa: F401
from .incident import Incident, IncidentUpdate  # noqa: F401
from .maintenance import ScheduledMaintenance, MaintenanceUpdate  # noqa: F401
from .assignments import ServiceIncident, ServiceMaintenance  # noqa: F401
from .status_log import StatusLogEntry  # noqa: F401
from .subscriber import Subscriber  # noqa: F401
from .notification import NotificationDispatch, NotificationDelivery  # noqa: F401
