"""
Error taxonomy.

Caller-facing errors are HTTPException subclasses so the service layer can
raise them directly and FastAPI renders them. ConsistencyError and
DeliveryError never reach a caller: the first is repaired by reconciliation,
the second is recorded per subscriber by the notification dispatcher.
"""

from __future__ import annotations

from fastapi import HTTPException


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)


class DomainValidationError(HTTPException):
    """Request is well-formed but violates a domain rule (e.g. end <= start)."""

    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)


class ConsistencyError(Exception):
    """A StatusLogEntry invariant does not hold for a service."""

    def __init__(self, service_id, detail: str):
        self.service_id = service_id
        super().__init__(f"service {service_id}: {detail}")


class DeliveryError(Exception):
    """The mail collaborator refused or failed to deliver a message."""
