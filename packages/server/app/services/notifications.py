"""
Notification Dispatcher: one email per subscriber for each incident update.

Dispatch runs after the update is committed and never inside the write
transaction. Each update is claimed once by inserting its
NotificationDispatch row; a second trigger for the same update finds the
claim and does nothing. Deliveries fan out over a bounded worker pool, and
a failing subscriber is recorded and skipped without affecting the others.
"""

from __future__ import annotations

import asyncio
import html
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import async_session_factory
from app.core.mail import MailSender, get_mail_sender
from app.models.base import utcnow
from app.models.incident import Incident, IncidentUpdate
from app.models.notification import NotificationDelivery, NotificationDispatch
from app.models.organization import Organization
from app.models.subscriber import Subscriber
from heystatus_shared.schemas.common import DeliveryStatus, IncidentStatus

log = structlog.get_logger()


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html_body: str


@dataclass(frozen=True)
class DispatchResult:
    incident_update_id: uuid.UUID
    sent: int
    failed: int


def render_notification(
    org: Organization,
    incident: Incident,
    update: IncidentUpdate,
    status_page_url: str,
    recipient: str,
    first_update: bool,
) -> RenderedMessage:
    """Subject and HTML body for one subscriber."""
    title = html.escape(incident.title)
    phase = IncidentStatus(update.status).label
    link = html.escape(status_page_url, quote=True)
    if first_update:
        subject = f"New Incident: {incident.title} - {org.name} Status"
        heading = f"New Incident: {title}"
    else:
        subject = f"Update: {incident.title} - {org.name} Status"
        heading = f"Update: {title}"

    body = (
        f"<h1>{heading}</h1>"
        f"<p><strong>Status:</strong> {html.escape(phase)}</p>"
        f"<p>{html.escape(update.message)}</p>"
        f'<p>Visit our <a href="{link}">status page</a> for more information.</p>'
        f"<p><small>You are receiving this because {html.escape(recipient)} "
        f"subscribed to {html.escape(org.name)} status updates.</small></p>"
    )
    return RenderedMessage(subject=subject, html_body=body)


class NotificationDispatcher:
    """Fans out incident updates to an organization's subscribers."""

    def __init__(
        self,
        session_factory: sessionmaker,
        mail_sender: MailSender,
        public_base_url: str,
        concurrency: int = 8,
    ):
        self._session_factory = session_factory
        self._mail_sender = mail_sender
        self._public_base_url = public_base_url.rstrip("/")
        self._concurrency = max(1, concurrency)

    async def notify(self, incident_update_id: uuid.UUID) -> Optional[DispatchResult]:
        """Run one dispatch cycle for an update.

        Returns None when the update is unknown or was already dispatched.
        """
        async with self._session_factory() as session:
            update = await session.get(IncidentUpdate, incident_update_id)
            if update is None:
                log.warning("notification.update_missing", update_id=str(incident_update_id))
                return None
            incident = await session.get(Incident, update.incident_id)
            org = (
                await session.get(Organization, incident.organization_id)
                if incident is not None
                else None
            )
            if incident is None or org is None:
                log.warning(
                    "notification.incident_missing",
                    update_id=str(incident_update_id),
                    incident_id=str(update.incident_id),
                )
                return None

            dispatch = NotificationDispatch(incident_update_id=update.id, organization_id=org.id)
            session.add(dispatch)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                log.info("notification.already_dispatched", update_id=str(incident_update_id))
                return None

            subscribers = await self._subscribers(session, org.id)
            first_update = await self._is_first_update(session, update)
            status_page_url = f"{self._public_base_url}/{org.slug}"
            messages = {
                sub.id: render_notification(
                    org, incident, update, status_page_url, sub.email, first_update
                )
                for sub in subscribers
            }

            outcomes = await self._fan_out(subscribers, messages)

            sent = failed = 0
            for sub, error in outcomes:
                session.add(
                    NotificationDelivery(
                        incident_update_id=update.id,
                        subscriber_id=sub.id,
                        email=sub.email,
                        status=(DeliveryStatus.FAILED if error else DeliveryStatus.SENT).value,
                        error=error,
                    )
                )
                if error:
                    failed += 1
                else:
                    sent += 1

            dispatch.completed_at = utcnow()
            dispatch.sent_count = sent
            dispatch.failed_count = failed
            session.add(dispatch)
            await session.commit()

        log.info(
            "notification.dispatched",
            update_id=str(incident_update_id),
            org_id=str(org.id),
            sent=sent,
            failed=failed,
        )
        return DispatchResult(incident_update_id=incident_update_id, sent=sent, failed=failed)

    async def _subscribers(self, session: AsyncSession, org_id: uuid.UUID) -> list[Subscriber]:
        result = await session.execute(
            select(Subscriber).where(Subscriber.organization_id == org_id)
        )
        return list(result.scalars().all())

    async def _is_first_update(self, session: AsyncSession, update: IncidentUpdate) -> bool:
        result = await session.execute(
            select(IncidentUpdate.id)
            .where(IncidentUpdate.incident_id == update.incident_id)
            .order_by(IncidentUpdate.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none() == update.id

    async def _fan_out(
        self,
        subscribers: list[Subscriber],
        messages: dict[uuid.UUID, RenderedMessage],
    ) -> list[tuple[Subscriber, Optional[str]]]:
        """Send concurrently; returns (subscriber, error or None) per subscriber."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def deliver(sub: Subscriber) -> tuple[Subscriber, Optional[str]]:
            message = messages[sub.id]
            async with semaphore:
                try:
                    await self._mail_sender.send([sub.email], message.subject, message.html_body)
                except Exception as exc:
                    log.warning(
                        "notification.delivery_failed",
                        subscriber_id=str(sub.id),
                        error=str(exc),
                    )
                    return sub, str(exc) or exc.__class__.__name__
            return sub, None

        return list(await asyncio.gather(*(deliver(sub) for sub in subscribers)))


async def pending_update_ids(session: AsyncSession, limit: int = 100) -> list[uuid.UUID]:
    """Incident updates that were never claimed by a dispatch cycle."""
    result = await session.execute(
        select(IncidentUpdate.id)
        .outerjoin(
            NotificationDispatch,
            NotificationDispatch.incident_update_id == IncidentUpdate.id,
        )
        .where(NotificationDispatch.incident_update_id.is_(None))
        .order_by(IncidentUpdate.created_at)
        .limit(limit)
    )
    return [row[0] for row in result.all()]


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency building the dispatcher from settings."""
    settings = get_settings()
    return NotificationDispatcher(
        session_factory=async_session_factory,
        mail_sender=get_mail_sender(),
        public_base_url=settings.public_base_url,
        concurrency=settings.notification_concurrency,
    )
