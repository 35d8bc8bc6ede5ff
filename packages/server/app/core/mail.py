"""
Mail Sender collaborator.

The core only depends on the MailSender protocol. ResendMailSender talks to
a Resend-compatible HTTP API with httpx; any non-2xx answer or transport
error surfaces as DeliveryError.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from app.core.config import get_settings
from app.core.errors import DeliveryError

log = structlog.get_logger()


class MailSender(Protocol):
    async def send(self, to_addresses: list[str], subject: str, html_body: str) -> None:
        ...


class ResendMailSender:
    """Sends mail through a Resend-compatible ``POST /emails`` endpoint."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_address: str,
        timeout: float = 10.0,
    ):
        self._api_url = api_url
        self._api_key = api_key
        self._from_address = from_address
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, to_addresses: list[str], subject: str, html_body: str) -> None:
        await self.open()
        assert self._client
        try:
            resp = await self._client.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._from_address,
                    "to": to_addresses,
                    "subject": subject,
                    "html": html_body,
                },
            )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"mail transport error: {exc}") from exc

        if resp.status_code >= 300:
            raise DeliveryError(f"mail provider returned {resp.status_code}: {resp.text[:200]}")
        log.debug("mail.sent", to=to_addresses, subject=subject)


_mail_sender: ResendMailSender | None = None


def get_mail_sender() -> MailSender:
    """FastAPI dependency returning the process-wide mail sender."""
    global _mail_sender
    if _mail_sender is None:
        settings = get_settings()
        _mail_sender = ResendMailSender(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            from_address=settings.mail_from_address,
            timeout=settings.mail_timeout_seconds,
        )
    return _mail_sender


async def close_mail_sender() -> None:
    global _mail_sender
    if _mail_sender is not None:
        await _mail_sender.close()
        _mail_sender = None
