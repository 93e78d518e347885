"""
Out-of-band system notifications for raised alerts.

Delivery is best effort. Notifiers raise NotificationDeliveryFailure and the
alert engine swallows it; nothing retries.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from sqlguard.core.config import Settings, get_settings
from sqlguard.core.errors import NotificationDeliveryFailure
from sqlguard.core.logger import get_logger

log = get_logger(__name__)


class SystemNotifier(Protocol):
    async def notify(self, title: str, body: str) -> None:
        ...

    async def aclose(self) -> None:
        ...


class NullNotifier:
    """Used when notifications are not authorized; drops everything."""

    async def notify(self, title: str, body: str) -> None:
        log.debug("Notifications disabled, dropping %r", title)

    async def aclose(self) -> None:
        return None


class WebhookNotifier:
    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport
        self._aclient: Optional[httpx.AsyncClient] = None

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._aclient

    async def notify(self, title: str, body: str) -> None:
        try:
            resp = await self._get_async_client().post(self.url, json={"title": title, "body": body})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryFailure(f"webhook delivery failed: {e}") from e

    async def aclose(self) -> None:
        if self._aclient is not None:
            await self._aclient.aclose()
            self._aclient = None


def build_notifier(settings: Optional[Settings] = None) -> SystemNotifier:
    settings = settings or get_settings()
    if settings.NOTIFICATIONS_ENABLED and settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL)
    return NullNotifier()
