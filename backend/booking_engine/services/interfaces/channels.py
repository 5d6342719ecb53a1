"""
Notification channels: structured log (default) and HTTP webhook.
"""

import httpx

from booking_engine.core.logging import get_logger
from booking_engine.services.interfaces.notifier import BookingNotification, NotificationDispatcher

logger = get_logger(__name__)


class LogNotifier(NotificationDispatcher):
    """
    Log-only channel.

    Use when:
    - Development and tests
    - An external worker tails the log stream for delivery
    """

    async def send(self, notification: BookingNotification) -> None:
        logger.info("booking_notification", **notification.log_fields())


class WebhookNotifier(NotificationDispatcher):
    """
    POSTs each notification as JSON to the email/SMS sender service.

    Use when:
    - Delivery is owned by a separate service
    """

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.client = httpx.AsyncClient(timeout=timeout)

    async def send(self, notification: BookingNotification) -> None:
        response = await self.client.post(self.url, json=notification.to_dict())
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()
