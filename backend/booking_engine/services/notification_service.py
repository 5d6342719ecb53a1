"""
Notification dispatcher factory and the best-effort send wrapper.
"""

from typing import Optional

from booking_engine.core.config import get_settings
from booking_engine.core.logging import get_logger
from booking_engine.services.interfaces.channels import LogNotifier, WebhookNotifier
from booking_engine.services.interfaces.notifier import BookingNotification, NotificationDispatcher

logger = get_logger(__name__)

# Transitions that notify the client
NOTIFY_EVENTS = ("confirmed", "completed", "cancelled")


def get_notifier_strategy() -> NotificationDispatcher:
    """
    Get configured notification channel.

    - log (default): LogNotifier
    - webhook: WebhookNotifier posting to NOTIFY_WEBHOOK_URL
    """
    settings = get_settings()
    if settings.NOTIFIER == "webhook" and settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL)
    return LogNotifier()


# Singleton instance
_notifier: Optional[NotificationDispatcher] = None


def get_notifier() -> NotificationDispatcher:
    """Get notification dispatcher singleton."""
    global _notifier
    if _notifier is None:
        _notifier = get_notifier_strategy()
    return _notifier


def set_notifier(notifier: Optional[NotificationDispatcher]) -> None:
    """Replace the singleton (tests, alternative wiring)."""
    global _notifier
    _notifier = notifier


async def close_notifier() -> None:
    global _notifier
    if _notifier is not None:
        await _notifier.close()
        _notifier = None


async def dispatch_safely(notification: BookingNotification) -> None:
    """Send and swallow failures: delivery never affects a transition."""
    if notification.event not in NOTIFY_EVENTS:
        return
    try:
        await get_notifier().send(notification)
    except Exception as e:
        logger.warning(
            "notification_failed",
            booking_id=notification.booking_id,
            notification_event=notification.event,
            error=str(e),
        )
