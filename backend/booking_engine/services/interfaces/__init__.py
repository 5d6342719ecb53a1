"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import BookingNotification, NotificationDispatcher
from .channels import LogNotifier, WebhookNotifier

__all__ = ['BookingNotification', 'NotificationDispatcher', 'LogNotifier', 'WebhookNotifier']
