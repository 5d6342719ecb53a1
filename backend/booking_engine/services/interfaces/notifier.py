"""
Notification dispatcher interface.
Allows swapping delivery channels without touching booking logic.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class BookingNotification:
    """Snapshot of a booking at the moment a transition committed."""

    event: str  # confirmed, completed, cancelled
    booking_id: int
    trainer_id: int
    client_id: int
    studio_id: Optional[int]
    status: str
    scheduled_at: datetime

    @classmethod
    def from_booking(cls, event: str, booking) -> "BookingNotification":
        return cls(
            event=event,
            booking_id=booking.id,
            trainer_id=booking.trainer_id,
            client_id=booking.client_id,
            studio_id=booking.studio_id,
            status=booking.status,
            scheduled_at=booking.scheduled_at,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["scheduled_at"] = self.scheduled_at.isoformat()
        return data

    def log_fields(self) -> dict:
        """to_dict() keyed for structlog, which reserves `event` for the message."""
        data = self.to_dict()
        data["notification_event"] = data.pop("event")
        return data


class NotificationDispatcher(ABC):
    """
    Interface for notification channels.

    Implementations:
    - LogNotifier: writes the notification to the structured log
    - WebhookNotifier: POSTs the notification to an external sender

    Delivery is best-effort. Callers go through `dispatch_safely`, which
    never raises, so a channel outage can not fail a booking transition.
    """

    @abstractmethod
    async def send(self, notification: BookingNotification) -> None:
        """
        Deliver one notification.

        Args:
            notification: committed booking snapshot
        """
        pass

    async def close(self) -> None:
        """Release channel resources (connections, clients)."""
        pass
