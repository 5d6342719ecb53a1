"""
Structured error taxonomy for the scheduling core.

Services raise these instead of HTTPException so that non-HTTP callers
(the sweeper, scripts, tests) can branch on `kind`. The API layer maps each
kind to a status code in one place (see booking_engine.main).
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class: every error carries a kind, a booking id and context."""

    kind: str = "SchedulingError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        booking_id: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.booking_id = booking_id
        self.context = context

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "booking_id": self.booking_id,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }

    def __repr__(self) -> str:
        return f"<{self.kind}(booking_id={self.booking_id}, message={self.message!r})>"


class SlotUnavailable(SchedulingError):
    """Requested range is not inside a single resolved open interval."""

    kind = "SlotUnavailable"
    status_code = 409


class SlotConflict(SchedulingError):
    """Requested range overlaps an active booking for the trainer."""

    kind = "SlotConflict"
    status_code = 409


class InvalidTransition(SchedulingError):
    """Illegal state-machine move, or the status changed since it was read."""

    kind = "InvalidTransition"
    status_code = 409


class InsufficientCredits(SchedulingError):
    kind = "InsufficientCredits"
    status_code = 402


class AlreadySettled(SchedulingError):
    """Idempotent replay. Callers treat this as success."""

    kind = "AlreadySettled"
    status_code = 200


class NotFound(SchedulingError):
    kind = "NotFound"
    status_code = 404


class InvalidAvailability(SchedulingError):
    kind = "InvalidAvailability"
    status_code = 422


class PaymentRequired(SchedulingError):
    kind = "PaymentRequired"
    status_code = 402


class InvalidRefund(SchedulingError):
    """Refund with no debit behind it, or more than is left to return."""

    kind = "InvalidRefund"
    status_code = 422


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
