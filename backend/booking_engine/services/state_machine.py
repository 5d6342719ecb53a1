"""
Booking lifecycle transition table.

    soft-hold ──confirm──> confirmed ──check_in──> checked-in ──complete──> completed
        │                     │                        │
        ├──expire──> cancelled│                        │
        ├──────cancel─────────┴────────────────────────┴──> cancelled
        └──────no_show────────┴────────────────────────┴──> no-show

soft-hold may also check in directly; confirmed may complete without a
check-in. completed, cancelled and no-show are terminal.

This module only answers "is this move legal and where does it land".
Persisting the move (compare-and-swap on status) and the ledger side
effects live in booking_service.
"""

from typing import Optional

from booking_engine.core.errors import InvalidTransition
from booking_engine.models.booking import BookingStatus


class BookingEvent:
    CONFIRM = "confirm"
    EXPIRE = "expire"
    CHECK_IN = "check_in"
    COMPLETE = "complete"
    CANCEL = "cancel"
    NO_SHOW = "no_show"

    ALL = (CONFIRM, EXPIRE, CHECK_IN, COMPLETE, CANCEL, NO_SHOW)


# event -> (allowed source statuses, target status)
TRANSITIONS: dict[str, tuple[tuple[str, ...], str]] = {
    BookingEvent.CONFIRM: ((BookingStatus.SOFT_HOLD,), BookingStatus.CONFIRMED),
    BookingEvent.EXPIRE: ((BookingStatus.SOFT_HOLD,), BookingStatus.CANCELLED),
    BookingEvent.CHECK_IN: (
        (BookingStatus.SOFT_HOLD, BookingStatus.CONFIRMED),
        BookingStatus.CHECKED_IN,
    ),
    BookingEvent.COMPLETE: (
        (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN),
        BookingStatus.COMPLETED,
    ),
    BookingEvent.CANCEL: (BookingStatus.ACTIVE, BookingStatus.CANCELLED),
    BookingEvent.NO_SHOW: (BookingStatus.ACTIVE, BookingStatus.NO_SHOW),
}


def can_transition(current: str, event: str) -> bool:
    if event not in TRANSITIONS:
        return False
    sources, _ = TRANSITIONS[event]
    return current in sources


def next_status(current: str, event: str, booking_id: Optional[int] = None) -> str:
    """Target status for `event`, or raise InvalidTransition."""
    if event not in TRANSITIONS:
        raise InvalidTransition(
            f"Unknown booking event '{event}'",
            booking_id=booking_id,
            event=event,
        )
    sources, target = TRANSITIONS[event]
    if current not in sources:
        reason = "terminal_state" if current in BookingStatus.TERMINAL else "illegal_source"
        raise InvalidTransition(
            f"Cannot {event} a booking in status '{current}'",
            booking_id=booking_id,
            event=event,
            status=current,
            reason=reason,
        )
    return target


def allowed_events(current: str) -> list[str]:
    return [event for event in BookingEvent.ALL if can_transition(current, event)]
