"""
Tests for the booking transition table.
"""

import pytest

from booking_engine.core.errors import InvalidTransition
from booking_engine.models.booking import BookingStatus
from booking_engine.services.state_machine import (
    BookingEvent,
    allowed_events,
    can_transition,
    next_status,
)


@pytest.mark.parametrize(
    "current,event,expected",
    [
        (BookingStatus.SOFT_HOLD, BookingEvent.CONFIRM, BookingStatus.CONFIRMED),
        (BookingStatus.SOFT_HOLD, BookingEvent.EXPIRE, BookingStatus.CANCELLED),
        (BookingStatus.SOFT_HOLD, BookingEvent.CHECK_IN, BookingStatus.CHECKED_IN),
        (BookingStatus.CONFIRMED, BookingEvent.CHECK_IN, BookingStatus.CHECKED_IN),
        (BookingStatus.CONFIRMED, BookingEvent.COMPLETE, BookingStatus.COMPLETED),
        (BookingStatus.CHECKED_IN, BookingEvent.COMPLETE, BookingStatus.COMPLETED),
        (BookingStatus.CHECKED_IN, BookingEvent.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingEvent.NO_SHOW, BookingStatus.NO_SHOW),
    ],
)
def test_legal_transitions(current, event, expected):
    assert next_status(current, event) == expected


@pytest.mark.parametrize("terminal", BookingStatus.TERMINAL)
@pytest.mark.parametrize("event", BookingEvent.ALL)
def test_terminal_states_reject_everything(terminal, event):
    with pytest.raises(InvalidTransition) as exc_info:
        next_status(terminal, event, booking_id=42)
    assert exc_info.value.booking_id == 42
    assert exc_info.value.context["reason"] == "terminal_state"


def test_soft_hold_cannot_complete():
    with pytest.raises(InvalidTransition) as exc_info:
        next_status(BookingStatus.SOFT_HOLD, BookingEvent.COMPLETE)
    assert exc_info.value.context["reason"] == "illegal_source"


def test_only_soft_hold_expires():
    assert not can_transition(BookingStatus.CONFIRMED, BookingEvent.EXPIRE)
    assert not can_transition(BookingStatus.CHECKED_IN, BookingEvent.EXPIRE)


def test_unknown_event_is_invalid():
    assert not can_transition(BookingStatus.CONFIRMED, "reschedule")
    with pytest.raises(InvalidTransition):
        next_status(BookingStatus.CONFIRMED, "reschedule")


def test_allowed_events():
    assert allowed_events(BookingStatus.SOFT_HOLD) == [
        BookingEvent.CONFIRM,
        BookingEvent.EXPIRE,
        BookingEvent.CHECK_IN,
        BookingEvent.CANCEL,
        BookingEvent.NO_SHOW,
    ]
    assert allowed_events(BookingStatus.CHECKED_IN) == [
        BookingEvent.COMPLETE,
        BookingEvent.CANCEL,
        BookingEvent.NO_SHOW,
    ]
    assert allowed_events(BookingStatus.COMPLETED) == []


def test_error_payload_is_structured():
    with pytest.raises(InvalidTransition) as exc_info:
        next_status(BookingStatus.CANCELLED, BookingEvent.CONFIRM, booking_id=5)
    payload = exc_info.value.to_dict()
    assert payload["kind"] == "InvalidTransition"
    assert payload["booking_id"] == 5
    assert payload["context"]["status"] == BookingStatus.CANCELLED
