from booking_engine.models.availability import AvailabilityOverride, AvailabilityRule, TrainerSchedule
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.ledger import CreditAccount, LedgerEntry, LedgerReason
from booking_engine.models.service import Service

__all__ = [
    "TrainerSchedule", "AvailabilityRule", "AvailabilityOverride",
    "Booking", "BookingStatus",
    "CreditAccount", "LedgerEntry", "LedgerReason",
    "Service",
]
