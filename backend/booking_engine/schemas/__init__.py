from booking_engine.schemas.availability import (
    RuleCreate, RuleUpdate, RuleResponse,
    OverrideCreate, OverrideResponse,
    ResolvedAvailabilityResponse, OpenSlotsResponse,
)
from booking_engine.schemas.booking import (
    BookingCreate, BookingResponse,
    ConfirmRequest, CancelRequest, NoShowRequest, CancellationPolicyResponse,
)
from booking_engine.schemas.ledger import BalanceResponse, GrantRequest, RefundRequest, LedgerEntryResponse
from booking_engine.schemas.service import ServiceCreate, ServiceResponse

__all__ = [
    "RuleCreate", "RuleUpdate", "RuleResponse",
    "OverrideCreate", "OverrideResponse",
    "ResolvedAvailabilityResponse", "OpenSlotsResponse",
    "BookingCreate", "BookingResponse",
    "ConfirmRequest", "CancelRequest", "NoShowRequest", "CancellationPolicyResponse",
    "BalanceResponse", "GrantRequest", "RefundRequest", "LedgerEntryResponse",
    "ServiceCreate", "ServiceResponse",
]
