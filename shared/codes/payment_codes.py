"""
Payment specific codes and provider event mapping.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentCode(IntEnum):
    # Money / checkout validation (21xxx)
    INVALID_AMOUNT = 21000
    INVALID_CURRENCY = 21001
    CURRENCY_MISMATCH = 21002
    NEGATIVE_RESULT = 21003
    INVALID_FACTOR = 21004
    INVALID_PERCENTAGE = 21005
    INVALID_STATUS = 21006
    EMPTY_CART = 21007
    AMOUNT_MISMATCH = 21008

    # Lifecycle / state (22xxx)
    ILLEGAL_TRANSITION = 22000
    PAYMENT_ALREADY_EXISTS = 22001
    CONCURRENT_MODIFICATION = 22002

    # Lookup (23xxx)
    PAYMENT_NOT_FOUND = 23000

    # Provider/Network/Storage errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_UNAVAILABLE = 60001
    SIGNATURE_ERROR = 60002  # missing or invalid webhook signature
    STORAGE_UNAVAILABLE = 60004
    WEBHOOK_PROCESSING_FAILED = 60005


class EventKind(str, Enum):
    """Provider-agnostic meaning of an inbound webhook event."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISPUTED = "disputed"
    SESSION_COMPLETED = "session_completed"
    UNHANDLED = "unhandled"


# Provider event type -> internal kind. Anything missing is UNHANDLED.
# checkout.session.completed is resolved against payment_status by the adapter:
# "paid" means succeeded, otherwise (boleto) only gateway data is attached.
PROVIDER_EVENT_TO_KIND = {
    "stripe": {
        "checkout.session.completed": EventKind.SESSION_COMPLETED,
        "checkout.session.async_payment_succeeded": EventKind.SUCCEEDED,
        "checkout.session.async_payment_failed": EventKind.FAILED,
        "checkout.session.expired": EventKind.FAILED,
        "payment_intent.succeeded": EventKind.SUCCEEDED,
        "payment_intent.payment_failed": EventKind.FAILED,
        "charge.dispute.created": EventKind.DISPUTED,
    },
}
