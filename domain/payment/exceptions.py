"""
Payment domain exceptions.

Grouped by how callers react to them: validation and state errors are the
client's fault, not-found means a missing record, security errors reject a
webhook before any lookup, infrastructure errors are transient.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException, DomainValidationException
from shared.codes.payment_codes import PaymentCode


# ---- validation -----------------------------------------------------------

class InvalidAmountException(DomainValidationException):
    def __init__(self, message: str, *, field: str = "amount", details: Optional[dict] = None):
        super().__init__(
            message,
            field=field,
            details=details,
            code=PaymentCode.INVALID_AMOUNT,
            error_type="InvalidAmount",
        )


class InvalidCurrencyException(DomainValidationException):
    def __init__(self, currency: object):
        super().__init__(
            f"Currency must be a 3-letter code: {currency!r}",
            field="currency",
            details={"currency": str(currency)},
            code=PaymentCode.INVALID_CURRENCY,
            error_type="InvalidCurrency",
        )


class CurrencyMismatchException(DomainValidationException):
    def __init__(self, left: str, right: str):
        super().__init__(
            f"Incompatible currencies: {left} and {right}",
            field="currency",
            details={"left": left, "right": right},
            code=PaymentCode.CURRENCY_MISMATCH,
            error_type="CurrencyMismatch",
        )


class NegativeResultException(DomainValidationException):
    def __init__(self, minuend: str, subtrahend: str):
        super().__init__(
            f"Subtracting {subtrahend} from {minuend} would be negative",
            field="amount",
            details={"minuend": minuend, "subtrahend": subtrahend},
            code=PaymentCode.NEGATIVE_RESULT,
            error_type="NegativeResult",
        )


class InvalidFactorException(DomainValidationException):
    def __init__(self, factor: object):
        super().__init__(
            f"Multiplication factor must be >= 0: {factor}",
            field="factor",
            code=PaymentCode.INVALID_FACTOR,
            error_type="InvalidFactor",
        )


class InvalidPercentageException(DomainValidationException):
    def __init__(self, percentage: object):
        super().__init__(
            f"Percentage must be between 0 and 100: {percentage}",
            field="percentage",
            code=PaymentCode.INVALID_PERCENTAGE,
            error_type="InvalidPercentage",
        )


class InvalidStatusException(DomainValidationException):
    def __init__(self, value: object):
        super().__init__(
            f"Unknown payment status: {value!r}",
            field="status",
            details={"value": str(value)},
            code=PaymentCode.INVALID_STATUS,
            error_type="InvalidStatus",
        )


class EmptyCartException(DomainValidationException):
    def __init__(self, order_id: str):
        super().__init__(
            f"Order {order_id} has no line items",
            field="items",
            details={"order_id": order_id},
            code=PaymentCode.EMPTY_CART,
            error_type="EmptyCart",
        )


class AmountMismatchException(DomainValidationException):
    def __init__(self, order_id: str, declared: str, computed: str):
        super().__init__(
            f"Declared total {declared} does not match line items {computed}",
            field="total",
            details={"order_id": order_id, "declared": declared, "computed": computed},
            code=PaymentCode.AMOUNT_MISMATCH,
            error_type="AmountMismatch",
        )


# ---- state ----------------------------------------------------------------

class IllegalTransitionException(BusinessException):
    def __init__(self, current: str, action: str):
        super().__init__(
            code=PaymentCode.ILLEGAL_TRANSITION,
            message=f"Cannot {action} a payment in status {current}",
            error_type="IllegalTransition",
            details={"status": current, "action": action},
            field="status",
        )
        self.current = current
        self.action = action


class PaymentAlreadyExistsException(BusinessException):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            code=PaymentCode.PAYMENT_ALREADY_EXISTS,
            message=f"Order {order_id} already has an open payment ({status})",
            error_type="PaymentAlreadyExists",
            details={"order_id": order_id, "status": status},
        )


class ConcurrentModificationException(BusinessException):
    def __init__(self, payment_id: str, expected_version: int):
        super().__init__(
            code=PaymentCode.CONCURRENT_MODIFICATION,
            message=f"Payment {payment_id} was modified concurrently",
            error_type="ConcurrentModification",
            details={"payment_id": payment_id, "expected_version": expected_version},
        )


# ---- not found ------------------------------------------------------------

class PaymentNotFoundException(BusinessException):
    def __init__(self, identifier: str, *, event_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"identifier": identifier, **({"event_id": event_id} if event_id else {})},
        )


# ---- security -------------------------------------------------------------

WEBHOOK_REJECTED = "Webhook rejected"


class MissingSignatureException(BusinessException):
    def __init__(self):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=WEBHOOK_REJECTED,
            error_type="WebhookRejected",
        )


class InvalidSignatureException(BusinessException):
    """Signature verification failed.

    ``reason`` is kept for logs only; the public message is the same as for a
    missing signature.
    """

    def __init__(self, reason: str = "", *, provider: str = ""):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=WEBHOOK_REJECTED,
            error_type="WebhookRejected",
        )
        self.reason = reason
        self.provider = provider


# ---- infrastructure -------------------------------------------------------

class StorageUnavailableException(BusinessException):
    def __init__(self, message: str = "Payment storage unavailable"):
        super().__init__(
            code=PaymentCode.STORAGE_UNAVAILABLE,
            message=message,
            error_type="StorageUnavailable",
        )


class ProviderUnavailableException(BusinessException):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=PaymentCode.PROVIDER_UNAVAILABLE,
            message=message,
            error_type="ProviderUnavailable",
            details={"provider": provider},
        )


class WebhookProcessingException(BusinessException):
    def __init__(self, event_id: str = "", *, external_id: str = ""):
        details = {}
        if event_id:
            details["event_id"] = event_id
        if external_id:
            details["external_id"] = external_id
        super().__init__(
            code=PaymentCode.WEBHOOK_PROCESSING_FAILED,
            message="Webhook could not be processed",
            error_type="WebhookProcessingFailed",
            details=details or None,
        )
