"""
Payment aggregate root and its status state machine.

pending -> succeeded | failed
succeeded -> refunded | partially_refunded
failed, refunded and partially_refunded are terminal.

The aggregate only mutates in-memory state; persistence belongs to the
application service.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    IllegalTransitionException,
    InvalidAmountException,
    InvalidStatusException,
)
from domain.payment.money import Money


class PaymentStatus(str, Enum):
    """Payment lifecycle states"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    @classmethod
    def parse(cls, value: object) -> "PaymentStatus":
        """Read a stored status; accepts the value or the member name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                member = cls.__members__.get(value.upper())
                if member is not None:
                    return member
        raise InvalidStatusException(value)

    @property
    def can_confirm(self) -> bool:
        return self is PaymentStatus.PENDING

    @property
    def can_refund(self) -> bool:
        return self is PaymentStatus.SUCCEEDED

    @property
    def is_complete(self) -> bool:
        return self in (
            PaymentStatus.SUCCEEDED,
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )

    @property
    def is_terminal(self) -> bool:
        return self in (
            PaymentStatus.FAILED,
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    Payment aggregate root.

    Business rules:
    1. Created in ``pending`` with a positive amount
    2. Status only changes through confirm / fail / refund
    3. Refunds never exceed the paid amount
    4. Terminal payments are kept for audit, never deleted
    """

    id: str
    order_id: str
    amount: Money
    status: PaymentStatus = PaymentStatus.PENDING
    provider: str = "stripe"
    external_transaction_id: Optional[str] = None  # checkout session id

    payment_intent_id: Optional[str] = None
    payment_method: Optional[str] = None
    checkout_url: Optional[str] = None
    failure_reason: Optional[str] = None
    refunded_amount: Optional[Money] = None

    processed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # optimistic concurrency token; 0 means never persisted
    version: int = 0

    def __post_init__(self):
        self.status = PaymentStatus.parse(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.processed_at = _ensure_utc(self.processed_at)

    @classmethod
    def create(
        cls,
        order_id: str,
        amount: Money,
        provider: str = "stripe",
        external_transaction_id: Optional[str] = None,
        *,
        payment_id: Optional[str] = None,
        checkout_url: Optional[str] = None,
    ) -> "Payment":
        if not order_id:
            raise DomainValidationException("Order id is required", field="order_id")
        if amount.is_zero():
            raise InvalidAmountException(f"Payment amount must be greater than zero: {amount}")
        return cls(
            id=payment_id or uuid.uuid4().hex,
            order_id=order_id,
            amount=amount,
            status=PaymentStatus.PENDING,
            provider=provider,
            external_transaction_id=external_transaction_id,
            checkout_url=checkout_url,
        )

    def confirm(self) -> None:
        """pending -> succeeded"""
        if not self.status.can_confirm:
            raise IllegalTransitionException(self.status.value, "confirm")
        self.status = PaymentStatus.SUCCEEDED
        self.failure_reason = None
        self._touch(processed=True)

    def fail(self, reason: Optional[str] = None) -> None:
        """pending -> failed"""
        if not self.status.can_confirm:
            raise IllegalTransitionException(self.status.value, "fail")
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self._touch(processed=True)

    def refund(self, partial_amount: Optional[Money] = None) -> Money:
        """
        succeeded -> refunded | partially_refunded

        Returns the amount that was refunded.
        """
        if not self.status.can_refund:
            raise IllegalTransitionException(self.status.value, "refund")

        if partial_amount is None:
            refund_amount = self.amount
        else:
            if partial_amount.is_zero():
                raise InvalidAmountException(
                    "Refund amount must be greater than zero", field="partial_amount"
                )
            if partial_amount.greater_than(self.amount):
                raise InvalidAmountException(
                    f"Refund {partial_amount} exceeds paid amount {self.amount}",
                    field="partial_amount",
                )
            refund_amount = partial_amount

        if refund_amount.less_than(self.amount):
            self.status = PaymentStatus.PARTIALLY_REFUNDED
        else:
            self.status = PaymentStatus.REFUNDED
        self.refunded_amount = refund_amount
        self._touch(processed=True)
        return refund_amount

    def is_complete(self) -> bool:
        return self.status.is_complete

    def attach_gateway_data(
        self,
        payment_intent_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> bool:
        """Record processor identifiers. Returns True if anything changed."""
        changed = False
        if payment_intent_id and payment_intent_id != self.payment_intent_id:
            self.payment_intent_id = payment_intent_id
            changed = True
        if payment_method and payment_method != self.payment_method:
            self.payment_method = payment_method
            changed = True
        if changed:
            self._touch()
        return changed

    def _touch(self, processed: bool = False) -> None:
        now = _utcnow()
        self.updated_at = now
        if processed:
            self.processed_at = now
