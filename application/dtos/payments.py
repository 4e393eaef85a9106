"""
Payment DTOs (Pydantic v2) used at application boundaries.

Pydantic only enforces shapes and types here; business rules on checkout
orders live in ``application.services.checkout_validation``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.codes.payment_codes import EventKind


# ---- checkout ----

class CheckoutItem(BaseModel):
    product_ref: str
    unit_price: Decimal
    quantity: int
    name: Optional[str] = None
    description: Optional[str] = None


class CheckoutOrder(BaseModel):
    id: str
    items: list[CheckoutItem] = Field(default_factory=list)
    total: Optional[Decimal] = None  # client-declared; checked against items
    currency: str = "BRL"
    customer_id: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return (v or "").upper()


class CheckoutSession(BaseModel):
    external_transaction_id: str
    checkout_url: str
    payment_id: str


# ---- gateway requests/results ----

class GatewayLineItem(BaseModel):
    name: str
    unit_amount: int  # minor units
    quantity: int
    description: Optional[str] = None


class CreateCheckoutSession(BaseModel):
    order_id: str
    currency: str
    line_items: list[GatewayLineItem]
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None


class CheckoutSessionResult(BaseModel):
    id: str
    url: str
    payment_intent_id: Optional[str] = None


class RefundRequest(BaseModel):
    order_id: str
    amount: Decimal
    currency: str
    transaction_id: Optional[str] = None  # checkout session id
    payment_intent_id: Optional[str] = None
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str


class WebhookEvent(BaseModel):
    """Verified provider event normalized to what the orchestrator needs."""

    id: str
    type: str
    provider: str
    kind: EventKind = EventKind.UNHANDLED
    transaction_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payment_method: Optional[str] = None
    failure_reason: Optional[str] = None
    # from the metadata attached at checkout time
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)


# ---- refunds / status ----

class RefundCommand(BaseModel):
    order_id: str
    partial_amount: Optional[Decimal] = None


class PaymentSummary(BaseModel):
    payment_id: str
    order_id: str
    status: str
    amount: Decimal
    currency: str
    refunded_amount: Optional[Decimal] = None
    external_transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    failure_reason: Optional[str] = None


class WebhookOutcome(BaseModel):
    event_id: str
    event_type: str
    action: str  # confirmed | failed | refunded | attached | noop | unhandled
    payment_id: Optional[str] = None
