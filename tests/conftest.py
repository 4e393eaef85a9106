"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that read application settings.
"""
import asyncio
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")

from decimal import Decimal

import pytest

from application.dtos.payments import (
    CheckoutSessionResult,
    CreateCheckoutSession,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from application.services.payment_service import PaymentService
from core.settings import PaymentRetry, PaymentSettings
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.exceptions import InvalidSignatureException
from domain.payment.money import Money
from infrastructure.unit_of_work import InMemoryUnitOfWork


VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """Gateway double: events are WebhookEvent JSON, signed by VALID_SIGNATURE."""

    provider = "stripe"

    def __init__(self) -> None:
        self.sessions: list[CreateCheckoutSession] = []
        self.refunds: list[RefundRequest] = []
        self.refund_error: Exception | None = None
        # seconds of simulated processor latency, lets concurrent calls interleave
        self.delay = 0.0
        self.closed = False

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSessionResult:
        self.sessions.append(req)
        n = len(self.sessions)
        if self.delay:
            await asyncio.sleep(self.delay)
        return CheckoutSessionResult(id=f"cs_test_{n}", url=f"https://checkout.stripe.test/cs_test_{n}")

    async def refund(self, req: RefundRequest) -> RefundResult:
        self.refunds.append(req)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.refund_error is not None:
            raise self.refund_error
        return RefundResult(refund_id=f"re_{len(self.refunds)}", status="succeeded", provider=self.provider)

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != VALID_SIGNATURE:
            raise InvalidSignatureException("No signatures found matching the expected signature", provider=self.provider)
        return WebhookEvent.model_validate_json(payload)

    async def aclose(self) -> None:
        self.closed = True


def make_event(kind: str, transaction_id: str | None = None, **fields) -> bytes:
    """Serialized normalized event as FakeGateway.parse_webhook expects it."""
    event = WebhookEvent(
        id=fields.pop("id", "evt_1"),
        type=fields.pop("type", f"test.{kind}"),
        provider="stripe",
        kind=kind,
        transaction_id=transaction_id,
        **fields,
    )
    return event.model_dump_json().encode("utf-8")


def seed_payment(store: dict, *, order_id: str = "order-1", amount: str = "11.98", status: str = "pending", **fields) -> Payment:
    """Put a persisted (version 1) payment straight into the in-memory store."""
    payment = Payment.create(
        order_id,
        Money.create(Decimal(amount)),
        external_transaction_id=fields.pop("external_transaction_id", f"cs_{order_id}"),
        checkout_url=fields.pop("checkout_url", f"https://checkout.stripe.test/cs_{order_id}"),
    )
    payment.status = PaymentStatus.parse(status)
    for name, value in fields.items():
        setattr(payment, name, value)
    payment.version = 1
    store[payment.id] = payment
    return payment


@pytest.fixture
def payment_store() -> dict:
    return {}


@pytest.fixture
def uow_factory(payment_store):
    def factory(**kwargs):
        return InMemoryUnitOfWork(payment_store, **kwargs)
    return factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(retry=PaymentRetry(max=2, base_backoff=0, max_backoff=0))


@pytest.fixture
def service(uow_factory, gateway, payment_settings) -> PaymentService:
    return PaymentService(uow_factory=uow_factory, gateway=gateway, settings=payment_settings)


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def seed(payment_store):
    def _seed(**kwargs) -> Payment:
        return seed_payment(payment_store, **kwargs)
    return _seed


@pytest.fixture
def valid_signature() -> str:
    return VALID_SIGNATURE
