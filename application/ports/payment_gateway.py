"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    CheckoutSessionResult,
    CreateCheckoutSession,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment processors.

    Implementations are async, side-effect free beyond IO, and raise
    ProviderUnavailableException for transient failures and
    InvalidSignatureException when a webhook cannot be authenticated.
    """

    provider: str

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSessionResult: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent: ...

    async def aclose(self) -> None: ...
