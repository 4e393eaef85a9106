"""
Stripe Checkout adapter using the official stripe-python SDK.

Notes on SDK usage:
- Module-level helpers (``stripe.checkout.Session.create``,
  ``stripe.Refund.create``) accept the ``idempotency_key`` kwarg.
- Webhook verification uses ``stripe.Webhook.construct_event`` with the raw
  body and the ``Stripe-Signature`` header; the parsed body is never trusted
  before that call succeeds.
"""
from __future__ import annotations

from typing import Any, Optional

import stripe

from application.dtos.payments import (
    CheckoutSessionResult,
    CreateCheckoutSession,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import BusinessException
from domain.payment.exceptions import InvalidSignatureException, ProviderUnavailableException
from domain.payment.money import Money
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError
from shared.codes.payment_codes import EventKind


logger = get_logger(__name__)


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self, settings: Optional[PaymentSettings] = None):
        self._settings = settings or payment_settings
        super().__init__(
            timeout=self._settings.timeouts.total,
            retry={
                "max": self._settings.retry.max,
                "base": self._settings.retry.base_backoff,
                "max_backoff": self._settings.retry.max_backoff,
            },
        )
        if not self._settings.stripe.secret_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        stripe.api_key = self._settings.stripe.secret_key
        if self._settings.stripe.api_version:
            stripe.api_version = self._settings.stripe.api_version

    def _map_error(self, operation: str, exc: Exception) -> BusinessException:
        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
            return ProviderUnavailableException(f"Stripe unavailable during {operation}", provider=self.provider)
        if isinstance(exc, stripe.StripeError):
            return PaymentProviderError(
                exc.user_message or str(exc),
                provider=self.provider,
                provider_code=exc.code,
                details={"operation": operation},
            )
        return super()._map_error(operation, exc)

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSessionResult:
        checkout = self._settings.checkout
        metadata = dict(req.metadata)
        metadata.setdefault("order_id", req.order_id)
        session = await self._call(
            "create_checkout_session",
            stripe.checkout.Session.create,
            payment_method_types=list(checkout.payment_method_types),
            line_items=[
                {
                    "price_data": {
                        "currency": req.currency.lower(),
                        "product_data": {
                            "name": item.name,
                            **({"description": item.description} if item.description else {}),
                        },
                        "unit_amount": item.unit_amount,
                    },
                    "quantity": item.quantity,
                }
                for item in req.line_items
            ],
            mode="payment",
            success_url=req.success_url,
            cancel_url=req.cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            shipping_address_collection={"allowed_countries": list(checkout.allowed_countries)},
            idempotency_key=req.idempotency_key,
        )
        self._log("stripe_checkout_session_created", session_id=session["id"], order_id=req.order_id)
        return CheckoutSessionResult(
            id=str(session["id"]),
            url=str(session.get("url") or ""),
            payment_intent_id=session.get("payment_intent"),
        )

    async def refund(self, req: RefundRequest) -> RefundResult:
        payment_intent = req.payment_intent_id
        if not payment_intent:
            if not req.transaction_id:
                raise PaymentProviderError(
                    "Refund needs a payment intent or checkout session",
                    provider=self.provider,
                    details={"order_id": req.order_id},
                )
            session = await self._call(
                "retrieve_checkout_session",
                stripe.checkout.Session.retrieve,
                id=req.transaction_id,
            )
            payment_intent = session.get("payment_intent")
            if not payment_intent:
                raise PaymentProviderError(
                    "Checkout session has no payment intent",
                    provider=self.provider,
                    details={"order_id": req.order_id, "session_id": req.transaction_id},
                )

        refund = await self._call(
            "refund",
            stripe.Refund.create,
            payment_intent=payment_intent,
            amount=Money.create(req.amount, req.currency).to_minor_units(),
            metadata={"order_id": req.order_id, "reason": req.reason or ""},
            idempotency_key=req.idempotency_key,
        )
        self._log("stripe_refund_created", refund_id=refund["id"], order_id=req.order_id)
        return RefundResult(
            refund_id=str(refund["id"]),
            status=str(refund.get("status") or ""),
            provider=self.provider,
        )

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        secret = self._settings.stripe.webhook_secret
        if not secret:
            raise InvalidSignatureException("STRIPE__WEBHOOK_SECRET not configured", provider=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret,
                tolerance=self._settings.webhook.tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise InvalidSignatureException(str(exc), provider=self.provider) from exc
        return self._normalize(event)

    def _normalize(self, event: Any) -> WebhookEvent:
        event_type = str(event["type"])
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        kind = self._map_event_kind(event_type)

        transaction_id: Optional[str] = None
        payment_intent_id: Optional[str] = None
        failure_reason: Optional[str] = None
        method_types = obj.get("payment_method_types") or [None]

        if event_type.startswith("checkout.session."):
            transaction_id = obj.get("id")
            payment_intent_id = obj.get("payment_intent")
            if kind is EventKind.SESSION_COMPLETED and obj.get("payment_status") == "paid":
                kind = EventKind.SUCCEEDED
            if event_type == "checkout.session.expired":
                failure_reason = "Checkout session expired"
            elif kind is EventKind.FAILED:
                failure_reason = "Payment failed"
        elif event_type.startswith("payment_intent."):
            transaction_id = obj.get("id")
            payment_intent_id = obj.get("id")
            if kind is EventKind.FAILED:
                last_error = obj.get("last_payment_error") or {}
                failure_reason = last_error.get("message") or "Payment failed"
        elif event_type.startswith("charge.dispute."):
            transaction_id = obj.get("payment_intent")
            payment_intent_id = obj.get("payment_intent")

        return WebhookEvent(
            id=str(event["id"]),
            type=event_type,
            provider=self.provider,
            kind=kind,
            transaction_id=transaction_id,
            payment_intent_id=payment_intent_id,
            payment_method=method_types[0],
            failure_reason=failure_reason,
            payment_id=metadata.get("payment_id"),
            order_id=metadata.get("order_id"),
            data=dict(obj),
        )
