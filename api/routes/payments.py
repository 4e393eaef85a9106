"""
Payments API routes.

Checkout, webhook, refund and status endpoints on top of the application
service. Keep this thin: no SDK details here.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from api.dependencies import get_payment_service
from application.dtos.payments import CheckoutOrder, RefundCommand
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.exceptions import (
    MissingSignatureException,
    PaymentNotFoundException,
    WebhookProcessingException,
)


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _publish_events(service: PaymentService) -> None:
    """Drain the service's domain events into the log after a committed change."""
    for event in service.clear_events():
        logger.info(
            "payment_domain_event",
            event_type=type(event).__name__,
            domain_event_id=event.event_id,
            payment_id=event.payment_id,
            order_id=event.order_id,
        )


@router.post("/checkout", summary="Start checkout")
async def start_checkout(
    payload: CheckoutOrder,
    service: PaymentService = Depends(get_payment_service),
):
    session = await service.start_checkout(payload)
    return success_response(data=session.model_dump(mode="json"), message="Checkout session created")


@router.post("/webhooks/stripe", summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    service: PaymentService = Depends(get_payment_service),
):
    if not stripe_signature:
        logger.warning("webhook_signature_missing", provider="stripe")
        raise MissingSignatureException()

    raw_body = await request.body()
    try:
        outcome = await service.handle_provider_event(raw_body, stripe_signature)
    except PaymentNotFoundException as exc:
        # 5xx so the processor redelivers once the payment exists
        details = exc.details or {}
        raise WebhookProcessingException(
            details.get("event_id", ""), external_id=details.get("identifier", "")
        ) from exc
    _publish_events(service)

    # 200 acknowledges receipt, including no-op and unhandled events
    return success_response(data=outcome.model_dump(mode="json"), message="Webhook received")


@router.post("/refunds", summary="Refund payment")
async def refund_payment(
    payload: RefundCommand,
    service: PaymentService = Depends(get_payment_service),
):
    summary = await service.initiate_refund(payload.order_id, payload.partial_amount)
    _publish_events(service)
    return success_response(data=summary.model_dump(mode="json"), message="Refund processed")


@router.get("/orders/{order_id}", summary="Payment status of an order")
async def get_order_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    summary = await service.get_payment_summary(order_id)
    return success_response(data=summary.model_dump(mode="json"), message="Payment status")
