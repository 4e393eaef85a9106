"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port, the unit of
work abstraction and DTOs. Gateway and unit of work implementations are
provided by infrastructure and injected from the composition root (API),
keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib
import uuid
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import (
    CheckoutOrder,
    CheckoutSession,
    CreateCheckoutSession,
    GatewayLineItem,
    PaymentSummary,
    RefundRequest,
    WebhookEvent,
    WebhookOutcome,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_validation import validate_checkout_order
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.events import PaymentEvent, PaymentFailed, PaymentRefunded, PaymentSucceeded
from domain.payment.exceptions import (
    ConcurrentModificationException,
    IllegalTransitionException,
    InvalidAmountException,
    InvalidSignatureException,
    PaymentAlreadyExistsException,
    PaymentNotFoundException,
    StorageUnavailableException,
)
from domain.payment.money import Money
from domain.payment.repository import PaymentRepository
from shared.codes.payment_codes import EventKind


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


def _idempotency_key(*parts: object) -> str:
    # Stable, reproducible key derived from business identifiers (no timestamp)
    base = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _summary(payment: Payment) -> PaymentSummary:
    return PaymentSummary(
        payment_id=payment.id,
        order_id=payment.order_id,
        status=payment.status.value,
        amount=payment.amount.amount,
        currency=payment.amount.currency,
        refunded_amount=payment.refunded_amount.amount if payment.refunded_amount else None,
        external_transaction_id=payment.external_transaction_id,
        payment_method=payment.payment_method,
        failure_reason=payment.failure_reason,
    )


class PaymentService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: PaymentGateway,
        settings: Optional[PaymentSettings] = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.gateway = gateway
        self.settings = settings or payment_settings
        self.events: list[PaymentEvent] = []

    def clear_events(self) -> list[PaymentEvent]:
        """Return recorded domain events and forget them."""
        events, self.events = self.events, []
        return events

    # ---- checkout ----

    async def start_checkout(self, order: CheckoutOrder) -> CheckoutSession:
        validation = validate_checkout_order(order, tolerance=self.settings.amount_tolerance)
        if not validation.ok:
            logger.info("payment_checkout_rejected", order_id=order.id, reasons=validation.reasons)
            validation.raise_first()
        total = validation.total
        if total is None or total.is_zero():
            raise InvalidAmountException(f"Order {order.id} has nothing to charge", field="total")

        try:
            return await self._open_checkout(order, total)
        except ConcurrentModificationException:
            # the store allows one open payment per order; a concurrent checkout won
            logger.info("payment_checkout_raced", order_id=order.id)
            async with self.uow_factory(readonly=True) as uow:
                winner = await uow.payment_repository.get_by_order_id(order.id)
            reused = self._reuse_open_payment(order.id, winner, total)
            if reused is None:
                raise
            return reused

    def _reuse_open_payment(
        self, order_id: str, existing: Optional[Payment], total: Money
    ) -> Optional[CheckoutSession]:
        """Session of a reusable open payment, None when a new attempt is allowed."""
        if existing is None or existing.status.is_terminal:
            return None
        if existing.status is PaymentStatus.PENDING and existing.amount == total and existing.checkout_url:
            logger.info("payment_checkout_reused", order_id=order_id, payment_id=existing.id)
            return CheckoutSession(
                external_transaction_id=existing.external_transaction_id or "",
                checkout_url=existing.checkout_url,
                payment_id=existing.id,
            )
        raise PaymentAlreadyExistsException(order_id, existing.status.value)

    async def _open_checkout(self, order: CheckoutOrder, total: Money) -> CheckoutSession:
        async with self.uow_factory() as uow:
            existing = await uow.payment_repository.get_by_order_id(order.id)
            reused = self._reuse_open_payment(order.id, existing, total)
            if reused is not None:
                return reused

            payment_id = uuid.uuid4().hex
            metadata = {"order_id": order.id, "payment_id": payment_id}
            if order.customer_id:
                metadata["customer_id"] = order.customer_id
            request = CreateCheckoutSession(
                order_id=order.id,
                currency=total.currency,
                line_items=[
                    GatewayLineItem(
                        name=item.name or item.product_ref,
                        description=item.description,
                        unit_amount=Money.create(item.unit_price, total.currency).to_minor_units(),
                        quantity=item.quantity,
                    )
                    for item in order.items
                ],
                success_url=self.settings.checkout.success_url(),
                cancel_url=self.settings.checkout.cancel_url(order.id),
                metadata=metadata,
                # a new attempt after a terminal payment must not reuse the old session
                idempotency_key=_idempotency_key(
                    "checkout",
                    order.id,
                    total.amount,
                    total.currency,
                    self.gateway.provider,
                    existing.id if existing else None,
                ),
            )
            session = await self.gateway.create_checkout_session(request)

            payment = Payment.create(
                order.id,
                total,
                provider=self.gateway.provider,
                external_transaction_id=session.id,
                payment_id=payment_id,
                checkout_url=session.url,
            )
            payment.attach_gateway_data(payment_intent_id=session.payment_intent_id)
            await uow.payment_repository.save(payment)

        logger.info(
            "payment_checkout_created",
            order_id=order.id,
            payment_id=payment.id,
            session_id=session.id,
            amount=str(total),
        )
        return CheckoutSession(
            external_transaction_id=session.id,
            checkout_url=session.url,
            payment_id=payment.id,
        )

    # ---- webhooks ----

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "payment_operation_retry",
            attempt=state.attempt_number,
            error_type=getattr(exc, "error_type", type(exc).__name__),
        )

    async def _with_retry(self, fn: Callable[[], Awaitable], *retry_on: type[BaseException]):
        cfg = self.settings.retry
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(cfg.max + 1),
            wait=wait_exponential(multiplier=cfg.base_backoff, max=cfg.max_backoff),
            retry=retry_if_exception_type(retry_on),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def handle_provider_event(self, raw_payload: bytes, signature_header: str) -> WebhookOutcome:
        try:
            event = self.gateway.parse_webhook(raw_payload, signature_header)
        except InvalidSignatureException as exc:
            logger.warning("webhook_signature_invalid", provider=self.gateway.provider, reason=exc.reason)
            raise

        logger.info("webhook_event_received", event_id=event.id, event_type=event.type, kind=event.kind.value)

        if event.kind is EventKind.UNHANDLED:
            logger.info("webhook_event_unhandled", event_id=event.id, event_type=event.type)
            return WebhookOutcome(event_id=event.id, event_type=event.type, action="unhandled")

        return await self._with_retry(
            lambda: self._apply_event(event),
            ConcurrentModificationException,
            StorageUnavailableException,
        )

    async def _find_payment(self, repo: PaymentRepository, event: WebhookEvent) -> Optional[Payment]:
        for external_id in (event.transaction_id, event.payment_intent_id):
            if external_id:
                payment = await repo.get_by_external_id(external_id)
                if payment is not None:
                    return payment
        if event.payment_id:
            return await repo.get_by_id(event.payment_id)
        return None

    async def _apply_event(self, event: WebhookEvent) -> WebhookOutcome:
        recorded: list[PaymentEvent] = []
        async with self.uow_factory() as uow:
            payment = await self._find_payment(uow.payment_repository, event)
            if payment is None:
                identifier = event.transaction_id or event.payment_intent_id or event.payment_id or event.id
                logger.error(
                    "webhook_payment_not_found",
                    event_id=event.id,
                    event_type=event.type,
                    external_id=identifier,
                )
                raise PaymentNotFoundException(identifier, event_id=event.id)

            action, changed = self._dispatch(payment, event, recorded)
            if changed:
                await uow.payment_repository.save(payment)

        self.events.extend(recorded)
        logger.info(
            "webhook_event_processed",
            event_id=event.id,
            event_type=event.type,
            payment_id=payment.id,
            action=action,
            status=payment.status.value,
        )
        return WebhookOutcome(event_id=event.id, event_type=event.type, action=action, payment_id=payment.id)

    def _dispatch(self, payment: Payment, event: WebhookEvent, recorded: list[PaymentEvent]) -> tuple[str, bool]:
        attached = payment.attach_gateway_data(
            payment_intent_id=event.payment_intent_id,
            payment_method=event.payment_method,
        )
        fallback = ("attached", True) if attached else ("noop", False)
        base = dict(
            payment_id=payment.id,
            order_id=payment.order_id,
            provider=payment.provider,
            amount=str(payment.amount),
        )

        if event.kind is EventKind.SESSION_COMPLETED:
            return fallback

        try:
            if event.kind is EventKind.SUCCEEDED:
                payment.confirm()
                recorded.append(PaymentSucceeded(**base))
                return "confirmed", True
            if event.kind is EventKind.FAILED:
                payment.fail(event.failure_reason)
                recorded.append(PaymentFailed(reason=event.failure_reason, **base))
                return "failed", True
            if event.kind is EventKind.DISPUTED:
                refunded = payment.refund()
                recorded.append(PaymentRefunded(refunded_amount=str(refunded), partial=False, **base))
                return "refunded", True
        except IllegalTransitionException as exc:
            logger.info(
                "webhook_replay_ignored",
                event_id=event.id,
                event_type=event.type,
                payment_id=payment.id,
                status=exc.current,
                attempted=exc.action,
            )
            return fallback

        return fallback

    # ---- refunds ----

    async def initiate_refund(self, order_id: str, partial_amount: Optional[Decimal] = None) -> PaymentSummary:
        recorded: list[PaymentEvent] = []
        async with self.uow_factory() as uow:
            payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                raise PaymentNotFoundException(order_id)

            partial = (
                Money.create(partial_amount, payment.amount.currency)
                if partial_amount is not None
                else None
            )
            version = payment.version
            refunded = payment.refund(partial)

            request = RefundRequest(
                order_id=order_id,
                amount=refunded.amount,
                currency=refunded.currency,
                transaction_id=payment.external_transaction_id,
                payment_intent_id=payment.payment_intent_id,
                reason="requested_by_customer",
                idempotency_key=_idempotency_key("refund", payment.id, refunded.amount, version),
            )
            # claim the version before money moves: a concurrent refund fails here,
            # a processor failure rolls the claim back with the unit of work
            await uow.payment_repository.save(payment)
            try:
                result = await self.gateway.refund(request)
            except BusinessException as exc:
                logger.error(
                    "payment_refund_failed",
                    order_id=order_id,
                    payment_id=payment.id,
                    error_type=exc.error_type,
                )
                raise

            recorded.append(
                PaymentRefunded(
                    payment_id=payment.id,
                    order_id=payment.order_id,
                    provider=payment.provider,
                    amount=str(payment.amount),
                    refunded_amount=str(refunded),
                    partial=payment.status is PaymentStatus.PARTIALLY_REFUNDED,
                )
            )

        self.events.extend(recorded)
        logger.info(
            "payment_refunded",
            order_id=order_id,
            payment_id=payment.id,
            refund_id=result.refund_id,
            refunded_amount=str(refunded),
            status=payment.status.value,
        )
        return _summary(payment)

    # ---- queries ----

    async def get_payment_summary(self, order_id: str) -> PaymentSummary:
        async def _load() -> PaymentSummary:
            async with self.uow_factory(readonly=True) as uow:
                payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                raise PaymentNotFoundException(order_id)
            return _summary(payment)

        return await self._with_retry(_load, StorageUnavailableException)

    async def aclose(self) -> None:
        # Best-effort close underlying resources
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
