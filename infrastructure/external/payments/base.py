"""
Base payment client implementing shared concerns: timeout, retry, logging, mapping.

Processor SDKs are blocking, so every call runs in a worker thread bounded by
``asyncio.wait_for``. Concrete providers subclass and implement
provider-specific logic.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    CheckoutSessionResult,
    CreateCheckoutSession,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from domain.common.exceptions import BusinessException
from domain.payment.exceptions import ProviderUnavailableException
from infrastructure.external.payments.exceptions import PaymentProviderError
from shared.codes.payment_codes import PROVIDER_EVENT_TO_KIND, EventKind


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeout = timeout
        self._retry_cfg = retry or {"max": 2, "base": 0.2, "max_backoff": 2.0}

    async def aclose(self) -> None:
        """SDK clients hold no connections of their own."""
        return None

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "payment_provider_retry",
            provider=self.provider,
            attempt=state.attempt_number,
            error=str(exc) if exc else None,
        )

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(
                multiplier=self._retry_cfg["base"],
                max=self._retry_cfg.get("max_backoff", 2.0),
            ),
            retry=retry_if_exception_type(ProviderUnavailableException),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        """Run a blocking SDK call with timeout, error mapping and retry."""

        async def _once():
            try:
                return await asyncio.wait_for(asyncio.to_thread(fn, **kwargs), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                raise ProviderUnavailableException(
                    f"{self.provider} did not answer {operation} within {self._timeout}s",
                    provider=self.provider,
                ) from exc
            except BusinessException:
                raise
            except Exception as exc:
                raise self._map_error(operation, exc) from exc

        return await self._retry(_once)

    def _map_error(self, operation: str, exc: Exception) -> BusinessException:
        return PaymentProviderError(f"{operation} failed: {exc}", provider=self.provider)

    # Default implementations raise to force override where needed
    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSessionResult:
        raise NotImplementedError

    async def refund(self, req: RefundRequest) -> RefundResult:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        raise NotImplementedError

    # Helpers
    def _map_event_kind(self, event_type: str) -> EventKind:
        mapping = PROVIDER_EVENT_TO_KIND.get(self.provider, {})
        return mapping.get(event_type, EventKind.UNHANDLED)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
