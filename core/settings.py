"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so the processor configuration can be
loaded (and overridden in tests) on its own, e.g. STRIPE__SECRET_KEY,
CHECKOUT__FRONTEND_URL, RETRY__MAX.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    total: float = 10.0  # seconds per processor call


class PaymentRetry(BaseModel):
    max: int = 2  # retries after the first attempt
    base_backoff: float = 0.2
    max_backoff: float = 2.0


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_version: Optional[str] = None


class CheckoutSettings(BaseModel):
    frontend_url: str = "http://localhost:3000"
    success_path: str = "/pedido/sucesso?session_id={CHECKOUT_SESSION_ID}"
    cancel_path: str = "/pedido/cancelado?pedido_id={order_id}"
    payment_method_types: list[str] = Field(default_factory=lambda: ["card", "boleto"])
    allowed_countries: list[str] = Field(default_factory=lambda: ["BR"])

    def success_url(self) -> str:
        # {CHECKOUT_SESSION_ID} is a Stripe template variable, kept verbatim
        return self.frontend_url.rstrip("/") + self.success_path

    def cancel_url(self, order_id: str) -> str:
        return self.frontend_url.rstrip("/") + self.cancel_path.replace("{order_id}", order_id)


class PaymentSettings(BaseSettings):
    default_provider: str = "stripe"
    default_currency: str = "BRL"
    amount_tolerance: Decimal = Decimal("0.01")

    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
