"""
Money value object.

Amounts are Decimal, quantized to cents with ROUND_HALF_UP (10.005 -> 10.01)
and capped at MAX_AMOUNT.
Instances are immutable; every operation returns a new Money.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, DecimalException, InvalidOperation, ROUND_HALF_UP
from typing import Union

from domain.payment.exceptions import (
    CurrencyMismatchException,
    InvalidAmountException,
    InvalidCurrencyException,
    InvalidFactorException,
    InvalidPercentageException,
    NegativeResultException,
)


DEFAULT_CURRENCY = "BRL"
CENT = Decimal("0.01")
# largest charge Stripe accepts in a single payment; also fits Numeric(12, 2)
MAX_AMOUNT = Decimal("999999.99")

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountException(f"Not a number: {value!r}", field=field)
    try:
        # str() first so floats like 5.99 keep their shortest repr
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountException(f"Not a number: {value!r}", field=field)
    if not result.is_finite():
        raise InvalidAmountException(f"Not a finite number: {value!r}", field=field)
    return result


def _normalize_currency(currency: str) -> str:
    if not isinstance(currency, str) or len(currency) != 3 or not currency.isascii() or not currency.isalpha():
        raise InvalidCurrencyException(currency)
    return currency.upper()


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        amount = _to_decimal(self.amount, "amount")
        if amount < 0:
            raise InvalidAmountException(f"Amount cannot be negative: {amount}")
        try:
            quantized = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        except DecimalException:
            raise InvalidAmountException(f"Amount out of range: {amount}")
        if quantized > MAX_AMOUNT:
            raise InvalidAmountException(f"Amount exceeds the maximum of {MAX_AMOUNT}: {amount}")
        object.__setattr__(self, "amount", quantized)
        object.__setattr__(self, "currency", _normalize_currency(self.currency))

    # ---- factories ----

    @classmethod
    def create(cls, amount: Number, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(amount, currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def from_minor_units(cls, minor_units: int, currency: str = DEFAULT_CURRENCY) -> "Money":
        """Build from the integer cents processors such as Stripe report."""
        if isinstance(minor_units, bool) or not isinstance(minor_units, int):
            raise InvalidAmountException(f"Minor units must be an integer: {minor_units!r}")
        return cls(Decimal(minor_units) / 100, currency)

    # ---- arithmetic ----

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        result = self.amount - other.amount
        if result < 0:
            raise NegativeResultException(str(self), str(other))
        return Money(result, self.currency)

    def multiply(self, factor: Number) -> "Money":
        value = _to_decimal(factor, "factor")
        if value < 0:
            raise InvalidFactorException(factor)
        try:
            product = self.amount * value
        except DecimalException:
            raise InvalidAmountException(f"Amount out of range: {self} x {factor}")
        return Money(product, self.currency)

    def percentage(self, pct: Number) -> "Money":
        value = _to_decimal(pct, "percentage")
        if value < 0 or value > 100:
            raise InvalidPercentageException(pct)
        try:
            share = self.amount * value / 100
        except DecimalException:
            raise InvalidAmountException(f"Amount out of range: {pct}% of {self}")
        return Money(share, self.currency)

    def to_minor_units(self) -> int:
        return int((self.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    # ---- comparisons (currency-checked) ----

    def equals(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount == other.amount

    def greater_than(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def less_than(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def greater_or_equal(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    def less_or_equal(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    # ---- formatting ----

    def format_brl(self) -> str:
        """Brazilian notation, e.g. ``R$ 1.234,56``."""
        text = f"{self.amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
        return f"R$ {text}"

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchException(self.currency, other.currency)
