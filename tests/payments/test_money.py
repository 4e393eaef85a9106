from decimal import Decimal

import pytest

from domain.payment.exceptions import (
    CurrencyMismatchException,
    InvalidAmountException,
    InvalidCurrencyException,
    InvalidFactorException,
    InvalidPercentageException,
    NegativeResultException,
)
from domain.payment.money import MAX_AMOUNT, Money


def test_create_rounds_half_up_to_cents():
    assert Money.create("10.005").amount == Decimal("10.01")
    assert Money.create("10.004").amount == Decimal("10.00")
    assert Money.create(5.99).amount == Decimal("5.99")


def test_currency_defaults_to_brl_and_is_upper_cased():
    assert Money.create(1).currency == "BRL"
    assert Money.create(1, "usd").currency == "USD"


@pytest.mark.parametrize("currency", ["", "BR", "REAL", "R$1", 12])
def test_invalid_currency_rejected(currency):
    with pytest.raises(InvalidCurrencyException):
        Money.create(1, currency)


@pytest.mark.parametrize("amount", ["-0.01", "abc", "NaN", "Infinity", True])
def test_invalid_amount_rejected(amount):
    with pytest.raises(InvalidAmountException):
        Money.create(amount)


@pytest.mark.parametrize("amount", ["1e27", "1000000", "999999.995"])
def test_amount_beyond_maximum_rejected(amount):
    with pytest.raises(InvalidAmountException):
        Money.create(amount)


def test_maximum_amount_accepted():
    assert Money.create("999999.99").amount == MAX_AMOUNT


def test_arithmetic_overflow_rejected():
    top = Money.create(MAX_AMOUNT)
    with pytest.raises(InvalidAmountException):
        top.multiply(2)
    with pytest.raises(InvalidAmountException):
        top.multiply("1e30")
    with pytest.raises(InvalidAmountException):
        top.add(Money.create("0.01"))


def test_minor_units_round_trip():
    money = Money.from_minor_units(123456)
    assert money.amount == Decimal("1234.56")
    assert money.to_minor_units() == 123456
    assert Money.create("0.1").to_minor_units() == 10


def test_from_minor_units_requires_integer():
    with pytest.raises(InvalidAmountException):
        Money.from_minor_units(12.5)


def test_add_then_subtract_is_identity():
    a = Money.create("5.99")
    b = Money.create("0.02")
    assert a.add(b).subtract(b) == a


def test_subtract_below_zero_fails():
    with pytest.raises(NegativeResultException):
        Money.create("1.00").subtract(Money.create("1.01"))


def test_mixed_currencies_fail():
    with pytest.raises(CurrencyMismatchException):
        Money.create(1, "BRL").add(Money.create(1, "USD"))
    with pytest.raises(CurrencyMismatchException):
        Money.create(1, "BRL").greater_than(Money.create(1, "USD"))


def test_multiply_and_percentage():
    assert Money.create("5.99").multiply(2) == Money.create("11.98")
    assert Money.create("200").percentage(15) == Money.create("30")
    assert Money.create("0.05").percentage(50).amount == Decimal("0.03")
    with pytest.raises(InvalidFactorException):
        Money.create(1).multiply(-1)
    with pytest.raises(InvalidPercentageException):
        Money.create(1).percentage(101)


def test_comparisons():
    small, big = Money.create(1), Money.create(2)
    assert big.greater_than(small)
    assert small.less_than(big)
    assert small.less_or_equal(Money.create(1))
    assert big.greater_or_equal(Money.create(2))
    assert small.equals(Money.create("1.00"))
    assert Money.zero().is_zero()


def test_formatting():
    money = Money.create("1234.5")
    assert str(money) == "BRL 1234.50"
    assert money.format_brl() == "R$ 1.234,50"
