from decimal import Decimal

import pytest

from application.dtos.payments import CheckoutItem, CheckoutOrder
from application.services.checkout_validation import validate_checkout_order
from domain.payment.exceptions import AmountMismatchException, EmptyCartException, InvalidAmountException
from domain.payment.money import Money


def _order(items, **kwargs) -> CheckoutOrder:
    return CheckoutOrder(id="order-1", items=[CheckoutItem(**item) for item in items], **kwargs)


def test_valid_order_computes_total():
    order = _order([
        {"product_ref": "banana", "unit_price": Decimal("5.99"), "quantity": 2},
        {"product_ref": "apple", "unit_price": Decimal("1.50"), "quantity": 3},
    ])
    result = validate_checkout_order(order)
    assert result.ok
    assert result.total == Money.create("16.48")


def test_empty_cart():
    result = validate_checkout_order(_order([]))
    assert not result.ok
    assert isinstance(result.issues[0].error, EmptyCartException)
    with pytest.raises(EmptyCartException):
        result.raise_first()


def test_quantity_and_price_issues_are_collected():
    order = _order([
        {"product_ref": "banana", "unit_price": Decimal("5.99"), "quantity": 0},
        {"product_ref": "apple", "unit_price": Decimal("-1"), "quantity": 1},
    ])
    result = validate_checkout_order(order)
    assert [issue.field for issue in result.issues] == ["items.0.quantity", "items.1.unit_price"]
    assert result.total is None
    assert len(result.reasons) == 2


def test_oversized_amounts_become_issues():
    huge_price = _order([{"product_ref": "tractor", "unit_price": Decimal("1e27"), "quantity": 1}])
    result = validate_checkout_order(huge_price)
    assert isinstance(result.issues[0].error, InvalidAmountException)
    assert result.issues[0].field == "items.0.unit_price"

    huge_total = _order([
        {"product_ref": "tractor", "unit_price": Decimal("600000"), "quantity": 1},
        {"product_ref": "trailer", "unit_price": Decimal("600000"), "quantity": 1},
    ])
    result = validate_checkout_order(huge_total)
    assert isinstance(result.issues[0].error, InvalidAmountException)
    assert result.issues[0].field == "items"
    assert result.total is None


def test_declared_total_within_tolerance():
    order = _order([{"product_ref": "banana", "unit_price": Decimal("5.99"), "quantity": 2}], total=Decimal("11.97"))
    assert validate_checkout_order(order).ok


def test_declared_total_mismatch():
    order = _order([{"product_ref": "banana", "unit_price": Decimal("5.99"), "quantity": 2}], total=Decimal("12.50"))
    result = validate_checkout_order(order)
    assert isinstance(result.issues[0].error, AmountMismatchException)
    assert result.issues[0].field == "total"


def test_bad_currency():
    order = _order([{"product_ref": "banana", "unit_price": Decimal("1"), "quantity": 1}], currency="R$")
    result = validate_checkout_order(order)
    assert result.issues[0].field == "currency"
