"""
Checkout order validation.

Explicit checks returning a typed result instead of decorators on the DTO,
so the orchestrator decides which exception a failure becomes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from application.dtos.payments import CheckoutOrder
from domain.common.exceptions import BusinessException, DomainValidationException
from domain.payment.exceptions import AmountMismatchException, EmptyCartException
from domain.payment.money import Money


@dataclass
class ValidationIssue:
    field: str
    message: str
    error: BusinessException


@dataclass
class ValidationResult:
    total: Optional[Money] = None
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def reasons(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def raise_first(self) -> None:
        if self.issues:
            raise self.issues[0].error


def _issue(result: ValidationResult, error: BusinessException) -> None:
    result.issues.append(ValidationIssue(field=error.field or "", message=error.message, error=error))


def validate_checkout_order(order: CheckoutOrder, tolerance: Decimal = Decimal("0.01")) -> ValidationResult:
    """Check line items and the declared total; never raises."""
    result = ValidationResult()

    if not order.items:
        _issue(result, EmptyCartException(order.id))
        return result

    try:
        total = Money.zero(order.currency)
    except BusinessException as exc:
        _issue(result, exc)
        return result

    for index, item in enumerate(order.items):
        if item.quantity <= 0:
            _issue(result, DomainValidationException(
                f"Quantity must be positive for item {item.product_ref}",
                field=f"items.{index}.quantity",
            ))
            continue
        try:
            line = Money.create(item.unit_price, order.currency).multiply(item.quantity)
        except BusinessException as exc:
            exc.field = f"items.{index}.unit_price"
            _issue(result, exc)
            continue
        try:
            total = total.add(line)
        except BusinessException as exc:
            exc.field = "items"
            _issue(result, exc)
            return result

    if not result.ok:
        return result

    if order.total is not None:
        try:
            declared = Money.create(order.total, order.currency)
        except BusinessException as exc:
            exc.field = "total"
            _issue(result, exc)
            return result
        if abs(declared.amount - total.amount) > tolerance:
            _issue(result, AmountMismatchException(order.id, str(declared), str(total)))
            return result

    result.total = total
    return result
