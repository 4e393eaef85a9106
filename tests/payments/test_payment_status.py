import pytest

from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import InvalidStatusException


def test_parse_accepts_value_and_name():
    assert PaymentStatus.parse("partially_refunded") is PaymentStatus.PARTIALLY_REFUNDED
    assert PaymentStatus.parse("SUCCEEDED") is PaymentStatus.SUCCEEDED
    assert PaymentStatus.parse(PaymentStatus.FAILED) is PaymentStatus.FAILED


@pytest.mark.parametrize("value", ["paid", "", None, 1])
def test_parse_rejects_unknown(value):
    with pytest.raises(InvalidStatusException):
        PaymentStatus.parse(value)


def test_predicates():
    assert PaymentStatus.PENDING.can_confirm
    assert not PaymentStatus.SUCCEEDED.can_confirm
    assert PaymentStatus.SUCCEEDED.can_refund
    assert not PaymentStatus.PARTIALLY_REFUNDED.can_refund

    complete = {s for s in PaymentStatus if s.is_complete}
    assert complete == {PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}

    terminal = {s for s in PaymentStatus if s.is_terminal}
    assert terminal == {PaymentStatus.FAILED, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}
