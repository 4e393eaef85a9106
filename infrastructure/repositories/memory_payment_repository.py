"""
In-memory payment repository.

Single process only; used by tests and local runs without a database.
Stored payments are deep-copied so callers never share live objects with
the store, mirroring how a database hands out fresh rows. Like the
``uq_payments_order_open`` index, an order holds at most one open payment.
"""
from __future__ import annotations

import copy
from typing import Optional

from domain.payment.entity import Payment
from domain.payment.exceptions import ConcurrentModificationException
from domain.payment.repository import PaymentRepository


class InMemoryPaymentRepository(PaymentRepository):

    def __init__(self, storage: Optional[dict[str, Payment]] = None) -> None:
        self._storage: dict[str, Payment] = storage if storage is not None else {}
        self.save_calls = 0

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        payment = self._storage.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        matches = [p for p in self._storage.values() if p.order_id == order_id]
        if not matches:
            return None
        return copy.deepcopy(max(matches, key=lambda p: p.created_at))

    async def get_by_external_id(self, external_id: str) -> Optional[Payment]:
        for payment in self._storage.values():
            if external_id in (payment.external_transaction_id, payment.payment_intent_id):
                return copy.deepcopy(payment)
        return None

    def _has_open_payment(self, order_id: str) -> bool:
        return any(
            p.order_id == order_id and not p.status.is_terminal
            for p in self._storage.values()
        )

    async def save(self, payment: Payment) -> Payment:
        stored = self._storage.get(payment.id)
        stored_version = stored.version if stored else 0
        if stored_version != payment.version:
            raise ConcurrentModificationException(payment.id, payment.version)
        if stored is None and not payment.status.is_terminal and self._has_open_payment(payment.order_id):
            raise ConcurrentModificationException(payment.id, payment.version)
        payment.version += 1
        self._storage[payment.id] = copy.deepcopy(payment)
        self.save_calls += 1
        return payment
