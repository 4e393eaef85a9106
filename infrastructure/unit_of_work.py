"""Unit of Work implementations"""
from __future__ import annotations

from typing import Optional, Callable
import copy
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.memory_payment_repository import InMemoryPaymentRepository
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """SQLAlchemy backed Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.payment_repository = SQLAlchemyPaymentRepository(self.session)
        # only writable units open an explicit transaction
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                res = tx.close()
                if inspect.isawaitable(res):
                    await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.payment_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Unit of Work over a shared dict.

    Saves are written through to the store; rollback restores the previous
    value of every payment saved inside this unit.
    """

    def __init__(
        self,
        storage: Optional[dict[str, Payment]] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self.storage: dict[str, Payment] = storage if storage is not None else {}
        self._originals: dict[str, Optional[Payment]] = {}
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._committed = False
        self._originals = {}
        self.payment_repository = _TrackingRepository(self.storage, self._originals)
        return self

    async def commit(self) -> None:
        self._originals.clear()
        self._committed = True
        self.commits += 1

    async def rollback(self) -> None:
        for payment_id, original in self._originals.items():
            if original is None:
                self.storage.pop(payment_id, None)
            else:
                self.storage[payment_id] = original
        self._originals.clear()
        self._committed = False
        self.rollbacks += 1


class _TrackingRepository(InMemoryPaymentRepository):

    def __init__(self, storage: dict[str, Payment], originals: dict[str, Optional[Payment]]) -> None:
        super().__init__(storage)
        self._originals = originals

    async def save(self, payment: Payment) -> Payment:
        if payment.id not in self._originals:
            previous = self._storage.get(payment.id)
            self._originals[payment.id] = copy.deepcopy(previous) if previous else None
        return await super().save(payment)
