"""
Payment repository contract - what the application needs from storage.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment


class PaymentRepository(ABC):
    """Payment persistence port.

    Every method may raise StorageUnavailableException.
    """

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """Most recent payment of the order"""
        pass

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Optional[Payment]:
        """Match on checkout session id or payment intent id"""
        pass

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        """
        Upsert by id with an optimistic version check.

        Inserts when ``payment.version == 0``; otherwise updates only if the
        stored version still equals ``payment.version`` and raises
        ConcurrentModificationException when it does not. The returned
        payment carries the new version.
        """
        pass
