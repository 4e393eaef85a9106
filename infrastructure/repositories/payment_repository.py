"""
Payment repository backed by SQLAlchemy (async).
"""
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.exceptions import ConcurrentModificationException, StorageUnavailableException
from domain.payment.money import Money
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel


logger = get_logger(__name__)


@contextmanager
def _storage_errors() -> Iterator[None]:
    """Translate connectivity failures into StorageUnavailableException."""
    try:
        yield
    except IntegrityError:
        raise
    except (OperationalError, InterfaceError) as exc:
        logger.error("payment_storage_unavailable", error=str(exc))
        raise StorageUnavailableException() from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.error("payment_storage_connection_lost", error=str(exc))
            raise StorageUnavailableException() from exc
        raise


class SQLAlchemyPaymentRepository(PaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        currency = model.currency
        refunded = (
            Money.create(Decimal(str(model.refunded_amount)), currency)
            if model.refunded_amount is not None
            else None
        )
        return Payment(
            id=model.id,
            order_id=model.order_id,
            amount=Money.create(Decimal(str(model.amount)), currency),
            status=PaymentStatus.parse(model.status),
            provider=model.provider,
            external_transaction_id=model.external_transaction_id,
            payment_intent_id=model.payment_intent_id,
            payment_method=model.payment_method,
            checkout_url=model.checkout_url,
            failure_reason=model.failure_reason,
            refunded_amount=refunded,
            processed_at=model.processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            version=model.version,
        )

    @staticmethod
    def _columns(entity: Payment) -> dict:
        return {
            "order_id": entity.order_id,
            "provider": entity.provider,
            "external_transaction_id": entity.external_transaction_id,
            "payment_intent_id": entity.payment_intent_id,
            "payment_method": entity.payment_method,
            "checkout_url": entity.checkout_url,
            "amount": entity.amount.amount,
            "currency": entity.amount.currency,
            "refunded_amount": entity.refunded_amount.amount if entity.refunded_amount else None,
            "status": entity.status.value,
            "failure_reason": entity.failure_reason,
            "processed_at": entity.processed_at,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

    async def _first(self, stmt) -> Optional[Payment]:
        with _storage_errors():
            result = await self.session.execute(stmt)
            db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        return await self._first(select(PaymentModel).where(PaymentModel.id == payment_id))

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        return await self._first(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(PaymentModel.created_at.desc())
            .limit(1)
        )

    async def get_by_external_id(self, external_id: str) -> Optional[Payment]:
        return await self._first(
            select(PaymentModel)
            .where(
                or_(
                    PaymentModel.external_transaction_id == external_id,
                    PaymentModel.payment_intent_id == external_id,
                )
            )
            .order_by(PaymentModel.created_at.desc())
            .limit(1)
        )

    async def save(self, payment: Payment) -> Payment:
        if payment.version == 0:
            await self._insert(payment)
        else:
            await self._update(payment)
        payment.version += 1
        logger.info(
            "payment_saved",
            payment_id=payment.id,
            order_id=payment.order_id,
            status=payment.status.value,
            version=payment.version,
        )
        return payment

    async def _insert(self, payment: Payment) -> None:
        db_payment = PaymentModel(id=payment.id, version=1, **self._columns(payment))
        try:
            with _storage_errors():
                self.session.add(db_payment)
                await self.session.flush()
        except IntegrityError as exc:
            logger.warning("payment_insert_conflict", payment_id=payment.id, order_id=payment.order_id)
            raise ConcurrentModificationException(payment.id, payment.version) from exc

    async def _update(self, payment: Payment) -> None:
        stmt = (
            update(PaymentModel)
            .where(PaymentModel.id == payment.id, PaymentModel.version == payment.version)
            .values(version=payment.version + 1, **self._columns(payment))
            .execution_options(synchronize_session=False)
        )
        with _storage_errors():
            result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "payment_version_conflict",
                payment_id=payment.id,
                expected_version=payment.version,
            )
            raise ConcurrentModificationException(payment.id, payment.version)
