from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.payment.entity import Payment, PaymentStatus
from domain.payment.exceptions import ConcurrentModificationException
from domain.payment.money import Money
from infrastructure.database import create_tables
from infrastructure.unit_of_work import InMemoryUnitOfWork, SQLAlchemyUnitOfWork


async def _session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_tables(engine)
    return engine, async_sessionmaker(bind=engine, expire_on_commit=False)


def _payment(order_id: str = "order-1", external_id: str = "cs_1", amount: str = "11.98") -> Payment:
    return Payment.create(order_id, Money.create(amount), external_transaction_id=external_id)


@pytest.mark.asyncio
async def test_save_and_load_round_trip():
    engine, factory = await _session_factory()
    try:
        payment = _payment()
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            saved = await uow.payment_repository.save(payment)
        assert saved.version == 1

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            loaded = await uow.payment_repository.get_by_id(payment.id)

        assert loaded.order_id == "order-1"
        assert loaded.amount == Money.create("11.98", "BRL")
        assert loaded.status is PaymentStatus.PENDING
        assert loaded.version == 1
        assert loaded.created_at.tzinfo is not None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_update_bumps_version_and_persists_state():
    engine, factory = await _session_factory()
    try:
        payment = _payment()
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(payment)

        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            loaded = await uow.payment_repository.get_by_external_id("cs_1")
            loaded.attach_gateway_data(payment_intent_id="pi_1", payment_method="card")
            loaded.confirm()
            loaded.refund(Money.create("1.98"))
            await uow.payment_repository.save(loaded)

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            stored = await uow.payment_repository.get_by_external_id("pi_1")
        assert stored.version == 2
        assert stored.status is PaymentStatus.PARTIALLY_REFUNDED
        assert stored.refunded_amount.amount == Decimal("1.98")
        assert stored.payment_method == "card"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_stale_write_is_rejected():
    engine, factory = await _session_factory()
    try:
        payment = _payment()
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(payment)

        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            first = await uow.payment_repository.get_by_id(payment.id)
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            second = await uow.payment_repository.get_by_id(payment.id)

        first.confirm()
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(first)

        second.fail("late")
        with pytest.raises(ConcurrentModificationException):
            async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
                await uow.payment_repository.save(second)

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            stored = await uow.payment_repository.get_by_id(payment.id)
        assert stored.status is PaymentStatus.SUCCEEDED
        assert stored.version == 2
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_get_by_order_id_returns_most_recent():
    engine, factory = await _session_factory()
    try:
        older = _payment(external_id="cs_old")
        older.created_at = datetime.now(timezone.utc) - timedelta(hours=1)
        older.fail("expired")
        newer = _payment(external_id="cs_new")
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(older)
            await uow.payment_repository.save(newer)

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            latest = await uow.payment_repository.get_by_order_id("order-1")
            missing = await uow.payment_repository.get_by_order_id("order-2")
        assert latest.id == newer.id
        assert missing is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_exception_rolls_back_unit_of_work():
    engine, factory = await _session_factory()
    try:
        payment = _payment()
        with pytest.raises(RuntimeError):
            async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
                await uow.payment_repository.save(payment)
                raise RuntimeError("processor exploded")

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            assert await uow.payment_repository.get_by_id(payment.id) is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_second_open_payment_for_order_is_rejected():
    engine, factory = await _session_factory()
    try:
        first = _payment(external_id="cs_first")
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(first)

        with pytest.raises(ConcurrentModificationException):
            async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
                await uow.payment_repository.save(_payment(external_id="cs_second"))

        # once the first attempt is terminal the order may be paid again
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            loaded = await uow.payment_repository.get_by_id(first.id)
            loaded.fail("expired")
            await uow.payment_repository.save(loaded)
        retry = _payment(external_id="cs_retry")
        async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
            await uow.payment_repository.save(retry)

        async with SQLAlchemyUnitOfWork(session_factory=factory, readonly=True) as uow:
            assert (await uow.payment_repository.get_by_order_id("order-1")).id == retry.id
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_in_memory_store_allows_one_open_payment_per_order():
    store: dict = {}
    async with InMemoryUnitOfWork(store) as uow:
        await uow.payment_repository.save(_payment(external_id="cs_first"))

    with pytest.raises(ConcurrentModificationException):
        async with InMemoryUnitOfWork(store) as uow:
            await uow.payment_repository.save(_payment(external_id="cs_second"))
    assert len(store) == 1

    async with InMemoryUnitOfWork(store) as uow:
        await uow.payment_repository.save(_payment(order_id="order-2", external_id="cs_other"))
    assert len(store) == 2
