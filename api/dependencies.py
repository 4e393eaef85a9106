"""
API dependencies: composition root for the payment service.
"""
from typing import AsyncIterator

from fastapi import Depends

from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentService
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_gateway() -> AsyncIterator[PaymentGateway]:
    gateway = get_payment_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_payment_service(gateway: PaymentGateway = Depends(get_gateway)) -> PaymentService:
    # Inject the unit of work factory and gateway (implements application port)
    return PaymentService(uow_factory=SQLAlchemyUnitOfWork, gateway=gateway)
