"""
Payment ORM model.

Table mapping only; business rules live in domain.payment.entity.Payment.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Numeric, String, Text, text

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True)

    # several payments per order are allowed once earlier ones are terminal;
    # uq_payments_order_open keeps at most one open (pending or succeeded)
    order_id = Column(String(100), index=True, nullable=False, comment="Order reference")

    provider = Column(String(50), nullable=False, default="stripe", comment="Processor tag")
    external_transaction_id = Column(String(255), nullable=True, unique=True, comment="Checkout session id")
    payment_intent_id = Column(String(255), nullable=True, index=True, comment="Processor payment intent id")
    payment_method = Column(String(50), nullable=True)
    checkout_url = Column(Text, nullable=True)

    amount = Column(Numeric(precision=12, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    refunded_amount = Column(Numeric(precision=12, scale=2), nullable=True)

    status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/succeeded/failed/refunded/partially_refunded",
    )
    failure_reason = Column(Text, nullable=True)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # optimistic concurrency token, checked in UPDATE ... WHERE version = ?
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("ix_payments_order_created", "order_id", "created_at"),
        Index(
            "uq_payments_order_open",
            "order_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'succeeded')"),
            sqlite_where=text("status IN ('pending', 'succeeded')"),
        ),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', order_id='{self.order_id}', "
            f"amount={self.amount} {self.currency}, status='{self.status}', version={self.version})>"
        )
