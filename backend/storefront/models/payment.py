"""
Payment Model

One provider payment per order, created lazily on payment initiation or on
the first provider callback. Keeps the raw callback payload for disputes.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from storefront.db.base import Base


class Payment(Base):
    """
    Provider payment for an order.

    (provider, status) plus external_payment_id form the idempotency key
    checked before any webhook side effect is applied.
    """
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("provider", "external_payment_id", name="uq_payments_provider_external_id"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # One-to-one with orders
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    provider = Column(String(20), nullable=False)  # liqpay, monobank
    external_payment_id = Column(String(255), nullable=True, index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, processing, success, failure
    amount = Column(Numeric(12, 2), nullable=False)

    # Raw provider payload, always overwritten with the latest delivery
    callback_payload = Column(JSON, nullable=True)

    # Timestamps
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="payment")

    def __repr__(self):
        return f"<Payment order={self.order_id} {self.provider}:{self.external_payment_id} ({self.status})>"
