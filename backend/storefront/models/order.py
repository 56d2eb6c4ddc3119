"""
Order Model

Represents a placed shop order: an immutable snapshot of the cart plus
delivery and contact details, with a mutable status and an append-only
status history.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from storefront.db.base import Base


class Order(Base):
    """Order - created at checkout from the user's cart"""
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Foreign Keys
    # Nullable: orders outlive deleted accounts
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Order Identification
    order_number = Column(String(20), unique=True, nullable=False, index=True)  # 20250301-0042

    # Order Status
    # Lifecycle: new_order → processing → confirmed → paid → shipped → completed
    # Alternative paths: cancelled (from any non-terminal), returned (from shipped/completed)
    status = Column(String(20), nullable=False, default="new_order", index=True)

    client_type = Column(String(20), nullable=False, default="retail")  # retail | wholesale

    # Totals
    total_amount = Column(Numeric(12, 2), nullable=False)  # Σ subtotal - discount + delivery
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_cost = Column(Numeric(12, 2), nullable=False, default=0)
    items_count = Column(Integer, nullable=False, default=0)

    # Contact (cleared by anonymization)
    contact_name = Column(String(200), nullable=True)
    contact_phone = Column(String(20), nullable=True)
    contact_email = Column(String(255), nullable=True)
    anonymized_at = Column(DateTime, nullable=True)

    # Delivery
    delivery_method = Column(String(20), nullable=False)  # nova_poshta, ukrposhta, pickup, pallet
    delivery_city = Column(String(100), nullable=True)
    delivery_city_ref = Column(String(64), nullable=True)
    delivery_warehouse = Column(String(255), nullable=True)
    delivery_warehouse_ref = Column(String(64), nullable=True)
    delivery_address = Column(Text, nullable=True)

    # Write-once carrier tracking number (TTN)
    tracking_number = Column(String(50), nullable=True, index=True)

    # Payment
    payment_method = Column(String(20), nullable=False)  # cod, bank_transfer, online, card_prepay
    payment_status = Column(String(20), nullable=False, default="pending")  # pending, paid, partial, refunded

    # Notes
    comment = Column(Text, nullable=True)  # From the client
    manager_comment = Column(Text, nullable=True)

    # Cancellation
    cancelled_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # change source that cancelled

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    payment = relationship("Payment", back_populates="order", uselist=False)

    def __repr__(self):
        return f"<Order {self.order_number} ({self.status})>"

    @property
    def is_anonymized(self) -> bool:
        return self.anonymized_at is not None


class OrderItem(Base):
    """Order line - price and product snapshot at order time"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot
    product_code = Column(String(50), nullable=False)
    product_name = Column(String(255), nullable=False)
    price_at_order = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.product_code} x{self.quantity}>"


class OrderStatusHistory(Base):
    """Append-only audit log of order status changes"""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    old_status = Column(String(20), nullable=True)  # NULL for the creation row
    new_status = Column(String(20), nullable=False)
    change_source = Column(String(20), nullable=False)  # admin, client_action, cron, system
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    order = relationship("Order", back_populates="status_history")

    def __repr__(self):
        return f"<OrderStatusHistory {self.old_status} -> {self.new_status} ({self.change_source})>"
