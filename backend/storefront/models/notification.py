"""
Notification Outbox Model

Rows are written in the same transaction as the change they announce and
delivered later by the dispatch janitor.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from datetime import datetime

from storefront.db.base import Base


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)
    # NULL user = back-office (manager chat) notification
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Event type: order_created, status_changed
    event = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=True)  # resolved at dispatch: telegram | email
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, sent, failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<NotificationOutbox {self.event} order={self.order_id} ({self.status})>"
