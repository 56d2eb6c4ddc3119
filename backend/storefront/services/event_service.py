"""
Event Service

Helpers that append audit and outbox rows for an order. None of them
commit: the calling service owns the transaction, so the rows land
atomically with the change they describe.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from storefront.core.status_config import NotificationStatus
from storefront.models.order import Order, OrderStatusHistory
from storefront.models.notification import NotificationOutbox


def record_status_history(
    db: Session,
    order_id: int,
    old_status: Optional[str],
    new_status: str,
    change_source: str,
    changed_by: Optional[int] = None,
    comment: Optional[str] = None,
) -> OrderStatusHistory:
    """
    Append one status-history row.

    Args:
        db: Database session
        order_id: ID of the order
        old_status: Status before the change (None for order creation)
        new_status: Status after the change
        change_source: admin, client_action, cron or system
        changed_by: ID of the user who triggered the change
        comment: Free-text reason

    Returns:
        The created OrderStatusHistory instance
    """
    entry = OrderStatusHistory(
        order_id=order_id,
        old_status=old_status,
        new_status=new_status,
        change_source=change_source,
        changed_by=changed_by,
        comment=comment,
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    # Don't commit - let the calling function handle the transaction
    return entry


def enqueue_notification(
    db: Session,
    event: str,
    payload: Dict[str, Any],
    order_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> NotificationOutbox:
    """Queue a notification for the dispatch janitor."""
    row = NotificationOutbox(
        order_id=order_id,
        user_id=user_id,
        event=event,
        payload=payload,
        status=NotificationStatus.PENDING.value,
        attempts=0,
        created_at=datetime.utcnow(),
    )
    db.add(row)
    return row


def enqueue_status_notification(
    db: Session,
    order: Order,
    old_status: str,
    new_status: str,
) -> NotificationOutbox:
    """Client-facing "your order changed status" notification."""
    return enqueue_notification(
        db,
        event="status_changed",
        order_id=order.id,
        user_id=order.user_id,
        payload={
            "order_number": order.order_number,
            "old_status": old_status,
            "new_status": new_status,
            "tracking_number": order.tracking_number,
            "contact_email": order.contact_email,
        },
    )


def enqueue_order_created_notification(db: Session, order: Order) -> NotificationOutbox:
    """Back-office notification about a new order (manager chat)."""
    return enqueue_notification(
        db,
        event="order_created",
        order_id=order.id,
        user_id=None,
        payload={
            "order_number": order.order_number,
            "total_amount": str(order.total_amount),
            "items_count": order.items_count,
            "client_type": order.client_type,
            "contact_name": order.contact_name,
            "contact_phone": order.contact_phone,
            "contact_email": order.contact_email,
            "delivery_method": order.delivery_method,
            "payment_method": order.payment_method,
        },
    )
