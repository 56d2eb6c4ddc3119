"""
Order Status Management Service

Provides status transition validation and the single write path for order
status changes. Every accepted transition updates the order, restores stock
when the order is cancelled or returned, appends exactly one history row and
queues a client notification, all in the caller's transaction.
"""
from typing import Optional, Tuple
from datetime import datetime
from sqlalchemy.orm import Session

from storefront.core.status_config import (
    OrderStatus,
    TriggerRole,
    ROLE_CHANGE_SOURCE,
    STOCK_RESTORING_STATUSES,
    get_allowed_order_transitions,
    is_known_order_transition,
)
from storefront.exceptions import OrderError
from storefront.models.order import Order
from storefront.models.product import Product
from storefront.services.event_service import record_status_history, enqueue_status_notification
from storefront.logging_config import get_logger

logger = get_logger(__name__)


def lock_order(db: Session, order_id: int) -> Optional[Order]:
    """Load an order with a row lock (SELECT ... FOR UPDATE)."""
    return (
        db.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .first()
    )


class OrderStatusService:
    """
    Manages order status transitions.

    Responsibilities:
    - Validate status transitions per trigger role
    - Apply accepted transitions with their side effects
    """

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def validate_transition(
        self, from_status: str, to_status: str, role: str
    ) -> Tuple[bool, str, int]:
        """
        Validate an order status transition for a trigger role.

        Returns:
            Tuple of (is_valid, error_message, http_status)
        """
        if from_status == to_status:
            return False, f'Замовлення вже має статус "{to_status}"', 400

        allowed = get_allowed_order_transitions(from_status, role)
        if to_status in allowed:
            return True, "", 200

        if role == TriggerRole.CLIENT.value:
            return (
                False,
                'Ви можете скасувати замовлення лише в статусах "Нове" або "В обробці"',
                403,
            )
        if is_known_order_transition(from_status, to_status):
            return False, f'Недостатньо прав для зміни статусу з "{from_status}" на "{to_status}"', 403
        return False, f'Неможливо змінити статус з "{from_status}" на "{to_status}"', 400

    # ========================================================================
    # STATUS UPDATES
    # ========================================================================

    def apply_transition(
        self,
        db: Session,
        order: Order,
        new_status: str,
        change_source: str,
        changed_by: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> bool:
        """
        Apply an already-validated transition inside the caller's transaction.

        The UPDATE is conditional on the status the caller observed, so an
        order moved concurrently is left alone and False is returned.
        """
        old_status = order.status
        values = {
            Order.status: new_status,
            Order.updated_at: datetime.utcnow(),
        }
        if new_status == OrderStatus.CANCELLED.value:
            values[Order.cancelled_reason] = comment
            values[Order.cancelled_by] = change_source

        updated = (
            db.query(Order)
            .filter(Order.id == order.id, Order.status == old_status)
            .update(values, synchronize_session="evaluate")
        )
        if not updated:
            logger.info(
                "Order moved concurrently, transition skipped",
                extra={"order_number": order.order_number, "expected": old_status, "target": new_status},
            )
            return False

        if new_status in {s.value for s in STOCK_RESTORING_STATUSES}:
            self._restore_stock(db, order)

        record_status_history(
            db,
            order_id=order.id,
            old_status=old_status,
            new_status=new_status,
            change_source=change_source,
            changed_by=changed_by,
            comment=comment,
        )
        enqueue_status_notification(db, order, old_status, new_status)

        logger.info(
            f"Order {order.order_number}: {old_status} → {new_status}",
            extra={"order_number": order.order_number, "change_source": change_source},
        )
        return True

    def change_order_status(
        self,
        db: Session,
        order_id: int,
        new_status: str,
        role: str,
        actor_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> Order:
        """
        Validate and apply a status change, then commit.

        Args:
            db: Database session
            order_id: Order to update
            new_status: Desired new status
            role: admin, client, cron or system
            actor_id: User triggering the change (clients must own the order)
            comment: Reason stored on the history row (and as cancel reason)

        Raises:
            OrderError: 404 missing order, 403 not permitted, 400 invalid transition
        """
        new_status = OrderStatus(new_status).value
        role = TriggerRole(role).value
        try:
            order = lock_order(db, order_id)
            if order is None:
                raise OrderError("Замовлення не знайдено", 404)
            if role == TriggerRole.CLIENT.value and order.user_id != actor_id:
                raise OrderError("Немає доступу до цього замовлення", 403)

            is_valid, error, status_code = self.validate_transition(order.status, new_status, role)
            if not is_valid:
                raise OrderError(error, status_code)

            change_source = ROLE_CHANGE_SOURCE[TriggerRole(role)].value
            if not self.apply_transition(db, order, new_status, change_source, actor_id, comment):
                raise OrderError("Замовлення було змінено іншим запитом, спробуйте ще раз", 409)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(order)
        return order

    @staticmethod
    def _restore_stock(db: Session, order: Order) -> None:
        for item in order.items:
            if item.product_id is None:
                continue
            db.query(Product).filter(Product.id == item.product_id).update(
                {Product.quantity: Product.quantity + item.quantity},
                synchronize_session=False,
            )


# Singleton instance
order_status_service = OrderStatusService()


def change_order_status(
    db: Session,
    order_id: int,
    new_status: str,
    role: str,
    actor_id: Optional[int] = None,
    comment: Optional[str] = None,
) -> Order:
    return order_status_service.change_order_status(db, order_id, new_status, role, actor_id, comment)


__all__ = [
    "OrderStatusService",
    "change_order_status",
    "lock_order",
    "order_status_service",
]
