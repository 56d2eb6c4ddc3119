"""
Scheduled janitors

Each job takes a session, does its own commits and returns counts, so the
scheduler and the cron endpoints share one implementation. Per-item failures
are logged and counted; one bad order never stops a batch.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.status_config import (
    ChangeSource,
    DeliveryMethod,
    NotificationStatus,
    NOVA_POSHTA_DELIVERED_CODES,
    OrderStatus,
)
from storefront.exceptions import StorefrontException
from storefront.models.cart import CartItem
from storefront.models.notification import NotificationOutbox
from storefront.models.order import Order
from storefront.models.user import RefreshToken
from storefront.services.notification_service import Delivery, NotificationSender, build_delivery
from storefront.services.nova_poshta import NovaPoshtaClient
from storefront.services.order_status import lock_order, order_status_service
from storefront.logging_config import get_logger

logger = get_logger(__name__)

AUTO_CANCEL_REASON = "Автоматичне скасування: замовлення не оброблено протягом {hours} годин"
AUTO_COMPLETE_COMMENT = "Автоматично: посилка доставлена (ТТН {ttn})"


@dataclass
class TrackingResult:
    checked: int = 0
    updated: int = 0
    failed: int = 0


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0


# ============================================================================
# Auto-cancel
# ============================================================================

def auto_cancel_stale_orders(db: Session, now: Optional[datetime] = None) -> int:
    """
    Cancel orders still in new_order after ORDER_AUTO_CANCEL_HOURS.

    Returns:
        Number of orders cancelled
    """
    now = now or datetime.utcnow()
    hours = settings.ORDER_AUTO_CANCEL_HOURS
    cutoff = now - timedelta(hours=hours)
    reason = AUTO_CANCEL_REASON.format(hours=hours)

    order_ids = [
        row.id
        for row in db.query(Order.id)
        .filter(Order.status == OrderStatus.NEW_ORDER.value, Order.created_at < cutoff)
        .order_by(Order.id)
        .all()
    ]
    db.commit()

    cancelled = 0
    for order_id in order_ids:
        try:
            order = lock_order(db, order_id)
            if order is None or order.status != OrderStatus.NEW_ORDER.value:
                db.rollback()
                continue
            if order_status_service.apply_transition(
                db, order, OrderStatus.CANCELLED.value, ChangeSource.CRON.value, comment=reason
            ):
                cancelled += 1
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Auto-cancel failed for order {order_id}: {e}", exc_info=True)

    if cancelled:
        logger.info(f"Auto-cancelled {cancelled} stale orders", extra={"count": cancelled})
    return cancelled


# ============================================================================
# Auto-tracking
# ============================================================================

def auto_track_deliveries(db: Session, tracker: Optional[NovaPoshtaClient] = None) -> TrackingResult:
    """
    Complete shipped Nova Poshta orders the carrier reports as delivered.

    Carrier lookups run with no transaction open; each completion re-locks
    the order and is skipped if it left ``shipped`` meanwhile.
    """
    result = TrackingResult()
    batch: List[Tuple[int, str]] = [
        (row.id, row.tracking_number)
        for row in db.query(Order.id, Order.tracking_number)
        .filter(
            Order.status == OrderStatus.SHIPPED.value,
            Order.delivery_method == DeliveryMethod.NOVA_POSHTA.value,
            Order.tracking_number.isnot(None),
        )
        .order_by(Order.updated_at)
        .limit(settings.AUTO_TRACKING_BATCH_SIZE)
        .all()
    ]
    db.commit()

    if not batch:
        return result

    tracker = tracker or NovaPoshtaClient()
    for order_id, ttn in batch:
        result.checked += 1
        try:
            status_code = tracker.get_status_code(ttn)
        except StorefrontException as e:
            result.failed += 1
            logger.warning(f"Tracking lookup failed for TTN {ttn}: {e.message}")
            continue
        except Exception as e:
            result.failed += 1
            logger.error(
                f"Unexpected tracking error for TTN {ttn}: {e}",
                exc_info=True,
                extra={"order_id": order_id, "ttn": ttn},
            )
            continue

        if status_code not in NOVA_POSHTA_DELIVERED_CODES:
            continue

        try:
            order = lock_order(db, order_id)
            if order is None or order.status != OrderStatus.SHIPPED.value:
                db.rollback()
                continue
            if order_status_service.apply_transition(
                db,
                order,
                OrderStatus.COMPLETED.value,
                ChangeSource.CRON.value,
                comment=AUTO_COMPLETE_COMMENT.format(ttn=ttn),
            ):
                result.updated += 1
            db.commit()
        except Exception as e:
            db.rollback()
            result.failed += 1
            logger.error(f"Auto-complete failed for order {order_id}: {e}", exc_info=True)

    logger.info(
        f"Auto-tracking: checked {result.checked}, completed {result.updated}, failed {result.failed}",
        extra={"checked": result.checked, "updated": result.updated, "failed": result.failed},
    )
    return result


# ============================================================================
# Cleanup
# ============================================================================

def cleanup_stale_carts(db: Session, now: Optional[datetime] = None) -> int:
    """Delete cart items untouched for CART_TTL_DAYS."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=settings.CART_TTL_DAYS)
    try:
        deleted = (
            db.query(CartItem)
            .filter(CartItem.added_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Removed {deleted} stale cart items", extra={"count": deleted})
    return deleted


def cleanup_expired_tokens(db: Session, now: Optional[datetime] = None) -> int:
    """Delete refresh tokens past their expiry."""
    now = now or datetime.utcnow()
    try:
        deleted = (
            db.query(RefreshToken)
            .filter(RefreshToken.expires_at < now)
            .delete(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Removed {deleted} expired refresh tokens", extra={"count": deleted})
    return deleted


# ============================================================================
# Notification dispatch
# ============================================================================

def _record_failure(row: NotificationOutbox, error: str) -> None:
    row.attempts = (row.attempts or 0) + 1
    row.last_error = error[:1000]
    if row.attempts >= settings.NOTIFICATION_MAX_ATTEMPTS:
        row.status = NotificationStatus.FAILED.value


def dispatch_notifications(db: Session, sender: Optional[NotificationSender] = None) -> DispatchResult:
    """
    Deliver pending outbox rows.

    Rows nobody can receive (no chat id, no email) are failed at once.
    Delivery errors bump ``attempts``; the row is failed after
    NOTIFICATION_MAX_ATTEMPTS and retried on later runs until then.
    """
    result = DispatchResult()
    rows = (
        db.query(NotificationOutbox)
        .filter(NotificationOutbox.status == NotificationStatus.PENDING.value)
        .order_by(NotificationOutbox.id)
        .limit(settings.NOTIFICATION_BATCH_SIZE)
        .all()
    )
    if not rows:
        return result

    deliveries: List[Delivery] = []
    for row in rows:
        try:
            delivery = build_delivery(db, row)
        except Exception as e:
            logger.error(
                f"Could not build notification {row.id}: {e}",
                exc_info=True,
                extra={"outbox_id": row.id},
            )
            _record_failure(row, str(e) or type(e).__name__)
            result.failed += 1
            continue
        if delivery is None:
            row.status = NotificationStatus.FAILED.value
            row.last_error = "No delivery channel for recipient"
            result.failed += 1
            continue
        row.channel = delivery.channel
        deliveries.append(delivery)
    db.commit()

    sender = sender or NotificationSender()
    outcomes = []
    for delivery in deliveries:
        try:
            sender.send(delivery)
            outcomes.append((delivery.outbox_id, None))
        except StorefrontException as e:
            logger.warning(
                f"Notification {delivery.outbox_id} via {delivery.channel} failed: {e.message}",
                extra={"outbox_id": delivery.outbox_id, "channel": delivery.channel},
            )
            outcomes.append((delivery.outbox_id, e.message))
        except Exception as e:
            logger.error(
                f"Unexpected error sending notification {delivery.outbox_id}: {e}",
                exc_info=True,
                extra={"outbox_id": delivery.outbox_id, "channel": delivery.channel},
            )
            outcomes.append((delivery.outbox_id, str(e) or type(e).__name__))

    try:
        for outbox_id, error in outcomes:
            row = db.query(NotificationOutbox).filter(NotificationOutbox.id == outbox_id).first()
            if row is None:
                continue
            if error is None:
                row.status = NotificationStatus.SENT.value
                row.attempts = (row.attempts or 0) + 1
                row.sent_at = datetime.utcnow()
                row.last_error = None
                result.sent += 1
            else:
                _record_failure(row, error)
                result.failed += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Notifications dispatched: {result.sent} sent, {result.failed} failed",
        extra={"sent": result.sent, "failed": result.failed},
    )
    return result
