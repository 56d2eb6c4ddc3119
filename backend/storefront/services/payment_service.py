"""
Payment Service

Payment initiation and webhook reconciliation.

Reconciliation runs one transaction per delivery under the order row lock.
The idempotency key is (provider, external payment id, mapped status): a
delivery that matches what is already recorded only refreshes the stored
raw payload, so re-deliveries never repeat a transition or a notification.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.status_config import (
    ChangeSource,
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    PaymentProvider,
    ONLINE_PAYMENT_METHODS,
    is_before_paid,
)
from storefront.exceptions import PaymentError
from storefront.models.order import Order
from storefront.models.payment import Payment
from storefront.models.user import User
from storefront.services.order_status import lock_order, order_status_service
from storefront.services.payment_providers import get_provider
from storefront.services.payment_providers.base import PaymentCallbackResult
from storefront.logging_config import get_logger

logger = get_logger(__name__)


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ORDER_NOT_FOUND = "order_not_found"
    STALE = "stale"  # non-success report for an already-successful payment


@dataclass
class InitiatedPayment:
    provider: str
    redirect_url: str
    payment_id: Optional[str]


# ============================================================================
# INITIATION
# ============================================================================

def _check_payable(order: Optional[Order], user: Optional[User]) -> Order:
    if order is None:
        raise PaymentError("Замовлення не знайдено", 404)
    if user is not None and not user.is_staff and order.user_id != user.id:
        raise PaymentError("Замовлення не знайдено", 404)
    if order.payment_method not in ONLINE_PAYMENT_METHODS:
        raise PaymentError("Це замовлення не потребує онлайн-оплати", 400)
    if order.status in (OrderStatus.CANCELLED.value, OrderStatus.RETURNED.value):
        raise PaymentError("Скасоване замовлення не можна оплатити", 400)
    if order.payment_status == OrderPaymentStatus.PAID.value:
        raise PaymentError("Замовлення вже оплачено", 400)
    if order.payment is not None and order.payment.status == PaymentStatus.SUCCESS.value:
        raise PaymentError("Замовлення вже оплачено", 400)
    return order


def initiate_payment(db: Session, order_id: int, provider: str, user: Optional[User] = None) -> InitiatedPayment:
    """
    Start an online payment and return the provider redirect URL.

    The provider is called with no transaction open; the Payment row is
    upserted afterwards in a short transaction that re-checks payability.
    """
    provider = PaymentProvider(provider).value
    client = get_provider(provider)

    order = _check_payable(db.query(Order).filter(Order.id == order_id).first(), user)
    amount = Decimal(order.total_amount)
    description = f"Замовлення #{order.order_number}"
    result_url = f"{settings.APP_URL}/checkout/payment-redirect?orderId={order.id}"
    server_url = f"{settings.APP_URL}{settings.API_V1_STR}/webhooks/{provider}"
    # Release the read transaction before calling out
    db.commit()

    result = client.create_payment(order_id, amount, description, result_url, server_url)

    try:
        order = _check_payable(lock_order(db, order_id), user)
        payment = order.payment
        if payment is None:
            payment = Payment(order_id=order.id, created_at=datetime.utcnow())
            db.add(payment)
        payment.provider = provider
        payment.external_payment_id = result.payment_id
        payment.status = PaymentStatus.PENDING.value
        payment.amount = amount
        payment.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Payment initiated",
        extra={"order_id": order_id, "provider": provider, "external_payment_id": result.payment_id},
    )
    return InitiatedPayment(provider=provider, redirect_url=result.redirect_url, payment_id=result.payment_id)


def get_payment_status(db: Session, order_id: int, user: Optional[User] = None) -> Optional[Payment]:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None or (user is not None and not user.is_staff and order.user_id != user.id):
        raise PaymentError("Замовлення не знайдено", 404)
    return order.payment


# ============================================================================
# RECONCILIATION
# ============================================================================

def reconcile_payment(db: Session, provider: str, result: PaymentCallbackResult) -> ReconcileOutcome:
    """
    Apply one verified provider callback.

    1. lock the order; missing order is a no-op
    2. load or create the Payment; an identical (provider, id, status) is a duplicate
    3. success: payment success, order payment_status paid, status → paid if earlier
    4. failure / processing: recorded on the Payment only
    5. raw payload is always stored
    """
    status = PaymentStatus(result.status).value
    transaction_id = result.transaction_id or None
    log_extra = {
        "provider": provider,
        "order_id": result.order_id,
        "external_payment_id": transaction_id,
        "payment_status": status,
    }

    try:
        order = lock_order(db, result.order_id)
        if order is None:
            logger.warning("Payment callback for unknown order", extra=log_extra)
            db.rollback()
            return ReconcileOutcome.ORDER_NOT_FOUND

        payment = order.payment
        if payment is None:
            payment = Payment(
                order_id=order.id,
                provider=provider,
                external_payment_id=transaction_id,
                status=PaymentStatus.PENDING.value,
                amount=order.total_amount,
                created_at=datetime.utcnow(),
            )
            db.add(payment)
        elif (
            payment.provider == provider
            and payment.external_payment_id == transaction_id
            and payment.status == status
        ):
            payment.callback_payload = result.raw_payload
            payment.updated_at = datetime.utcnow()
            db.commit()
            logger.info("Duplicate payment callback ignored", extra=log_extra)
            return ReconcileOutcome.DUPLICATE
        elif payment.status == PaymentStatus.SUCCESS.value and status != PaymentStatus.SUCCESS.value:
            payment.callback_payload = result.raw_payload
            payment.updated_at = datetime.utcnow()
            db.commit()
            logger.warning("Non-success callback after successful payment, recorded only", extra=log_extra)
            return ReconcileOutcome.STALE

        payment.provider = provider
        payment.external_payment_id = transaction_id
        payment.status = status
        payment.callback_payload = result.raw_payload
        payment.updated_at = datetime.utcnow()

        if status == PaymentStatus.SUCCESS.value:
            payment.paid_at = datetime.utcnow()
            order.payment_status = OrderPaymentStatus.PAID.value
            if is_before_paid(order.status):
                order_status_service.apply_transition(
                    db,
                    order,
                    OrderStatus.PAID.value,
                    ChangeSource.SYSTEM.value,
                    comment=f"Оплата підтверджена через {provider}",
                )
        elif status == PaymentStatus.FAILURE.value:
            logger.warning("Payment failed, order left for manual review", extra=log_extra)

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Payment callback applied", extra=log_extra)
    return ReconcileOutcome.APPLIED
