"""
Tests for payment initiation and webhook reconciliation.
"""
from decimal import Decimal

import pytest

from storefront.core.config import settings
from storefront.core.status_config import PaymentStatus
from storefront.exceptions import PaymentError
from storefront.models.notification import NotificationOutbox
from storefront.models.order import OrderStatusHistory
from storefront.models.payment import Payment
from storefront.services import payment_service
from storefront.services.payment_providers.base import PaymentCallbackResult, PaymentInitResult
from storefront.services.payment_service import ReconcileOutcome, reconcile_payment

from tests.factories import create_test_order, create_test_payment, create_test_user


def _callback(order, status=PaymentStatus.SUCCESS, transaction_id="tx-1", **payload):
    return PaymentCallbackResult(
        order_id=order.id,
        status=status,
        transaction_id=transaction_id,
        raw_payload={"status": status.value, "transaction_id": transaction_id, **payload},
    )


def _history_count(db, order):
    return db.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == order.id).count()


def _outbox_count(db, order):
    return db.query(NotificationOutbox).filter(NotificationOutbox.order_id == order.id).count()


class TestReconcilePayment:

    def test_success_marks_order_paid(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        outcome = reconcile_payment(db_session, "liqpay", _callback(order))

        assert outcome == ReconcileOutcome.APPLIED
        db_session.refresh(order)
        assert order.status == "paid"
        assert order.payment_status == "paid"
        payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.status == "success"
        assert payment.provider == "liqpay"
        assert payment.external_payment_id == "tx-1"
        assert payment.paid_at is not None
        assert payment.callback_payload["transaction_id"] == "tx-1"

        last = (
            db_session.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order.id)
            .order_by(OrderStatusHistory.id.desc())
            .first()
        )
        assert last.change_source == "system"
        assert last.new_status == "paid"
        assert _outbox_count(db_session, order) == 1

    def test_duplicate_callback_changes_nothing(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        reconcile_payment(db_session, "liqpay", _callback(order))
        history_before = _history_count(db_session, order)

        outcome = reconcile_payment(db_session, "liqpay", _callback(order, attempt=2))

        assert outcome == ReconcileOutcome.DUPLICATE
        assert _history_count(db_session, order) == history_before
        assert _outbox_count(db_session, order) == 1
        payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.callback_payload["attempt"] == 2

    def test_success_after_shipping_only_sets_payment_status(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session), status="shipped")
        db_session.commit()

        outcome = reconcile_payment(db_session, "monobank", _callback(order))

        assert outcome == ReconcileOutcome.APPLIED
        db_session.refresh(order)
        assert order.status == "shipped"
        assert order.payment_status == "paid"
        assert _history_count(db_session, order) == 1

    def test_failure_recorded_without_touching_order(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        outcome = reconcile_payment(db_session, "liqpay", _callback(order, status=PaymentStatus.FAILURE))

        assert outcome == ReconcileOutcome.APPLIED
        db_session.refresh(order)
        assert order.status == "new_order"
        assert order.payment_status == "pending"
        payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.status == "failure"
        assert _history_count(db_session, order) == 1

    def test_processing_then_success(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        reconcile_payment(db_session, "liqpay", _callback(order, status=PaymentStatus.PROCESSING))
        outcome = reconcile_payment(db_session, "liqpay", _callback(order))

        assert outcome == ReconcileOutcome.APPLIED
        db_session.refresh(order)
        assert order.status == "paid"

    def test_failure_after_success_is_stale(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        reconcile_payment(db_session, "liqpay", _callback(order))
        outcome = reconcile_payment(db_session, "liqpay", _callback(order, status=PaymentStatus.FAILURE))

        assert outcome == ReconcileOutcome.STALE
        payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.status == "success"
        db_session.refresh(order)
        assert order.payment_status == "paid"

    def test_unknown_order(self, db_session):
        result = PaymentCallbackResult(
            order_id=404, status=PaymentStatus.SUCCESS, transaction_id="tx", raw_payload={}
        )

        assert reconcile_payment(db_session, "liqpay", result) == ReconcileOutcome.ORDER_NOT_FOUND
        assert db_session.query(Payment).count() == 0


class FakeProvider:
    def __init__(self):
        self.calls = []

    def create_payment(self, order_id, amount, description, result_url, server_url):
        self.calls.append((order_id, amount, description, result_url, server_url))
        return PaymentInitResult(redirect_url="https://pay.example/checkout", payment_id="inv-1")


class TestInitiatePayment:

    @pytest.fixture
    def provider(self, monkeypatch):
        fake = FakeProvider()
        monkeypatch.setattr(payment_service, "get_provider", lambda name: fake)
        return fake

    def test_initiate_creates_pending_payment(self, db_session, provider):
        user = create_test_user(db_session)
        order = create_test_order(db_session, user=user, total_amount=Decimal("250.00"))
        db_session.commit()

        initiated = payment_service.initiate_payment(db_session, order.id, "monobank", user)

        assert initiated.redirect_url == "https://pay.example/checkout"
        assert initiated.payment_id == "inv-1"
        order_id, amount, description, _, server_url = provider.calls[0]
        assert order_id == order.id
        assert amount == Decimal("250.00")
        assert order.order_number in description
        assert server_url == f"{settings.APP_URL}/api/v1/webhooks/monobank"

        payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
        assert payment.status == "pending"
        assert payment.provider == "monobank"
        assert payment.external_payment_id == "inv-1"

    def test_cash_on_delivery_not_payable(self, db_session, provider):
        user = create_test_user(db_session)
        order = create_test_order(db_session, user=user, payment_method="cod")
        db_session.commit()

        with pytest.raises(PaymentError) as exc_info:
            payment_service.initiate_payment(db_session, order.id, "liqpay", user)

        assert exc_info.value.status_code == 400
        assert provider.calls == []

    def test_already_paid_rejected(self, db_session, provider):
        user = create_test_user(db_session)
        order = create_test_order(db_session, user=user, payment_status="paid", status="paid")
        create_test_payment(db_session, order, status="success")
        db_session.commit()

        with pytest.raises(PaymentError):
            payment_service.initiate_payment(db_session, order.id, "liqpay", user)
        assert provider.calls == []

    def test_foreign_order_hidden(self, db_session, provider):
        owner = create_test_user(db_session)
        other = create_test_user(db_session)
        order = create_test_order(db_session, user=owner)
        db_session.commit()

        with pytest.raises(PaymentError) as exc_info:
            payment_service.initiate_payment(db_session, order.id, "liqpay", other)

        assert exc_info.value.status_code == 404

    def test_staff_may_initiate_for_client(self, db_session, provider):
        owner = create_test_user(db_session)
        manager = create_test_user(db_session, role="manager")
        order = create_test_order(db_session, user=owner)
        db_session.commit()

        initiated = payment_service.initiate_payment(db_session, order.id, "liqpay", manager)

        assert initiated.provider == "liqpay"

    def test_payment_status_lookup(self, db_session):
        user = create_test_user(db_session)
        order = create_test_order(db_session, user=user)
        db_session.commit()

        assert payment_service.get_payment_status(db_session, order.id, user) is None

        create_test_payment(db_session, order, status="processing")
        db_session.commit()
        db_session.expire_all()

        assert payment_service.get_payment_status(db_session, order.id, user).status == "processing"
