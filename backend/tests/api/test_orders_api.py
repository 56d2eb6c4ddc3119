"""
Tests for /api/v1/orders (client side)
"""
import pytest
from decimal import Decimal

from storefront.models.order import Order
from storefront.models.product import Product
from storefront.services import payment_service
from storefront.services.payment_providers.base import PaymentInitResult

from tests.factories import (
    create_test_cart_item,
    create_test_order,
    create_test_payment,
    create_test_product,
    create_test_user,
)


CHECKOUT = {
    "contact_name": "Олена Коваль",
    "contact_phone": "+38 (050) 123-45-67",
    "contact_email": "customer@test.com",
    "delivery_method": "nova_poshta",
    "delivery_city": "Київ",
    "delivery_warehouse": "Відділення №1",
    "payment_method": "cod",
}


class TestCheckout:

    def test_places_order_from_cart(self, client, db_session, customer_user, customer_headers, sample_product):
        create_test_cart_item(db_session, customer_user, sample_product, quantity=3)
        db_session.commit()

        response = client.post("/api/v1/orders", json=CHECKOUT, headers=customer_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        order = body["data"]
        assert order["status"] == "new_order"
        assert order["client_type"] == "retail"
        assert order["total_amount"] == "360.00"
        assert order["items_count"] == 3
        assert order["contact_phone"] == "+380501234567"
        assert order["items"][0]["price_at_order"] == "120.00"
        assert order["status_history"][0]["new_status"] == "new_order"

        db_session.refresh(sample_product)
        assert sample_product.quantity == 47
        cart = client.get("/api/v1/cart", headers=customer_headers).json()["data"]
        assert cart["items"] == []

    def test_empty_cart(self, client, customer_headers):
        response = client.post("/api/v1/orders", json=CHECKOUT, headers=customer_headers)

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Кошик порожній"

    def test_nova_poshta_needs_branch(self, client, customer_headers):
        payload = dict(CHECKOUT, delivery_warehouse=None)

        response = client.post("/api/v1/orders", json=payload, headers=customer_headers)

        assert response.status_code == 422

    def test_insufficient_stock_rolls_back(self, client, db_session, customer_user, customer_headers):
        plenty = create_test_product(db_session, quantity=10)
        scarce = create_test_product(db_session, quantity=1)
        create_test_cart_item(db_session, customer_user, plenty, quantity=2)
        create_test_cart_item(db_session, customer_user, scarce, quantity=2)
        db_session.commit()

        response = client.post("/api/v1/orders", json=CHECKOUT, headers=customer_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        db_session.expire_all()
        assert db_session.get(Product, plenty.id).quantity == 10
        assert db_session.query(Order).count() == 0


class TestOrderHistory:

    def test_lists_only_own_orders(self, client, db_session, customer_user, customer_headers):
        create_test_order(db_session, user=customer_user)
        create_test_order(db_session, user=customer_user, status="shipped")
        create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.get("/api/v1/orders", headers=customer_headers)

        data = response.json()["data"]
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["returned"] == 2

        shipped = client.get("/api/v1/orders?status=shipped", headers=customer_headers).json()["data"]
        assert [o["status"] for o in shipped["items"]] == ["shipped"]

    def test_pagination_limit_validated(self, client, customer_headers):
        response = client.get("/api/v1/orders?limit=500", headers=customer_headers)
        assert response.status_code == 422

    def test_foreign_order_is_not_found(self, client, db_session, customer_headers):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.get(f"/api/v1/orders/{order.id}", headers=customer_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ORDER_ERROR"


class TestClientCancellation:

    def test_cancel_restores_stock(self, client, db_session, customer_user, customer_headers):
        product = create_test_product(db_session, quantity=4)
        order = create_test_order(db_session, user=customer_user, lines=[(product, 2)])
        db_session.commit()

        response = client.put(
            f"/api/v1/orders/{order.id}/status",
            json={"status": "cancelled"},
            headers=customer_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancelled_by"] == "client_action"
        assert data["cancelled_reason"] == "Скасовано клієнтом"
        db_session.refresh(product)
        assert product.quantity == 6

    def test_client_cannot_set_other_statuses(self, client, db_session, customer_user, customer_headers):
        order = create_test_order(db_session, user=customer_user)
        db_session.commit()

        response = client.put(
            f"/api/v1/orders/{order.id}/status",
            json={"status": "completed"},
            headers=customer_headers,
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"
        db_session.refresh(order)
        assert order.status == "new_order"

    def test_cannot_cancel_shipped_order(self, client, db_session, customer_user, customer_headers):
        order = create_test_order(db_session, user=customer_user, status="shipped")
        db_session.commit()

        response = client.put(
            f"/api/v1/orders/{order.id}/status",
            json={"status": "cancelled"},
            headers=customer_headers,
        )

        assert response.status_code == 403


def test_reorder_adds_available_items(client, db_session, customer_user, customer_headers, sample_product):
    gone = create_test_product(db_session, is_active=False)
    order = create_test_order(db_session, user=customer_user, lines=[(sample_product, 2), (gone, 1)])
    db_session.commit()

    response = client.post(f"/api/v1/orders/{order.id}/reorder", headers=customer_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["added_count"] == 1
    assert data["failed_items"] == [gone.name]


class TestOnlinePayment:

    @pytest.fixture
    def provider(self, monkeypatch):
        class FakeProvider:
            def create_payment(self, order_id, amount, description, result_url, server_url):
                return PaymentInitResult(redirect_url="https://pay.example/inv-9", payment_id="inv-9")

        fake = FakeProvider()
        monkeypatch.setattr(payment_service, "get_provider", lambda name: fake)
        return fake

    def test_pay_returns_redirect(self, client, db_session, customer_user, customer_headers, provider):
        order = create_test_order(db_session, user=customer_user, total_amount=Decimal("150.00"))
        db_session.commit()

        response = client.post(
            f"/api/v1/orders/{order.id}/pay", json={"provider": "monobank"}, headers=customer_headers
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "redirect_url": "https://pay.example/inv-9",
            "payment_id": "inv-9",
            "provider": "monobank",
        }

        status_response = client.get(f"/api/v1/orders/{order.id}/payment", headers=customer_headers)
        assert status_response.json()["data"]["status"] == "pending"
        assert status_response.json()["data"]["external_payment_id"] == "inv-9"

    def test_unknown_provider_is_validation_error(self, client, db_session, customer_user, customer_headers):
        order = create_test_order(db_session, user=customer_user)
        db_session.commit()

        response = client.post(
            f"/api/v1/orders/{order.id}/pay", json={"provider": "paypal"}, headers=customer_headers
        )

        assert response.status_code == 422

    def test_payment_status_without_payment(self, client, db_session, customer_user, customer_headers):
        order = create_test_order(db_session, user=customer_user)
        db_session.commit()

        data = client.get(f"/api/v1/orders/{order.id}/payment", headers=customer_headers).json()["data"]

        assert data["status"] == "pending"
        assert data["provider"] is None

    def test_paid_order_status(self, client, db_session, customer_user, customer_headers):
        order = create_test_order(db_session, user=customer_user, status="paid", payment_status="paid")
        create_test_payment(db_session, order, status="success", external_payment_id="tx-5")
        db_session.commit()

        data = client.get(f"/api/v1/orders/{order.id}/payment", headers=customer_headers).json()["data"]

        assert data["status"] == "success"
        assert data["provider"] == "liqpay"
