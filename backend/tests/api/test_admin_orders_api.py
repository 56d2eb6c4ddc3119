"""
Tests for /api/v1/admin/orders
"""
import inspect
from decimal import Decimal

from fastapi.routing import APIRoute

from storefront.models.order import OrderStatusHistory
from storefront.services.nova_poshta import InternetDocument, NovaPoshtaClient

from tests.factories import create_test_order, create_test_product, create_test_user


TTN_PAYLOAD = {
    "sender_ref": "sender-ref",
    "sender_address_ref": "sender-address-ref",
    "sender_contact_ref": "sender-contact-ref",
    "sender_phone": "380501112233",
    "recipient_city_ref": "city-ref",
    "recipient_warehouse_ref": "warehouse-ref",
    "weight": "1.5",
}


class TestAccess:

    def test_client_is_forbidden(self, client, customer_headers):
        response = client.get("/api/v1/admin/orders", headers=customer_headers)

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Staff access required"

    def test_manager_allowed(self, client, db_session):
        from storefront.core.security import create_access_token
        manager = create_test_user(db_session, role="manager")
        db_session.commit()

        response = client.get(
            "/api/v1/admin/orders",
            headers={"Authorization": f"Bearer {create_access_token(manager.id)}"},
        )

        assert response.status_code == 200


class TestAdminOrderList:

    def test_search_and_status_filter(self, client, db_session, admin_headers):
        user = create_test_user(db_session)
        wanted = create_test_order(db_session, user=user, contact_phone="+380679998877")
        create_test_order(db_session, user=user)
        create_test_order(db_session, user=user, status="processing", contact_phone="+380679998800")
        db_session.commit()

        data = client.get("/api/v1/admin/orders?search=0679998877", headers=admin_headers).json()["data"]
        assert [o["id"] for o in data["items"]] == [wanted.id]

        data = client.get("/api/v1/admin/orders?status=processing", headers=admin_headers).json()["data"]
        assert data["pagination"]["total"] == 1

        data = client.get("/api/v1/admin/orders?limit=2", headers=admin_headers).json()["data"]
        assert data["pagination"] == {"total": 3, "offset": 0, "limit": 2, "returned": 2}


class TestAdminStatusChange:

    def test_forward_jump_writes_history(self, client, db_session, admin_user, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/status",
            json={"status": "shipped", "comment": "Відправлено зі складу"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "shipped"
        last = data["status_history"][-1]
        assert last["old_status"] == "new_order"
        assert last["change_source"] == "admin"
        assert last["changed_by"] == admin_user.id
        assert last["comment"] == "Відправлено зі складу"

    def test_invalid_transition(self, client, db_session, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session), status="completed")
        db_session.commit()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/status",
            json={"status": "processing"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ORDER_ERROR"

    def test_unknown_status_rejected(self, client, db_session, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/status",
            json={"status": "teleported"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_missing_order(self, client, admin_headers):
        response = client.put(
            "/api/v1/admin/orders/999/status", json={"status": "processing"}, headers=admin_headers
        )
        assert response.status_code == 404


class TestAdminEdits:

    def test_edit_items_recalculates_total(self, client, db_session, admin_headers):
        first = create_test_product(db_session, price_retail=Decimal("50.00"), quantity=10)
        second = create_test_product(db_session, price_retail=Decimal("20.00"), quantity=10)
        order = create_test_order(db_session, user=create_test_user(db_session), lines=[(first, 1)])
        db_session.commit()
        history_before = db_session.query(OrderStatusHistory).count()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/items",
            json={"items": [{"product_id": first.id, "quantity": 3}, {"product_id": second.id, "quantity": 2}]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_amount"] == "190.00"
        assert data["items_count"] == 5
        assert db_session.query(OrderStatusHistory).count() == history_before
        db_session.refresh(first)
        db_session.refresh(second)
        assert first.quantity == 8
        assert second.quantity == 8

    def test_edit_items_of_shipped_order_rejected(self, client, db_session, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session), status="shipped")
        db_session.commit()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/items",
            json={"items": [{"product_id": order.items[0].product_id, "quantity": 2}]},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_manager_comment(self, client, db_session, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.put(
            f"/api/v1/admin/orders/{order.id}/comment",
            json={"manager_comment": "Передзвонити після 18:00"},
            headers=admin_headers,
        )

        assert response.json()["data"]["manager_comment"] == "Передзвонити після 18:00"

    def test_contact_update_then_anonymize(self, client, db_session, admin_headers):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.patch(
            f"/api/v1/admin/orders/{order.id}/contact",
            json={"contact_phone": "+380630000000"},
            headers=admin_headers,
        )
        assert response.json()["data"]["contact_phone"] == "+380630000000"

        response = client.post(f"/api/v1/admin/orders/{order.id}/anonymize", headers=admin_headers)
        data = response.json()["data"]
        assert data["contact_name"] is None
        assert data["contact_phone"] is None
        assert data["contact_email"] is None
        assert data["anonymized_at"] is not None

        response = client.patch(
            f"/api/v1/admin/orders/{order.id}/contact",
            json={"contact_name": "Нове Ім'я"},
            headers=admin_headers,
        )
        assert response.status_code == 400

        response = client.post(f"/api/v1/admin/orders/{order.id}/anonymize", headers=admin_headers)
        assert response.status_code == 400


class TestTtnCreation:

    def test_creates_ttn(self, client, db_session, admin_headers, monkeypatch):
        def fake_create(self, properties):
            return InternetDocument(
                int_doc_number="20450000000123",
                ref="doc-ref",
                cost_on_site=Decimal("70"),
                estimated_delivery_date="05.03.2025",
            )

        monkeypatch.setattr(NovaPoshtaClient, "create_internet_document", fake_create)
        order = create_test_order(db_session, user=create_test_user(db_session), status="paid")
        db_session.commit()

        response = client.post(f"/api/v1/admin/orders/{order.id}/ttn", json=TTN_PAYLOAD, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["data"]["tracking_number"] == "20450000000123"
        db_session.refresh(order)
        assert order.tracking_number == "20450000000123"

        again = client.post(f"/api/v1/admin/orders/{order.id}/ttn", json=TTN_PAYLOAD, headers=admin_headers)
        assert again.status_code == 400

    def test_carrier_not_configured(self, client, db_session, admin_headers, monkeypatch):
        from storefront.core.config import settings
        monkeypatch.setattr(settings, "NOVA_POSHTA_API_KEY", None)
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        response = client.post(f"/api/v1/admin/orders/{order.id}/ttn", json=TTN_PAYLOAD, headers=admin_headers)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "NOVA_POSHTA_ERROR"


class TestRowLockingHandlersRunInThreadpool:
    """Handlers that wait on SELECT ... FOR UPDATE must not block the event loop."""

    LOCKING_ROUTES = [
        ("POST", "/api/v1/orders"),
        ("PUT", "/api/v1/orders/{order_id}/status"),
        ("POST", "/api/v1/orders/{order_id}/reorder"),
        ("POST", "/api/v1/orders/{order_id}/pay"),
        ("PUT", "/api/v1/admin/orders/{order_id}/status"),
        ("PUT", "/api/v1/admin/orders/{order_id}/items"),
        ("PUT", "/api/v1/admin/orders/{order_id}/comment"),
        ("PATCH", "/api/v1/admin/orders/{order_id}/contact"),
        ("POST", "/api/v1/admin/orders/{order_id}/anonymize"),
        ("POST", "/api/v1/admin/orders/{order_id}/ttn"),
    ]

    def test_handlers_are_sync(self):
        from storefront.main import app

        endpoints = {
            (method, route.path): route.endpoint
            for route in app.routes
            if isinstance(route, APIRoute)
            for method in route.methods
        }

        for key in self.LOCKING_ROUTES:
            endpoint = inspect.unwrap(endpoints[key])
            assert not inspect.iscoroutinefunction(endpoint), key
