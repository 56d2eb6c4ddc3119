"""
Tests for the Nova Poshta client and TTN creation.
"""
from decimal import Decimal

import pytest
import requests

from storefront.exceptions import ConflictError, NovaPoshtaError, OrderError
from storefront.models.order import Order
from storefront.schemas.shipment import ShipmentCreate
from storefront.services.nova_poshta import InternetDocument, NovaPoshtaClient
from storefront.services.shipment_service import create_shipment

from tests.factories import create_test_order, create_test_user


class FakeResponse:
    def __init__(self, body, status_code=200):
        self._body = body
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._body


def _shipment(**overrides) -> ShipmentCreate:
    data = {
        "sender_ref": "sender-ref",
        "sender_address_ref": "sender-address-ref",
        "sender_contact_ref": "sender-contact-ref",
        "sender_phone": "380501112233",
        "recipient_city_ref": "city-ref",
        "recipient_warehouse_ref": "warehouse-ref",
        "weight": Decimal("2.5"),
    }
    data.update(overrides)
    return ShipmentCreate(**data)


class FakeCarrier:
    def __init__(self, number="20450000000001"):
        self.number = number
        self.calls = []

    def create_internet_document(self, properties):
        self.calls.append(properties)
        return InternetDocument(
            int_doc_number=self.number,
            ref="doc-ref",
            cost_on_site=Decimal("70"),
            estimated_delivery_date="03.03.2025",
        )


# =============================================================================
# Client
# =============================================================================

class TestNovaPoshtaClient:

    def test_call_api_sends_envelope(self, monkeypatch):
        sent = {}

        def fake_post(url, json, timeout):
            sent.update(url=url, json=json)
            return FakeResponse({"success": True, "data": [{"Ref": "x"}], "errors": []})

        monkeypatch.setattr(requests, "post", fake_post)

        data = NovaPoshtaClient(api_key="np-key").call_api("Address", "getWarehouses", {"CityRef": "c"})

        assert data == [{"Ref": "x"}]
        assert sent["json"] == {
            "apiKey": "np-key",
            "modelName": "Address",
            "calledMethod": "getWarehouses",
            "methodProperties": {"CityRef": "c"},
        }

    def test_api_rejection_is_400(self, monkeypatch):
        monkeypatch.setattr(
            requests, "post",
            lambda *a, **kw: FakeResponse({"success": False, "data": [], "errors": ["RecipientAddress is invalid"]}),
        )

        with pytest.raises(NovaPoshtaError) as exc_info:
            NovaPoshtaClient(api_key="np-key").call_api("InternetDocument", "save")

        assert exc_info.value.status_code == 400
        assert "RecipientAddress is invalid" in exc_info.value.message

    def test_timeout_is_502(self, monkeypatch):
        def fake_post(*args, **kwargs):
            raise requests.exceptions.Timeout()

        monkeypatch.setattr(requests, "post", fake_post)

        with pytest.raises(NovaPoshtaError) as exc_info:
            NovaPoshtaClient(api_key="np-key").track_parcel("20450000000001")

        assert exc_info.value.status_code == 502

    def test_missing_key_is_503(self):
        with pytest.raises(NovaPoshtaError) as exc_info:
            NovaPoshtaClient(api_key="").call_api("Address", "searchSettlements")
        assert exc_info.value.status_code == 503

    def test_get_status_code(self, monkeypatch):
        monkeypatch.setattr(
            requests, "post",
            lambda *a, **kw: FakeResponse({"success": True, "data": [{"StatusCode": 9, "Status": "Отримано"}]}),
        )
        assert NovaPoshtaClient(api_key="np-key").get_status_code("20450000000001") == "9"

    def test_create_internet_document(self, monkeypatch):
        sent = {}

        def fake_post(url, json, timeout):
            sent.update(json)
            return FakeResponse({"success": True, "data": [{
                "IntDocNumber": "20450000000001",
                "Ref": "doc-ref",
                "CostOnSite": 70,
                "EstimatedDeliveryDate": "03.03.2025",
            }]})

        monkeypatch.setattr(requests, "post", fake_post)

        document = NovaPoshtaClient(api_key="np-key").create_internet_document({"Weight": "2.5"})

        assert document.int_doc_number == "20450000000001"
        assert document.cost_on_site == Decimal("70")
        assert sent["modelName"] == "InternetDocument"
        assert sent["calledMethod"] == "save"
        assert sent["methodProperties"]["Weight"] == "2.5"
        assert sent["methodProperties"]["RecipientType"] == "PrivatePerson"


# =============================================================================
# TTN creation
# =============================================================================

class TestCreateShipment:

    def test_stores_tracking_number(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session), status="paid")
        db_session.commit()
        carrier = FakeCarrier()

        document = create_shipment(db_session, order.id, _shipment(), client=carrier)

        assert document.int_doc_number == "20450000000001"
        db_session.refresh(order)
        assert order.tracking_number == "20450000000001"
        props = carrier.calls[0]
        assert props["CityRecipient"] == "city-ref"
        assert props["RecipientAddress"] == "warehouse-ref"
        assert props["RecipientName"] == "Олена Коваль"
        assert props["Cost"] == str(order.total_amount)

    def test_existing_ttn_rejected_before_carrier_call(self, db_session):
        order = create_test_order(
            db_session, user=create_test_user(db_session), tracking_number="20450000000999"
        )
        db_session.commit()
        carrier = FakeCarrier()

        with pytest.raises(OrderError) as exc_info:
            create_shipment(db_session, order.id, _shipment(), client=carrier)

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "ТТН вже створено: 20450000000999"
        assert carrier.calls == []

    def test_missing_order(self, db_session):
        with pytest.raises(OrderError) as exc_info:
            create_shipment(db_session, 12345, _shipment(), client=FakeCarrier())
        assert exc_info.value.status_code == 404

    def test_concurrent_ttn_is_conflict(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        class RacingCarrier(FakeCarrier):
            def create_internet_document(inner_self, properties):
                # Another request stores its TTN while we wait for the carrier
                db_session.query(Order).filter(Order.id == order.id).update(
                    {Order.tracking_number: "20450000000555"}, synchronize_session=False
                )
                db_session.commit()
                return super().create_internet_document(properties)

        with pytest.raises(ConflictError):
            create_shipment(db_session, order.id, _shipment(), client=RacingCarrier())

        db_session.refresh(order)
        assert order.tracking_number == "20450000000555"

    def test_carrier_failure_leaves_order_without_ttn(self, db_session):
        order = create_test_order(db_session, user=create_test_user(db_session))
        db_session.commit()

        class BrokenCarrier:
            def create_internet_document(self, properties):
                raise NovaPoshtaError("Request timed out", status_code=502)

        with pytest.raises(NovaPoshtaError):
            create_shipment(db_session, order.id, _shipment(), client=BrokenCarrier())

        db_session.refresh(order)
        assert order.tracking_number is None
