"""
Shipment Service

Creates the carrier document (TTN) for an order. The tracking number is
write-once: an order that already has one is rejected before the carrier
is called, and the final write is conditional on it still being empty.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from storefront.exceptions import ConflictError, OrderError
from storefront.models.order import Order
from storefront.schemas.shipment import ShipmentCreate
from storefront.services.nova_poshta import InternetDocument, NovaPoshtaClient
from storefront.logging_config import get_logger

logger = get_logger(__name__)


def _document_properties(order: Order, payload: ShipmentCreate) -> dict:
    cost = payload.cost if payload.cost is not None else Decimal(order.total_amount)
    return {
        "PayerType": payload.payer_type,
        "PaymentMethod": payload.payment_method,
        "CargoType": payload.cargo_type,
        "Weight": str(payload.weight),
        "SeatsAmount": str(payload.seats_amount),
        "Description": payload.description,
        "Cost": str(cost),
        "ServiceType": payload.service_type,
        "Sender": payload.sender_ref,
        "SenderAddress": payload.sender_address_ref,
        "ContactSender": payload.sender_contact_ref,
        "SendersPhone": payload.sender_phone,
        "CityRecipient": payload.recipient_city_ref or order.delivery_city_ref or "",
        "RecipientAddress": (
            payload.recipient_warehouse_ref
            or payload.recipient_address_ref
            or order.delivery_warehouse_ref
            or ""
        ),
        "RecipientName": payload.recipient_name or order.contact_name or "",
        "RecipientsPhone": payload.recipient_phone or order.contact_phone or "",
    }


def create_shipment(
    db: Session,
    order_id: int,
    payload: ShipmentCreate,
    client: Optional[NovaPoshtaClient] = None,
) -> InternetDocument:
    """
    Create a Nova Poshta TTN for the order and store its number.

    Raises:
        OrderError: 404 unknown order, 400 tracking number already set
        NovaPoshtaError: carrier rejected the request or was unreachable
        ConflictError: another request stored a TTN while the carrier was called
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise OrderError("Замовлення не знайдено", 404)
    if order.tracking_number:
        raise OrderError(f"ТТН вже створено: {order.tracking_number}", 400)

    properties = _document_properties(order, payload)
    order_number = order.order_number
    # No transaction may stay open across the carrier call
    db.commit()

    client = client or NovaPoshtaClient()
    document = client.create_internet_document(properties)

    try:
        updated = (
            db.query(Order)
            .filter(Order.id == order_id, Order.tracking_number.is_(None))
            .update(
                {Order.tracking_number: document.int_doc_number, Order.updated_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    if not updated:
        logger.error(
            "TTN created but order already has a tracking number",
            extra={"order_number": order_number, "ttn": document.int_doc_number},
        )
        raise ConflictError(
            "ТТН для цього замовлення вже створено іншим запитом",
            details={"orphan_ttn": document.int_doc_number},
        )

    logger.info(
        f"TTN {document.int_doc_number} created for order {order_number}",
        extra={"order_number": order_number, "ttn": document.int_doc_number},
    )
    return document
