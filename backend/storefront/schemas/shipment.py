"""
Shipment (TTN) Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional
from decimal import Decimal


class ShipmentCreate(BaseModel):
    """
    Parameters for a Nova Poshta internet document.

    Recipient fields default to the order's contact and delivery data.
    """
    # Sender (counterparty refs from the carrier cabinet)
    sender_ref: str = Field(..., min_length=1)
    sender_address_ref: str = Field(..., min_length=1)
    sender_contact_ref: str = Field(..., min_length=1)
    sender_phone: str = Field(..., min_length=10, max_length=20)

    # Recipient
    recipient_name: Optional[str] = Field(None, max_length=200)
    recipient_phone: Optional[str] = Field(None, max_length=20)
    recipient_city_ref: Optional[str] = None
    recipient_warehouse_ref: Optional[str] = None
    recipient_address_ref: Optional[str] = None

    # Parcel
    payer_type: Literal["Sender", "Recipient", "ThirdPerson"] = "Recipient"
    payment_method: Literal["Cash", "NonCash"] = "Cash"
    cargo_type: Literal["Cargo", "Documents", "TiresWheels", "Pallet", "Parcel"] = "Parcel"
    service_type: Literal[
        "WarehouseWarehouse", "WarehouseDoors", "DoorsWarehouse", "DoorsDoors"
    ] = "WarehouseWarehouse"
    weight: Decimal = Field(..., gt=0, le=1000, description="kg")
    seats_amount: int = Field(1, ge=1, le=100)
    description: str = Field("Товари для дому", min_length=1, max_length=100)
    cost: Optional[Decimal] = Field(None, ge=0, description="Declared value; defaults to order total")


class ShipmentResponse(BaseModel):
    tracking_number: str
    ref: Optional[str] = None
    cost_on_site: Optional[Decimal] = None
    estimated_delivery_date: Optional[str] = None
