"""
Order Pydantic Schemas
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from storefront.core.status_config import DeliveryMethod, OrderStatus, PaymentMethod


# ============================================================================
# Request Schemas
# ============================================================================

class CheckoutRequest(BaseModel):
    """Turn the current cart into an order"""
    contact_name: str = Field(..., min_length=2, max_length=200)
    contact_phone: str = Field(..., min_length=10, max_length=20)
    contact_email: Optional[str] = Field(None, max_length=255)
    delivery_method: DeliveryMethod
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_city_ref: Optional[str] = Field(None, max_length=64)
    delivery_warehouse: Optional[str] = Field(None, max_length=255)
    delivery_warehouse_ref: Optional[str] = Field(None, max_length=64)
    delivery_address: Optional[str] = Field(None, max_length=500)
    payment_method: PaymentMethod
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator('contact_phone')
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        digits = "".join(ch for ch in v if ch.isdigit() or ch == "+")
        if len(digits.lstrip("+")) < 10:
            raise ValueError("Невалідний номер телефону")
        return digits

    @model_validator(mode="after")
    def require_delivery_target(self):
        """Nova Poshta needs a city and a branch; courier methods need an address."""
        if self.delivery_method == DeliveryMethod.NOVA_POSHTA:
            if not self.delivery_city or not (self.delivery_warehouse or self.delivery_warehouse_ref):
                raise ValueError("Для Нової Пошти потрібні місто та відділення")
        elif self.delivery_method in (DeliveryMethod.UKRPOSHTA, DeliveryMethod.PALLET):
            if not self.delivery_address and not self.delivery_city:
                raise ValueError("Вкажіть адресу доставки")
        return self


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    comment: Optional[str] = Field(None, max_length=1000)


class OrderItemEdit(BaseModel):
    """One line change. quantity=0 removes the line."""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=0, le=9999)


class OrderItemsUpdate(BaseModel):
    items: List[OrderItemEdit] = Field(..., min_length=1)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    delivery_cost: Optional[Decimal] = Field(None, ge=0)


class ManagerCommentUpdate(BaseModel):
    manager_comment: str = Field(..., max_length=2000)


class ContactUpdate(BaseModel):
    contact_name: Optional[str] = Field(None, min_length=2, max_length=200)
    contact_phone: Optional[str] = Field(None, min_length=10, max_length=20)
    contact_email: Optional[str] = Field(None, max_length=255)


# ============================================================================
# Response Schemas
# ============================================================================

class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    product_code: str
    product_name: str
    price_at_order: Decimal
    quantity: int
    subtotal: Decimal

    class Config:
        from_attributes = True


class OrderStatusHistoryResponse(BaseModel):
    id: int
    old_status: Optional[str]
    new_status: str
    change_source: str
    changed_by: Optional[int]
    comment: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Order row for list views"""
    id: int
    order_number: str
    status: str
    client_type: str
    total_amount: Decimal
    items_count: int
    payment_method: str
    payment_status: str
    delivery_method: str
    contact_name: Optional[str]
    tracking_number: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(OrderListResponse):
    """Full order detail"""
    user_id: Optional[int]
    discount_amount: Decimal
    delivery_cost: Decimal
    contact_phone: Optional[str]
    contact_email: Optional[str]
    delivery_city: Optional[str]
    delivery_warehouse: Optional[str]
    delivery_address: Optional[str]
    comment: Optional[str]
    manager_comment: Optional[str]
    cancelled_reason: Optional[str]
    cancelled_by: Optional[str]
    anonymized_at: Optional[datetime]
    updated_at: datetime
    items: List[OrderItemResponse] = []
    status_history: List[OrderStatusHistoryResponse] = []


class ReorderResponse(BaseModel):
    added_count: int
    failed_items: List[str]
    message: str
