"""
Cart Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from decimal import Decimal


class CartItemAdd(BaseModel):
    """Add a product to the cart (quantity is added to what is there)"""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1, le=9999)


class CartItemUpdate(BaseModel):
    """Set the quantity of a cart line (last write wins)"""
    quantity: int = Field(..., ge=1, le=9999)


class CartItemResponse(BaseModel):
    product_id: int
    product_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    available: int
    added_at: datetime


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    items_count: int
    total: Decimal
