"""
Payment Pydantic Schemas
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal

from storefront.core.status_config import PaymentProvider


class PaymentInitRequest(BaseModel):
    provider: PaymentProvider


class PaymentInitResponse(BaseModel):
    redirect_url: str
    payment_id: Optional[str] = None
    provider: str


class WebhookAck(BaseModel):
    """Body returned to payment providers"""
    ok: bool = True
    outcome: Optional[str] = None


class PaymentStatusResponse(BaseModel):
    order_id: int
    provider: Optional[str] = None
    external_payment_id: Optional[str] = None
    status: str
    amount: Optional[Decimal] = None
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True
