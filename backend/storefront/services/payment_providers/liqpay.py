"""
LiqPay provider

Checkout is a redirect carrying ``data`` (base64 JSON) and ``signature``
(base64 SHA-1 of private_key + data + private_key). Callbacks arrive as a
form with the same two fields.
"""
import base64
import hashlib
import hmac
import json
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from storefront.core.config import settings
from storefront.core.status_config import PaymentStatus
from storefront.exceptions import InvalidSignatureError, LiqPayError
from storefront.services.payment_providers.base import (
    PaymentCallbackResult,
    PaymentInitResult,
    order_reference,
    parse_order_reference,
)
from storefront.logging_config import get_logger

logger = get_logger(__name__)

SUCCESS_STATUSES = {"success", "sandbox"}
FAILURE_STATUSES = {"failure", "error", "reversed"}


class LiqPayProvider:
    name = "liqpay"

    def __init__(
        self,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        checkout_url: Optional[str] = None,
    ):
        self.public_key = public_key if public_key is not None else settings.LIQPAY_PUBLIC_KEY
        self.private_key = private_key if private_key is not None else settings.LIQPAY_PRIVATE_KEY
        self.checkout_url = checkout_url or settings.LIQPAY_CHECKOUT_URL

    def create_signature(self, data: str) -> str:
        sign_string = f"{self.private_key}{data}{self.private_key}"
        return base64.b64encode(hashlib.sha1(sign_string.encode("utf-8")).digest()).decode("ascii")

    @staticmethod
    def encode_data(params: dict) -> str:
        return base64.b64encode(json.dumps(params).encode("utf-8")).decode("ascii")

    def create_payment(
        self,
        order_id: int,
        amount: Decimal,
        description: str,
        result_url: str,
        server_url: str,
    ) -> PaymentInitResult:
        """Build the signed checkout URL. No network call is needed."""
        if not self.public_key or not self.private_key:
            raise LiqPayError("LiqPay keys not configured", status_code=503)

        params = {
            "public_key": self.public_key,
            "version": 3,
            "action": "pay",
            "amount": float(amount),
            "currency": "UAH",
            "description": description,
            "order_id": order_reference(order_id),
            "result_url": result_url,
            "server_url": server_url,
        }
        data = self.encode_data(params)
        signature = self.create_signature(data)
        redirect_url = f"{self.checkout_url}?{urlencode({'data': data, 'signature': signature})}"
        return PaymentInitResult(redirect_url=redirect_url)

    def verify_callback(self, data: str, signature: str) -> PaymentCallbackResult:
        """
        Check the signature and map the callback.

        Raises:
            InvalidSignatureError: signature mismatch (nothing may be applied)
            LiqPayError: signed payload is malformed
        """
        if not self.private_key:
            raise LiqPayError("LiqPay keys not configured", status_code=503)

        expected = self.create_signature(data)
        if not signature or not hmac.compare_digest(expected, signature):
            raise InvalidSignatureError("LiqPay", "Invalid LiqPay signature")

        try:
            decoded = json.loads(base64.b64decode(data).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise LiqPayError(f"Malformed callback data: {e}", status_code=400)

        order_id = parse_order_reference(decoded.get("order_id"))
        if order_id is None:
            raise LiqPayError("Invalid order_id in callback", status_code=400)

        return PaymentCallbackResult(
            order_id=order_id,
            status=map_status(decoded.get("status")),
            transaction_id=str(decoded.get("transaction_id") or decoded.get("payment_id") or ""),
            raw_payload=decoded,
        )


def map_status(status: Optional[str]) -> PaymentStatus:
    if status in SUCCESS_STATUSES:
        return PaymentStatus.SUCCESS
    if status in FAILURE_STATUSES:
        return PaymentStatus.FAILURE
    return PaymentStatus.PROCESSING
