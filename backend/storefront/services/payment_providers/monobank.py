"""
Monobank acquiring provider

Invoices are created over HTTP with the merchant ``X-Token``. Webhooks are
signed: ``X-Sign`` is a base64 ECDSA (SHA-256) signature over the raw body,
verifiable with the merchant public key from ``/pubkey``.
"""
import base64
import binascii
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from storefront.core.config import settings
from storefront.core.status_config import PaymentStatus
from storefront.exceptions import InvalidSignatureError, MonobankError
from storefront.services.payment_providers.base import (
    PaymentCallbackResult,
    PaymentInitResult,
    order_reference,
    parse_order_reference,
)
from storefront.logging_config import get_logger

logger = get_logger(__name__)

UAH_CURRENCY_CODE = 980
FAILURE_STATUSES = {"failure", "reversed", "expired"}


def load_public_key(encoded: str) -> ec.EllipticCurvePublicKey:
    """Monobank hands out the key as base64 of a PEM (or bare DER) document."""
    try:
        raw = base64.b64decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise MonobankError(f"Malformed public key: {e}", status_code=502)
    try:
        if raw.lstrip().startswith(b"-----BEGIN"):
            return serialization.load_pem_public_key(raw)
        return serialization.load_der_public_key(raw)
    except ValueError as e:
        raise MonobankError(f"Unreadable public key: {e}", status_code=502)


class MonobankProvider:
    name = "monobank"

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        public_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.token = token if token is not None else settings.MONOBANK_TOKEN
        self.api_url = (api_url or settings.MONOBANK_API_URL).rstrip("/")
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT
        pinned = public_key if public_key is not None else settings.MONOBANK_PUBLIC_KEY
        self._public_key = load_public_key(pinned) if pinned else None

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def create_payment(
        self,
        order_id: int,
        amount: Decimal,
        description: str,
        result_url: str,
        server_url: str,
    ) -> PaymentInitResult:
        if not self.token:
            raise MonobankError("Monobank token not configured", status_code=503)

        kopecks = int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        payload = {
            "amount": kopecks,
            "ccy": UAH_CURRENCY_CODE,
            "merchantPaymInfo": {
                "reference": order_reference(order_id),
                "destination": description,
            },
            "redirectUrl": result_url,
            "webHookUrl": server_url,
        }

        try:
            response = requests.post(
                f"{self.api_url}/invoice/create",
                json=payload,
                headers={"X-Token": self.token},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.warning("Monobank invoice request timed out", extra={"order_id": order_id})
            raise MonobankError("Request timed out", status_code=502)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Monobank invoice request failed: {e}", extra={"order_id": order_id})
            raise MonobankError(f"Request failed: {e}", status_code=502)

        if not response.ok:
            try:
                err_text = response.json().get("errText")
            except ValueError:
                err_text = None
            raise MonobankError(
                f"API error: {err_text or response.status_code}",
                status_code=502 if response.status_code >= 500 else 400,
            )

        data = response.json()
        return PaymentInitResult(redirect_url=data["pageUrl"], payment_id=data["invoiceId"])

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def get_public_key(self) -> ec.EllipticCurvePublicKey:
        """Merchant public key, fetched once and cached on the provider."""
        if self._public_key is not None:
            return self._public_key
        if not self.token:
            raise MonobankError("Monobank token not configured", status_code=503)

        try:
            response = requests.get(
                f"{self.api_url}/pubkey",
                headers={"X-Token": self.token},
                timeout=self.timeout,
            )
            response.raise_for_status()
            key = response.json()["key"]
        except (requests.exceptions.RequestException, ValueError, KeyError) as e:
            raise MonobankError(f"Failed to get public key: {e}", status_code=502)

        self._public_key = load_public_key(key)
        return self._public_key

    def verify_callback(self, body: bytes, x_sign: Optional[str]) -> PaymentCallbackResult:
        """
        Check ``X-Sign`` over the raw body and map the callback.

        Raises:
            InvalidSignatureError: signature missing or wrong
            MonobankError: signed payload is malformed, or key lookup failed
        """
        if not x_sign:
            raise InvalidSignatureError("Monobank", "Missing X-Sign header")
        try:
            signature = base64.b64decode(x_sign)
        except (binascii.Error, ValueError):
            raise InvalidSignatureError("Monobank", "Malformed X-Sign header")

        public_key = self.get_public_key()
        try:
            public_key.verify(signature, body, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            raise InvalidSignatureError("Monobank", "Invalid Monobank signature")

        try:
            data = json.loads(body)
        except ValueError as e:
            raise MonobankError(f"Malformed callback body: {e}", status_code=400)

        order_id = parse_order_reference(data.get("reference"))
        if order_id is None:
            raise MonobankError("Invalid reference in callback", status_code=400)

        return PaymentCallbackResult(
            order_id=order_id,
            status=map_status(data.get("status")),
            transaction_id=str(data.get("invoiceId") or ""),
            raw_payload=data,
        )


def map_status(status: Optional[str]) -> PaymentStatus:
    if status == "success":
        return PaymentStatus.SUCCESS
    if status in FAILURE_STATUSES:
        return PaymentStatus.FAILURE
    return PaymentStatus.PROCESSING
