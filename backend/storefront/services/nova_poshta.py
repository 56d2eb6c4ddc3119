"""
Nova Poshta API client

Every call is a JSON POST of {apiKey, modelName, calledMethod,
methodProperties}; the reply carries ``success``, ``data`` and ``errors``.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from storefront.core.config import settings
from storefront.exceptions import NovaPoshtaError
from storefront.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class InternetDocument:
    int_doc_number: str
    ref: str
    cost_on_site: Decimal
    estimated_delivery_date: str


class NovaPoshtaClient:
    """Thin client over the Nova Poshta JSON API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.NOVA_POSHTA_API_KEY
        self.api_url = api_url or settings.NOVA_POSHTA_API_URL
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT

    def call_api(
        self,
        model_name: str,
        called_method: str,
        method_properties: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Call one API method and return its ``data`` list.

        Raises:
            NovaPoshtaError: 400 when the API rejected the request,
                502 on transport failure or timeout
        """
        if not self.api_key:
            raise NovaPoshtaError("Nova Poshta API key not configured", status_code=503)

        payload = {
            "apiKey": self.api_key,
            "modelName": model_name,
            "calledMethod": called_method,
            "methodProperties": method_properties or {},
        }
        try:
            response = requests.post(self.api_url, json=payload, timeout=self.timeout)
            body = response.json()
        except requests.exceptions.Timeout:
            logger.warning(f"Nova Poshta {model_name}.{called_method} timed out")
            raise NovaPoshtaError("Request timed out", status_code=502)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Nova Poshta {model_name}.{called_method} failed: {e}")
            raise NovaPoshtaError(f"Request failed: {e}", status_code=502)
        except ValueError:
            raise NovaPoshtaError("Invalid JSON in response", status_code=502)

        if not body.get("success"):
            errors = ", ".join(body.get("errors") or []) or "Помилка API Нової Пошти"
            raise NovaPoshtaError(errors, status_code=400 if response.ok else 502)

        return body.get("data") or []

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_parcel(self, ttn: str) -> Optional[Dict[str, Any]]:
        """Status document for one TTN, or None if the carrier has none."""
        data = self.call_api("TrackingDocument", "getStatusDocuments", {
            "Documents": [{"DocumentNumber": ttn}],
        })
        return data[0] if data else None

    def get_status_code(self, ttn: str) -> Optional[str]:
        status = self.track_parcel(ttn)
        if not status or status.get("StatusCode") is None:
            return None
        return str(status["StatusCode"])

    # ------------------------------------------------------------------
    # Internet documents
    # ------------------------------------------------------------------

    def create_internet_document(self, properties: Dict[str, Any]) -> InternetDocument:
        """Create a TTN. ``properties`` use the API's own field names."""
        props = {
            "SenderWarehouseIndex": "",
            "RecipientWarehouseIndex": "",
            "DateTime": datetime.now().strftime("%d.%m.%Y"),
            "RecipientCityName": "",
            "RecipientArea": "",
            "RecipientAreaRegions": "",
            "RecipientAddressName": "",
            "RecipientType": "PrivatePerson",
        }
        props.update(properties)

        data = self.call_api("InternetDocument", "save", props)
        if not data:
            raise NovaPoshtaError("Не вдалося створити ТТН", status_code=502)

        doc = data[0]
        number = str(doc.get("IntDocNumber") or "")
        if not number:
            raise NovaPoshtaError("Не вдалося створити ТТН", status_code=502)
        return InternetDocument(
            int_doc_number=number,
            ref=str(doc.get("Ref") or ""),
            cost_on_site=Decimal(str(doc.get("CostOnSite") or 0)),
            estimated_delivery_date=str(doc.get("EstimatedDeliveryDate") or ""),
        )
