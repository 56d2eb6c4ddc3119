"""
Shared types for payment providers
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from storefront.core.status_config import PaymentStatus

_ORDER_REFERENCE = re.compile(r"^order_(\d+)$")


@dataclass
class PaymentInitResult:
    """Where to send the customer, and the provider's payment id if it has one yet."""
    redirect_url: str
    payment_id: Optional[str] = None


@dataclass
class PaymentCallbackResult:
    """Provider callback mapped onto our vocabulary."""
    order_id: int
    status: PaymentStatus  # success | failure | processing
    transaction_id: str
    raw_payload: Dict[str, Any] = field(default_factory=dict)


def order_reference(order_id: int) -> str:
    return f"order_{order_id}"


def parse_order_reference(reference: Any) -> Optional[int]:
    """``order_42`` -> 42; anything else -> None."""
    match = _ORDER_REFERENCE.match(str(reference or ""))
    return int(match.group(1)) if match else None
