"""Payment provider registry"""
from typing import Dict, Union

from storefront.exceptions import PaymentError
from storefront.services.payment_providers.base import PaymentCallbackResult, PaymentInitResult
from storefront.services.payment_providers.liqpay import LiqPayProvider
from storefront.services.payment_providers.monobank import MonobankProvider

Provider = Union[LiqPayProvider, MonobankProvider]

_providers: Dict[str, Provider] = {}


def get_provider(name: str) -> Provider:
    """Shared provider instance (Monobank caches its public key)."""
    if name not in _providers:
        if name == LiqPayProvider.name:
            _providers[name] = LiqPayProvider()
        elif name == MonobankProvider.name:
            _providers[name] = MonobankProvider()
        else:
            raise PaymentError(f"Непідтримуваний платіжний провайдер: {name}", 400)
    return _providers[name]


def reset_providers() -> None:
    """Drop cached instances (after settings change)."""
    _providers.clear()


__all__ = [
    "LiqPayProvider",
    "MonobankProvider",
    "PaymentCallbackResult",
    "PaymentInitResult",
    "get_provider",
    "reset_providers",
]
