"""
Storefront - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the application.

Usage:
    from storefront.exceptions import ConflictError, OrderError

    # In a service
    raise ConflictError("ТТН уже збережено іншим запитом")

    # Domain error with its own HTTP status
    raise OrderError("Замовлення не знайдено", status_code=404)
"""
from typing import Any, Dict, Optional


class StorefrontException(Exception):
    """
    Base exception for all Storefront errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "ORDER_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "STOREFRONT_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the error part of the API envelope."""
        result = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(StorefrontException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(StorefrontException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class InsufficientStockError(BusinessRuleError):
    """Raised when a product does not have enough stock for the order."""

    error_code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(
        self,
        product_name: str,
        *,
        requested: Optional[int] = None,
        available: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["product"] = product_name
        if requested is not None:
            details["requested"] = requested
        if available is not None:
            details["available"] = available
        message = f'Товар "{product_name}" недоступний у потрібній кількості (insufficient stock)'
        super().__init__(message, details=details)


# ===================
# Domain errors with per-instance status
# ===================


class _DomainError(StorefrontException):
    """Domain error whose HTTP status is chosen at the raise site."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message, details=details)


class OrderError(_DomainError):
    """Invalid transition, missing order or ownership violation."""

    error_code = "ORDER_ERROR"
    status_code = 400


class PaymentError(_DomainError):
    """Unsupported provider, order not payable or already paid."""

    error_code = "PAYMENT_ERROR"
    status_code = 400


class CartError(_DomainError):
    """Cart mutation rejected (unknown product, not enough stock)."""

    error_code = "CART_ERROR"
    status_code = 400


# ===================
# 5xx Integration Errors
# ===================


class IntegrationError(StorefrontException):
    """Raised when an external service integration fails."""

    error_code = "INTEGRATION_ERROR"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        *,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service
        if status_code is not None:
            self.status_code = status_code
        super().__init__(f"{service}: {message}", details=details)


class PaymentProviderError(IntegrationError):
    """Raised when a payment provider call or callback fails."""

    error_code = "PAYMENT_PROVIDER_ERROR"


class InvalidSignatureError(PaymentProviderError):
    """Raised when a provider callback signature does not verify."""

    error_code = "INVALID_SIGNATURE"
    status_code = 403


class LiqPayError(PaymentProviderError):
    error_code = "LIQPAY_ERROR"

    def __init__(self, message: str = "LiqPay error", **kwargs):
        super().__init__("LiqPay", message, **kwargs)


class MonobankError(PaymentProviderError):
    error_code = "MONOBANK_ERROR"

    def __init__(self, message: str = "Monobank error", **kwargs):
        super().__init__("Monobank", message, **kwargs)


class CarrierError(IntegrationError):
    """Raised when a shipping carrier integration fails."""

    error_code = "CARRIER_ERROR"


class NovaPoshtaError(CarrierError):
    """Nova Poshta API failure; 400 when the API rejected our input."""

    error_code = "NOVA_POSHTA_ERROR"

    def __init__(self, message: str = "Помилка API Нової Пошти", **kwargs):
        super().__init__("Nova Poshta", message, **kwargs)


class NotificationError(IntegrationError):
    """Raised when a notification channel fails to deliver."""

    error_code = "NOTIFICATION_ERROR"
