"""Database models"""
from storefront.models.user import User, RefreshToken
from storefront.models.product import Product
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem, OrderStatusHistory
from storefront.models.payment import Payment
from storefront.models.notification import NotificationOutbox

__all__ = [
    # Accounts
    "User",
    "RefreshToken",
    # Catalogue
    "Product",
    "CartItem",
    # Orders
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Payment",
    "NotificationOutbox",
]
