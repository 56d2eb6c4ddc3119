"""
API v1 Router - Storefront
"""
from fastapi import APIRouter
from storefront.api.v1.endpoints import (
    cart,
    orders,
    admin_orders,
    webhooks,
    cron,
)

router = APIRouter()

# Client
router.include_router(cart.router)
router.include_router(orders.router)

# Back office
router.include_router(admin_orders.router)

# Payment providers
router.include_router(webhooks.router)

# Scheduled janitors
router.include_router(cron.router)
