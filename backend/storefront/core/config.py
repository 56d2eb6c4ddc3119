"""
Configuration entry point

Re-exports the cached settings so modules can do
``from storefront.core.config import settings``.
"""
from storefront.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
