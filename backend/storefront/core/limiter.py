# path: backend/storefront/core/limiter.py
"""
Rate limiting support (slowapi).

A module-level limiter is exposed for route decorators; apply_rate_limiting()
wires the middleware and the 429 handler onto the app.
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)


def apply_rate_limiting(app) -> Limiter:
    """Attach SlowAPI middleware and exception handler."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    return limiter
