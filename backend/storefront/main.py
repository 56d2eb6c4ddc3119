"""
Storefront - Main FastAPI Application
"""
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.api.v1 import router as api_v1_router
from storefront.core.config import settings
from storefront.core.limiter import apply_rate_limiting
from storefront.exceptions import StorefrontException
from storefront.logging_config import setup_logging, get_logger

# Setup structured logging
setup_logging()
logger = get_logger(__name__)


# ===================
# Security Headers Middleware
# ===================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def init_database():
    """Create missing tables on startup (idempotent)."""
    try:
        from storefront.db.session import engine
        from storefront.db.base import Base
        import storefront.models  # noqa: F401
        logger.info("Checking database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting Storefront API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
        }
    )
    init_database()

    if settings.SCHEDULER_ENABLED:
        from storefront.scheduler import start_scheduler, shutdown_scheduler
        start_scheduler()
    yield
    if settings.SCHEDULER_ENABLED:
        shutdown_scheduler()
    logger.info("Shutting down Storefront API")


# Create FastAPI app
app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Cart, orders, payments and delivery for the household-goods shop",
    version=settings.VERSION,
    lifespan=lifespan,
)

apply_rate_limiting(app)

# Security headers middleware (outermost)
app.add_middleware(SecurityHeadersMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)


# ===================
# Exception Handlers
# ===================

def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _error_response(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": _timestamp()},
        headers=headers,
    )


HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


@app.exception_handler(StorefrontException)
async def storefront_exception_handler(request: Request, exc: StorefrontException):
    logger.warning(
        f"Storefront Exception: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict(), "timestamp": _timestamp()},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    logger.warning("Validation error on %s", request.url.path, extra={"errors": errors})
    return _error_response(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {str(exc)}", exc_info=True)
    return _error_response(500, "DATABASE_ERROR", "A database error occurred. Please try again.")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred. Please try again later.")


# Include API routes
app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": f"{settings.PROJECT_NAME} API", "version": settings.VERSION, "status": "online"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=True)
