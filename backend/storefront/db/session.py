"""
Database session management
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.core.config import settings
from storefront.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.database_url

_engine_kwargs = {"echo": False, "pool_pre_ping": True}
if connection_string.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    logger.info(f"Database connection: {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME} (PostgreSQL)")
    # Row locks + conditional updates rely on READ COMMITTED
    _engine_kwargs["pool_recycle"] = 3600
    _engine_kwargs["isolation_level"] = "READ COMMITTED"

engine = create_engine(connection_string, **_engine_kwargs)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/orders")
        def list_orders(db: Session = Depends(get_db)):
            return db.query(Order).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Session for code running outside a request (scheduler jobs)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
