"""
API Dependencies

Authentication, cron-secret and pagination dependencies shared by the
endpoint modules.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import get_user_from_token, secrets_match
from storefront.db.session import get_db
from storefront.models.user import User
from storefront.schemas.common import PaginationParams

# Tokens are issued by the auth service; this API only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from access token

    Raises:
        HTTPException 401 if token is invalid or user not found
        HTTPException 403 if the account is blocked
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = get_user_from_token(token, expected_type="access")
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


async def get_current_staff_user(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Dependency to require staff access (admin or manager).

    Raises:
        HTTPException 403 if user is not staff
    """
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required"
        )
    return current_user


async def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """Cron endpoints accept only ``Authorization: Bearer <CRON_SECRET>``."""
    provided = None
    if authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]
    if not settings.CRON_SECRET or not secrets_match(provided, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_pagination_params(
    offset: int = Query(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    ),
    limit: int = Query(
        default=20,
        ge=1,
        le=100,
        description="Maximum number of records to return (1-100)"
    )
) -> PaginationParams:
    """Dependency for standardized offset pagination."""
    return PaginationParams(offset=offset, limit=limit)
