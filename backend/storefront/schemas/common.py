"""
Common API Response Schemas

Every endpoint answers with the same envelope:

    {"success": true, "data": ...}
    {"success": false, "error": {"code", "message", "details"}, "timestamp": ...}
"""
from typing import Generic, List, TypeVar
from pydantic import BaseModel, Field, field_validator


T = TypeVar('T')


# ============================================================================
# Envelope
# ============================================================================

class ApiResponse(BaseModel, Generic[T]):
    """Successful response wrapper."""
    success: bool = True
    data: T


class MessageResponse(BaseModel):
    """Simple message payload for operations that don't return a resource."""
    message: str


# ============================================================================
# Pagination Models
# ============================================================================

class PaginationParams(BaseModel):
    """
    Standardized pagination parameters for list endpoints.

    Offset-based; limit is clamped to 1..100.
    """
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator('offset')
    @classmethod
    def validate_offset(cls, v: int) -> int:
        return max(0, v)


class PaginationMeta(BaseModel):
    total: int = Field(..., description="Total number of records matching the query")
    offset: int
    limit: int
    returned: int


class ListResponse(BaseModel, Generic[T]):
    """List payload with pagination metadata."""
    items: List[T]
    pagination: PaginationMeta
