"""
Common schema types used across the API.
"""

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    detail: str
    request_id: Optional[str] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """Offset/limit page of items."""

    items: List[T]
    total: int
    limit: int
    offset: int
    has_more: bool = False

    @classmethod
    def create(cls, items: List[T], total: int, limit: int, offset: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            limit=limit,
            offset=offset,
            has_more=(offset + len(items)) < total,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"
