"""
Shared pydantic schemas for API responses.
"""
from typing import Any, Dict, Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Error envelope returned by every non-2xx response."""

    error: bool = Field(True, description="Always true for errors")
    kind: str = Field(..., description="Machine-readable error kind")
    error_code: str = Field(..., description="Error code, e.g. IDK-100")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional error details")


class PageResponse(BaseModel, Generic[T]):
    """One page of a paginated listing."""

    items: List[T] = Field(..., description="Items on this page")
    total: int = Field(..., description="Total number of matches")
    page: int = Field(..., description="Page number (1-indexed)")
    page_size: int = Field(..., description="Items per page")
    pages: int = Field(..., description="Total number of pages")
