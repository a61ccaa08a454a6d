"""
Response envelope models for the tender API.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Listing pagination metadata."""

    total: int
    page: int
    limit: int
    totalPages: int
    hasMore: bool


class ApiResponse(BaseModel):
    """Success envelope."""

    success: bool = True
    data: Any = None
    pagination: Optional[PaginationMeta] = None

    def to_payload(self) -> Dict[str, Any]:
        """Plain JSON payload as cached and returned."""
        payload: Dict[str, Any] = {"success": self.success, "data": self.data}
        if self.pagination is not None:
            payload["pagination"] = self.pagination.model_dump()
        return payload


class CacheInvalidationResult(BaseModel):
    """Result of a cache invalidation request."""

    resource: str
    prefix: str
    deleted: int
