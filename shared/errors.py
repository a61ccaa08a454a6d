"""
Shared error handling for the tender listing services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Failure envelope returned to API callers."""

    success: bool = False
    error: str
    details: Optional[str] = None


class TenderServiceException(Exception):
    """Base exception for tender services."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.headers = headers or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self, include_details: bool = False) -> ErrorResponse:
        """Convert to the failure envelope.

        ``details`` carries the underlying cause and is only exposed outside
        production builds.
        """
        cause = self.details.get("cause") if include_details else None
        return ErrorResponse(error=self.message, details=cause)


class ValidationError(TenderServiceException):
    """Malformed request input that cannot be corrected by falling back to defaults."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(TenderServiceException):
    """A lookup matched no row."""

    status_code = 404

    def __init__(
        self,
        message: str = "Not found",
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__("NOT_FOUND", message, details, headers=headers)


class StoreQueryError(TenderServiceException):
    """Relational store failure."""

    status_code = 500

    def __init__(self, message: str = "Internal Server Error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_QUERY_ERROR", message, details)


class CacheUnavailableError(TenderServiceException):
    """Backing cache service cannot be reached. Never surfaced to API callers."""

    status_code = 503

    def __init__(self, message: str = "Cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", message, details)
