"""
Shared error handling for the Player Cache service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PlayerCacheError(Exception):
    """Base exception for the Player Cache service."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInputError(PlayerCacheError):
    """Malformed identifiers, dates or batch sizes. Raised before any I/O."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class StoreError(PlayerCacheError):
    """Cache store read or write failure."""

    def __init__(self, operation: str, message: str = "Cache store error", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_ERROR", f"{operation}: {message}", details)


class UpstreamError(PlayerCacheError):
    """Non-success response or transport failure from the upstream API."""

    status_code = 502

    def __init__(
        self,
        message: str = "Upstream request failed",
        *,
        upstream_status: Optional[int] = None,
        detail: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.upstream_status = upstream_status
        self.detail = detail
        merged = dict(details or {})
        if upstream_status is not None:
            merged["upstream_status"] = upstream_status
        if detail:
            merged["detail"] = detail
        super().__init__("UPSTREAM_ERROR", message, merged)


class RequestCancelledError(PlayerCacheError):
    """The request deadline expired, including while waiting for a rate limit permit."""

    status_code = 504

    def __init__(self, message: str = "Request cancelled", details: Optional[Dict[str, Any]] = None):
        super().__init__("REQUEST_CANCELLED", message, details)
