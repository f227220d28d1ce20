"""
Shared error handling for the offline cache service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class OfflineCacheException(Exception):
    """Base exception for the offline cache service."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(OfflineCacheException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class LifecycleError(OfflineCacheException):
    """Worker lifecycle transition errors."""

    status_code = 409

    def __init__(self, message: str = "Invalid lifecycle transition", details: Optional[Dict[str, Any]] = None):
        super().__init__("LIFECYCLE_ERROR", message, details)


class NetworkError(OfflineCacheException):
    """Network boundary failures (no response was obtained)."""

    status_code = 502

    def __init__(self, url: str, message: str = "Network request failed", details: Optional[Dict[str, Any]] = None):
        self.url = url
        super().__init__("NETWORK_ERROR", f"{url}: {message}", details)


class InstallError(OfflineCacheException):
    """Worker install failures (static cache could not be pre-warmed)."""

    status_code = 503

    def __init__(self, message: str = "Worker install failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("INSTALL_ERROR", message, details)


class CacheStorageError(OfflineCacheException):
    """Cache storage backend errors."""

    status_code = 503

    def __init__(self, cache_name: str, message: str = "Cache storage error", details: Optional[Dict[str, Any]] = None):
        self.cache_name = cache_name
        super().__init__("CACHE_STORAGE_ERROR", f"{cache_name}: {message}", details)
