"""
Root Exception

Every error raised by the cache service derives from StorefrontCacheError.
Subclasses set `status_code`, which the application's exception handler uses
when an error escapes a route.

Author: System Architect
Date: 2025-12-08
"""

from typing import Any


class StorefrontCacheError(Exception):
    """
    Base exception for all storefront cache errors.

    Attributes:
        message: Error message
        request_id: X-Request-ID of the request that failed, when known
        details: Structured context for logs and error bodies
        status_code: HTTP status reported when the error reaches the API

    Example:
        raise CacheConnectionError(
            "Redis unreachable",
            details={"host": "localhost", "port": 6379}
        ).with_suggestion("Check REDIS_HOST")
    """

    status_code: int = 500

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Error body for logs and API responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "StorefrontCacheError":
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "StorefrontCacheError":
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [f"message='{self.message}'"]
        if self.request_id:
            parts.append(f"request_id='{self.request_id}'")
        if self.details:
            parts.append(f"details={self.details}")
        return f"{type(self).__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "StorefrontCacheError":
        """
        Wrap a third-party exception, keeping its type and text in details.

        Example:
            >>> try:
            ...     await client.get(path)
            ... except httpx.HTTPError as e:
            ...     raise StorefrontFetchError.from_exception(e, path=path) from e
        """
        return cls(
            message or str(exc),
            request_id=request_id,
            details={"original_error": type(exc).__name__, "original_message": str(exc), **details},
        )


class ConfigurationError(StorefrontCacheError):
    """Raised when configuration is invalid or missing."""
    pass
