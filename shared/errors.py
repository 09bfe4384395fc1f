"""
Shared error handling for the tenant gateway services.

Every error that reaches a client is rendered through ``to_response`` so the
body is always the ``{"error", "message"}`` envelope.
"""

from datetime import datetime
from typing import Dict, Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: str


class GatewayException(Exception):
    """Base exception for gateway services."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.error, message=self.message)

    def to_body(self) -> Dict[str, Any]:
        """JSON body for the error response."""
        return self.to_response().model_dump()


class TenantNotIdentified(GatewayException):
    """No identification strategy produced a tenant slug."""

    status_code = 400
    error = "Tenant not identified"

    def __init__(
        self,
        message: str = "Please access via a tenant-specific URL or include X-Tenant-ID header",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("TENANT_NOT_IDENTIFIED", message, details)


class TenantNotFound(GatewayException):
    """The registry has no tenant for the slug."""

    status_code = 404
    error = "Tenant not found"

    def __init__(self, slug: str, details: Optional[Dict[str, Any]] = None):
        self.slug = slug
        super().__init__("TENANT_NOT_FOUND", f"Tenant not found: {slug}", details)


class TenantInactive(GatewayException):
    """The tenant exists but its status is not active."""

    status_code = 403
    error = "Tenant inactive"

    def __init__(self, slug: str, status: str, details: Optional[Dict[str, Any]] = None):
        self.slug = slug
        self.status = status
        super().__init__("TENANT_INACTIVE", f"Tenant '{slug}' is not active. Status: {status}", details)


class SubscriptionInvalid(GatewayException):
    """The tenant subscription is suspended or expired."""

    status_code = 403
    error = "Subscription invalid"

    def __init__(self, slug: str, subscription_status: str, details: Optional[Dict[str, Any]] = None):
        self.slug = slug
        self.subscription_status = subscription_status
        super().__init__(
            "SUBSCRIPTION_INVALID",
            f"Invalid subscription for tenant '{slug}': {subscription_status}",
            details,
        )


class RateLimitExceeded(GatewayException):
    """Hourly request budget for the (tenant, client) pair is used up."""

    status_code = 429
    error = "Rate limit exceeded"

    def __init__(self, limit: int, reset_at: datetime, details: Optional[Dict[str, Any]] = None):
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(
            "RATE_LIMIT_EXCEEDED",
            f"Limit of {limit} requests per hour reached",
            details,
        )

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["limit"] = self.limit
        body["reset_at"] = self.reset_at.isoformat()
        return body

    def headers(self) -> Dict[str, str]:
        """Rate limit headers for the 429 response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
        }


class ConfigStoreTransientError(GatewayException):
    """The tenant registry could not be reached or returned garbage."""

    status_code = 502
    error = "Tenant registry unavailable"

    def __init__(self, message: str = "Failed to fetch tenant configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIG_STORE_ERROR", message, details)


class UpstreamUnavailable(GatewayException):
    """The tenant backend could not be reached."""

    status_code = 502
    error = "Upstream unavailable"

    def __init__(self, message: str = "Tenant backend is unreachable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class CacheStoreError(GatewayException):
    """Key/value store I/O failure. Always caught and logged by callers."""

    status_code = 500
    error = "Cache store error"

    def __init__(self, message: str = "Key/value store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_STORE_ERROR", message, details)
