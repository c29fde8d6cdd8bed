"""Domain-specific exceptions for tenant-core.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. Messages are safe to show to callers: they never
include query text or details about other tenants' data.
"""

from __future__ import annotations

from typing import Any


class TenantCoreError(Exception):
    """Base class for all errors raised by the core."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Error response body: ``{"error": <CODE>, "message": <text>}``."""
        return {"error": self.code, "message": self.message}


# ── Credential errors (401) ──


class InvalidTokenError(TenantCoreError):
    """Credential signature or structure check failed."""

    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Token verification failed"


class TokenExpiredError(TenantCoreError):
    code = "TOKEN_EXPIRED"
    status_code = 401
    default_message = "Token has expired"


class MissingTenantError(TenantCoreError):
    """Neither the tenant_id claim nor the subject yields a tenant id.

    Also raised by the data-access layer when called with an empty tenant id.
    """

    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Token does not contain tenant_id"


class ContextRequiredError(TenantCoreError):
    code = "TENANT_REQUIRED"
    status_code = 401
    default_message = "No tenant context found. Authentication required."


# ── Authorization (403) ──


class InsufficientPermissionsError(TenantCoreError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403
    default_message = "Insufficient permissions"


# ── Data access ──


class NotFoundError(TenantCoreError):
    """Record does not exist or belongs to another tenant.

    Both cases are reported identically.
    """

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Record not found"

    def __init__(self, resource: str, record_id: object) -> None:
        self.resource = resource
        self.record_id = record_id
        super().__init__(f"{resource} record not found: {record_id}")


class QuotaExceededError(TenantCoreError):
    code = "QUOTA_EXCEEDED"
    status_code = 429
    default_message = "Quota exceeded"

    def __init__(self, resource: str, used: int, limit: int) -> None:
        self.resource = resource
        self.used = used
        self.limit = limit
        super().__init__(f"Quota exceeded for {resource} ({used}/{limit})")


class UnsafeQueryError(TenantCoreError):
    code = "UNSAFE_QUERY"
    status_code = 400
    default_message = (
        "Query must include tenant_id filter for security. "
        "Use unsafe() if you really want to skip this."
    )


class InvalidDataError(TenantCoreError):
    """Payload references unknown columns or violates a uniqueness rule."""

    code = "INVALID_DATA"
    status_code = 400
    default_message = "Invalid data"


class InternalError(TenantCoreError):
    """Storage or connectivity failure."""


class UnsupportedOperationError(TenantCoreError):
    """The configured storage backend lacks a capability (e.g. raw SQL)."""

    code = "UNSUPPORTED_OPERATION"
    status_code = 501
    default_message = "Operation not supported by the storage backend"
