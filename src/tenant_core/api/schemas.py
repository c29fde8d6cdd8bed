"""Request/response schemas for the API layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from tenant_core.models.records import AuditLogEntry, Order


class ErrorResponse(BaseModel):
    """Body of every failed request."""

    error: str = Field(..., examples=["NOT_FOUND"])
    message: str


class AuditLogListResponse(BaseModel):
    """Page of ``GET /tenant/audit-logs``.

    Use ``limit`` and ``offset`` query parameters to page through entries.
    """

    items: list[AuditLogEntry]
    limit: int
    offset: int


class OrderListResponse(BaseModel):
    items: list[Order]
    limit: int
    offset: int


class HealthResponse(BaseModel):
    status: str
    checks: dict[str, str]
    timestamp: datetime


ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}
