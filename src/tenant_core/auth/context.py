"""Authenticated tenant context for request processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tenant_core.models.tenant import Plan, Role


@dataclass(frozen=True)
class TenantContext:
    """Authenticated tenant context, injected into every request.

    Extracted from the bearer credential during parsing. Lives for the
    duration of one request and is never persisted.
    """

    tenant_id: str
    user_id: str
    role: Role = Role.USER
    permissions: frozenset[str] = frozenset()
    plan: Plan = Plan.FREE
    tenant_name: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions
