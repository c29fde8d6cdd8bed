"""Credential parsing and access checks.

Note: the FastAPI dependency factories (``RequireRole``,
``RequirePermission``) live in ``api.deps`` and are NOT re-exported here
to keep this package free of web-framework imports.
"""

from tenant_core.auth.context import TenantContext
from tenant_core.auth.credentials import CredentialParser
from tenant_core.auth.guard import (
    AccessGuard,
    require_context,
    require_permission,
    require_role,
)

__all__ = [
    "AccessGuard",
    "CredentialParser",
    "TenantContext",
    "require_context",
    "require_permission",
    "require_role",
]
