"""Role and permission checks over an already-parsed tenant context.

All checks are synchronous and never touch storage.
"""

from __future__ import annotations

from collections.abc import Iterable

from tenant_core.auth.context import TenantContext
from tenant_core.errors import ContextRequiredError, InsufficientPermissionsError
from tenant_core.models.tenant import Role


def require_context(ctx: TenantContext | None) -> TenantContext:
    """Return the context, or raise if the request is unauthenticated."""
    if ctx is None:
        raise ContextRequiredError()
    return ctx


def require_role(ctx: TenantContext | None, allowed: Iterable[Role | str]) -> TenantContext:
    """Require the context's role to be one of ``allowed``.

    Raises:
        ContextRequiredError: No context.
        InsufficientPermissionsError: Role not in the allowed set.
    """
    ctx = require_context(ctx)
    allowed_roles = [Role(r) for r in allowed]
    if ctx.role not in allowed_roles:
        raise InsufficientPermissionsError(
            "This action requires one of these roles: "
            + ", ".join(str(r) for r in allowed_roles)
        )
    return ctx


def require_permission(
    ctx: TenantContext | None, required: Iterable[str]
) -> TenantContext:
    """Require at least one of ``required`` in the context's permissions.

    Raises:
        ContextRequiredError: No context.
        InsufficientPermissionsError: None of the permissions held.
    """
    ctx = require_context(ctx)
    required = list(required)
    if not any(ctx.has_permission(p) for p in required):
        raise InsufficientPermissionsError(
            "This action requires one of these permissions: " + ", ".join(required)
        )
    return ctx


class AccessGuard:
    """Bundles the checks with a default role set for a group of endpoints.

    Usage::

        admin_only = AccessGuard(default_roles=[Role.ADMIN])
        admin_only.check(ctx)
    """

    def __init__(self, default_roles: Iterable[Role | str] | None = None) -> None:
        self._default_roles = (
            tuple(Role(r) for r in default_roles) if default_roles else None
        )

    def check(
        self,
        ctx: TenantContext | None,
        *,
        roles: Iterable[Role | str] | None = None,
        permissions: Iterable[str] | None = None,
    ) -> TenantContext:
        """Apply context, role and permission checks in that order."""
        ctx = require_context(ctx)
        effective_roles = roles if roles is not None else self._default_roles
        if effective_roles is not None:
            require_role(ctx, effective_roles)
        if permissions is not None:
            require_permission(ctx, permissions)
        return ctx
