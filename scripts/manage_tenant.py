"""CLI for tenant management and token issuance.

Usage::

    uv run python -m scripts.manage_tenant <command> [options]

Commands:
    create-tenant       Onboard a new tenant (settings and quotas included)
    issue-token         Sign a bearer token for a tenant user
    list-tenants        List all tenants
    show-quotas         Show quota usage of a tenant
    suspend-tenant      Suspend a tenant, recording the reason
    delete-tenant       Soft-delete a tenant
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from datetime import timedelta

from tenant_core.audit import AuditRecorder
from tenant_core.auth.context import TenantContext
from tenant_core.auth.credentials import CredentialParser
from tenant_core.config import settings
from tenant_core.errors import TenantCoreError
from tenant_core.models.tenant import Plan, QuotaResource, Role
from tenant_core.storage.factory import create_storage_provider
from tenant_core.tenant_service import TenantService

ServiceCommand = Callable[[TenantService, argparse.Namespace], Awaitable[None]]


async def _run_with_service(command: ServiceCommand, args: argparse.Namespace) -> None:
    provider = create_storage_provider(settings)
    audit = AuditRecorder(provider)
    try:
        async with provider.unit_of_work() as backend:
            await command(TenantService(backend, audit=audit, settings=settings), args)
    finally:
        await audit.drain()
        await provider.close()


def _run(command: ServiceCommand, args: argparse.Namespace) -> None:
    """Run an async command, turning core errors into exit code 1."""
    try:
        asyncio.run(_run_with_service(command, args))
    except TenantCoreError as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        sys.exit(1)


async def _create_tenant(service: TenantService, args: argparse.Namespace) -> None:
    tenant = await service.create_tenant(args.name, args.slug, args.email, args.plan)
    print(f"Tenant created: {tenant.name} (id: {tenant.id}, slug: {tenant.slug})")


async def _list_tenants(service: TenantService, _args: argparse.Namespace) -> None:
    tenants = await service.list_tenants()
    if not tenants:
        print("No tenants found.")
        return

    print("Tenants:")
    for i, tenant in enumerate(tenants, 1):
        print(f"  {i}. {tenant.slug} [{tenant.name}] ({tenant.status}, {tenant.plan}) {tenant.id}")


async def _show_quotas(service: TenantService, args: argparse.Namespace) -> None:
    quota = await service.get_quotas(args.tenant_id)
    print(f"Quotas for {args.tenant_id} (reset {quota.reset_date.isoformat()}):")
    for resource in QuotaResource:
        used, limit = quota.usage(resource)
        print(f"  {resource}: {used}/{limit}")


async def _suspend_tenant(service: TenantService, args: argparse.Namespace) -> None:
    tenant = await service.suspend_tenant(args.tenant_id, args.reason)
    print(f"Tenant suspended: {tenant.slug} ({args.reason})")


async def _delete_tenant(service: TenantService, args: argparse.Namespace) -> None:
    await service.delete_tenant(args.tenant_id)
    print(f"Tenant deleted: {args.tenant_id}")


def create_tenant(args: argparse.Namespace) -> None:
    """Onboard a new tenant."""
    _run(_create_tenant, args)


def list_tenants(args: argparse.Namespace) -> None:
    """List all tenants."""
    _run(_list_tenants, args)


def show_quotas(args: argparse.Namespace) -> None:
    """Show quota usage of a tenant."""
    _run(_show_quotas, args)


def suspend_tenant(args: argparse.Namespace) -> None:
    """Suspend a tenant."""
    _run(_suspend_tenant, args)


def delete_tenant(args: argparse.Namespace) -> None:
    """Soft-delete a tenant."""
    _run(_delete_tenant, args)


def issue_token(args: argparse.Namespace) -> None:
    """Sign a bearer token. Does not touch storage."""
    parser = CredentialParser(
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
        subject_delimiter=settings.jwt_subject_delimiter,
    )
    permissions = [p.strip() for p in args.permissions.split(",") if p.strip()]
    context = TenantContext(
        tenant_id=args.tenant_id,
        user_id=args.user,
        role=Role(args.role),
        permissions=frozenset(permissions),
        plan=Plan(args.plan),
    )
    token = parser.issue_token(context, expires_in=timedelta(minutes=args.expires_minutes))
    print(f'Token for "{args.user}" (tenant {args.tenant_id}, role {args.role}):')
    print(f"   {token}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Tenant management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # create-tenant
    p = sub.add_parser("create-tenant", help="Onboard a new tenant")
    p.add_argument("--name", required=True, help="Tenant display name")
    p.add_argument("--slug", required=True, help="Unique URL-safe identifier")
    p.add_argument("--email", required=True, help="Contact email")
    p.add_argument("--plan", default="free", choices=[str(p) for p in Plan])

    # issue-token
    p = sub.add_parser("issue-token", help="Sign a bearer token")
    p.add_argument("--tenant-id", required=True, help="Tenant UUID")
    p.add_argument("--user", required=True, help="User id (token subject)")
    p.add_argument("--role", default="user", choices=[str(r) for r in Role])
    p.add_argument("--plan", default="free", choices=[str(p) for p in Plan])
    p.add_argument("--permissions", default="", help="Comma-separated permissions")
    p.add_argument(
        "--expires-minutes",
        type=int,
        default=settings.jwt_expire_minutes,
        help="Token lifetime in minutes",
    )

    # list-tenants
    sub.add_parser("list-tenants", help="List all tenants")

    # show-quotas
    p = sub.add_parser("show-quotas", help="Show quota usage of a tenant")
    p.add_argument("--tenant-id", required=True, help="Tenant UUID")

    # suspend-tenant
    p = sub.add_parser("suspend-tenant", help="Suspend a tenant")
    p.add_argument("--tenant-id", required=True, help="Tenant UUID")
    p.add_argument("--reason", required=True, help="Reason kept in tenant metadata")

    # delete-tenant
    p = sub.add_parser("delete-tenant", help="Soft-delete a tenant")
    p.add_argument("--tenant-id", required=True, help="Tenant UUID")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "create-tenant": create_tenant,
        "issue-token": issue_token,
        "list-tenants": list_tenants,
        "show-quotas": show_quotas,
        "suspend-tenant": suspend_tenant,
        "delete-tenant": delete_tenant,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
