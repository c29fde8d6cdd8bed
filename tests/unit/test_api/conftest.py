"""Fixtures for API tests: an app on the in-memory provider plus token helpers."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tenant_core.api.app import create_app
from tenant_core.auth.context import TenantContext
from tenant_core.auth.credentials import CredentialParser
from tenant_core.config import Settings
from tenant_core.models.tenant import Role, TenantInfo
from tenant_core.storage.memory import MemoryProvider

AuthHeaders = Callable[..., dict[str, str]]


@pytest.fixture()
def app(test_settings: Settings, provider: MemoryProvider) -> FastAPI:
    return create_app(test_settings, provider)


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture()
def credential_parser(test_settings: Settings) -> CredentialParser:
    return CredentialParser(test_settings.jwt_secret.get_secret_value())


@pytest.fixture()
def auth_headers(credential_parser: CredentialParser) -> AuthHeaders:
    """Factory: ``auth_headers(tenant, role=Role.ADMIN)`` -> Authorization header."""

    def make(
        tenant: TenantInfo | str,
        *,
        role: Role = Role.USER,
        user_id: str = "user-1",
        **context: Any,
    ) -> dict[str, str]:
        tenant_id = tenant if isinstance(tenant, str) else str(tenant.id)
        token = credential_parser.issue_token(
            TenantContext(tenant_id=tenant_id, user_id=user_id, role=role, **context)
        )
        return {"Authorization": f"Bearer {token}"}

    return make
