"""Shared pytest fixtures."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from decimal import Decimal
from typing import Any

import pytest

from tenant_core.audit import AuditRecorder
from tenant_core.config import Settings
from tenant_core.models.tenant import TenantInfo
from tenant_core.storage.memory import MemoryBackend, MemoryProvider
from tenant_core.tenant_service import TenantService

TEST_JWT_SECRET = "test-secret-with-at-least-32-bytes!!"


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-db",
        action="store_true",
        default=False,
        help="Run tests that require a live PostgreSQL instance",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    markers_to_check = {
        "requires_db": ("--run-db", "needs --run-db flag"),
    }

    skip_conditions = {
        marker_name: (not config.getoption(option_flag), reason_msg)
        for marker_name, (option_flag, reason_msg) in markers_to_check.items()
    }

    for item in items:
        for marker_name, (should_skip, reason_msg) in skip_conditions.items():
            if should_skip and marker_name in item.keywords:
                item.add_marker(pytest.mark.skip(reason=reason_msg))


# ── In-memory storage ──────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        environment="testing",  # type: ignore[arg-type]
        storage_backend="memory",  # type: ignore[arg-type]
        jwt_secret=TEST_JWT_SECRET,  # type: ignore[arg-type]
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture()
def provider() -> MemoryProvider:
    return MemoryProvider()


@pytest.fixture()
def audit(provider: MemoryProvider) -> AuditRecorder:
    return AuditRecorder(provider)


@pytest.fixture()
async def backend(provider: MemoryProvider) -> AsyncGenerator[MemoryBackend]:
    """A unit of work on the shared in-memory store."""
    async with provider.unit_of_work() as b:
        yield b


async def _onboard(
    provider: MemoryProvider, settings: Settings, name: str, slug: str
) -> TenantInfo:
    async with provider.unit_of_work() as b:
        return await TenantService(b, settings=settings).create_tenant(
            name, slug, f"ops@{slug}.test"
        )


@pytest.fixture()
async def tenant(provider: MemoryProvider, test_settings: Settings) -> TenantInfo:
    return await _onboard(provider, test_settings, "Acme Events", "acme")


@pytest.fixture()
async def other_tenant(provider: MemoryProvider, test_settings: Settings) -> TenantInfo:
    return await _onboard(provider, test_settings, "Globex Tickets", "globex")


def make_order_data(**overrides: Any) -> dict[str, Any]:
    """Writable order columns with sensible defaults."""
    data: dict[str, Any] = {
        "event_id": uuid.uuid4(),
        "user_id": uuid.uuid4(),
        "quantity": 2,
        "unit_price": Decimal("25.00"),
        "total_price": Decimal("50.00"),
        "status": "pending",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def order_data() -> Callable[..., dict[str, Any]]:
    """Factory fixture: ``order_data(status="completed")``."""
    return make_order_data
