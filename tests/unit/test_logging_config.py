"""Tests for structured logging configuration and request middleware."""

import json
import logging
import re
from collections.abc import Generator
from io import StringIO
from typing import Any
from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from tenant_core.api.middleware import RequestLoggingMiddleware
from tenant_core.auth.context import TenantContext
from tenant_core.logging_config import REDACTED, configure_logging, is_sensitive


@pytest.fixture(autouse=True)
def _reset_structlog() -> Generator[None]:
    """Reset structlog state after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


def _emit(environment: str, **event: Any) -> str:
    """Configure logging, emit one structlog event, return the rendered line."""
    configure_logging(environment=environment, log_level="DEBUG")
    stream = StringIO()
    handler = logging.getLogger().handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    handler.setStream(stream)

    structlog.get_logger("tenant_core.test").info("test_event", **event)
    return stream.getvalue()


class TestConfigureLogging:
    @pytest.mark.parametrize("environment", ["production", "staging"])
    def test_deployed_environments_render_json(self, environment: str) -> None:
        parsed = json.loads(_emit(environment, resource="orders"))
        assert parsed["event"] == "test_event"
        assert parsed["resource"] == "orders"
        assert parsed["level"] == "info"
        assert parsed["logger"] == "tenant_core.test"
        assert parsed["timestamp"].endswith("Z")

    def test_development_renders_console(self) -> None:
        output = _emit("development", resource="orders")
        plain = re.sub(r"\x1b\[[0-9;]*m", "", output)
        assert "test_event" in plain
        assert "resource=orders" in plain

    def test_sets_level_and_quiets_libraries(self) -> None:
        configure_logging(log_level="warning")
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_stdlib_records_share_the_format(self) -> None:
        configure_logging(environment="production", log_level="DEBUG")
        stream = StringIO()
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        handler.setStream(stream)

        logging.getLogger("alembic").warning("plain stdlib message")

        parsed = json.loads(stream.getvalue())
        assert parsed["event"] == "plain stdlib message"
        assert parsed["level"] == "warning"

    def test_request_context_merged(self) -> None:
        structlog.contextvars.bind_contextvars(tenant_id="t-1", user_id="u-1")
        parsed = json.loads(_emit("production"))
        assert (parsed["tenant_id"], parsed["user_id"]) == ("t-1", "u-1")


class TestRedaction:
    @pytest.mark.parametrize(
        ("key", "sensitive"),
        [
            ("token", True),
            ("Authorization", True),
            ("refresh_token", True),
            ("client_secret", True),
            ("tenant_id", False),
            ("token_count", False),
        ],
    )
    def test_is_sensitive(self, key: str, sensitive: bool) -> None:
        assert is_sensitive(key) is sensitive

    def test_top_level_values_masked(self) -> None:
        output = _emit("production", token="eyJhbGciOi.payload.sig", Authorization="Bearer x")
        parsed = json.loads(output)
        assert parsed["token"] == REDACTED
        assert parsed["Authorization"] == REDACTED
        assert "eyJhbGciOi" not in output

    def test_nested_payload_masked(self) -> None:
        changes = {"webhook": {"url": "https://hooks.test", "signing_secret": "s3cr3t"}}
        output = _emit("production", changes=changes)
        parsed = json.loads(output)
        assert parsed["changes"]["webhook"] == {
            "url": "https://hooks.test",
            "signing_secret": REDACTED,
        }
        assert "s3cr3t" not in output


class TestRequestLoggingMiddleware:
    """Tests for HTTP request logging middleware."""

    @pytest.fixture()
    def test_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)

        @app.get("/test-endpoint")
        async def _test_endpoint() -> dict[str, str]:
            return {"ok": "true"}

        @app.get("/tenant-endpoint")
        async def _tenant_endpoint(request: Request) -> dict[str, Any]:
            request.state.tenant_context = TenantContext(tenant_id="t-9", user_id="u-9")
            return {"leaked": structlog.contextvars.get_contextvars()}

        @app.get("/health")
        async def _health() -> dict[str, str]:
            return {"status": "ok"}

        return app

    async def test_middleware_logs_request(self, test_app: FastAPI) -> None:
        """Middleware logs method, path, status_code, latency_ms."""
        with patch("tenant_core.api.middleware.logger") as mock_logger:
            async with AsyncClient(
                transport=ASGITransport(app=test_app),
                base_url="http://test",
            ) as client:
                await client.get("/test-endpoint")

            mock_logger.info.assert_called_once()
            call_args = mock_logger.info.call_args
            assert call_args[0][0] == "http_request"
            assert call_args[1]["method"] == "GET"
            assert call_args[1]["path"] == "/test-endpoint"
            assert call_args[1]["status_code"] == 200
            assert call_args[1]["tenant_id"] is None
            assert "latency_ms" in call_args[1]

    async def test_logs_tenant_and_clears_stale_context(self, test_app: FastAPI) -> None:
        structlog.contextvars.bind_contextvars(tenant_id="stale")
        with patch("tenant_core.api.middleware.logger") as mock_logger:
            async with AsyncClient(
                transport=ASGITransport(app=test_app),
                base_url="http://test",
            ) as client:
                response = await client.get("/tenant-endpoint")

        assert set(response.json()["leaked"]) == {"request_id"}
        assert mock_logger.info.call_args[1]["tenant_id"] == "t-9"

    async def test_request_id_generated_and_echoed(self, test_app: FastAPI) -> None:
        async with AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://test",
        ) as client:
            generated = await client.get("/tenant-endpoint")
            forwarded = await client.get(
                "/tenant-endpoint", headers={"X-Request-ID": "req-42"}
            )

        request_id = generated.headers["X-Request-ID"]
        assert generated.json()["leaked"] == {"request_id": request_id}
        assert len(request_id) == 32
        assert forwarded.headers["X-Request-ID"] == "req-42"
        assert forwarded.json()["leaked"] == {"request_id": "req-42"}

    async def test_middleware_skips_health(self, test_app: FastAPI) -> None:
        """Middleware does not log requests to /health."""
        with patch("tenant_core.api.middleware.logger") as mock_logger:
            async with AsyncClient(
                transport=ASGITransport(app=test_app),
                base_url="http://test",
            ) as client:
                await client.get("/health")

            mock_logger.info.assert_not_called()
