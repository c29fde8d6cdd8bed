"""Per-request log context and access logging."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Start every request with a fresh structlog context.

    Tenant and user bindings made while handling one request never leak
    into the next. Each request gets a correlation id (the caller's
    ``X-Request-ID`` when present), bound as ``request_id`` and echoed in
    the response. Completed requests are logged with tenant, status and
    latency, except for health and docs paths.
    """

    SKIP_PATHS: frozenset[str] = frozenset(
        {"/health", "/docs", "/openapi.json", "/redoc"}
    )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        structlog.contextvars.clear_contextvars()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        if request.url.path in self.SKIP_PATHS:
            return response

        ctx = getattr(request.state, "tenant_context", None)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=int((time.perf_counter() - start) * 1000),
            tenant_id=ctx.tenant_id if ctx is not None else None,
        )
        return response
