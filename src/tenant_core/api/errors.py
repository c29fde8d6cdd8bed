"""Exception handlers rendering failures as ``{"error", "message"}`` bodies."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tenant_core.errors import InternalError, InvalidDataError, TenantCoreError

logger = structlog.get_logger()


async def tenant_core_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Typed core errors map to their own status and code."""
    assert isinstance(exc, TenantCoreError)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("request_failed", path=request.url.path, error=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed request bodies and parameters answer 400 ``INVALID_DATA``."""
    assert isinstance(exc, RequestValidationError)
    fields = sorted(
        {".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()}
    )
    error = InvalidDataError(f"Invalid request fields: {', '.join(fields)}")
    logger.warning("request_invalid", path=request.url.path, fields=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unhandled exceptions. No internals leak out."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TenantCoreError, tenant_core_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
