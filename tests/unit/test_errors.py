"""Tests for the error hierarchy and its wire representation."""

import pytest

from tenant_core.errors import (
    ContextRequiredError,
    InsufficientPermissionsError,
    InternalError,
    InvalidDataError,
    InvalidTokenError,
    MissingTenantError,
    NotFoundError,
    QuotaExceededError,
    TenantCoreError,
    TokenExpiredError,
    UnsafeQueryError,
    UnsupportedOperationError,
)


@pytest.mark.parametrize(
    ("error", "code", "status"),
    [
        (InvalidTokenError(), "INVALID_TOKEN", 401),
        (TokenExpiredError(), "TOKEN_EXPIRED", 401),
        (MissingTenantError(), "INVALID_TOKEN", 401),
        (ContextRequiredError(), "TENANT_REQUIRED", 401),
        (InsufficientPermissionsError(), "INSUFFICIENT_PERMISSIONS", 403),
        (NotFoundError("orders", "x"), "NOT_FOUND", 404),
        (QuotaExceededError("orders", 1000, 1000), "QUOTA_EXCEEDED", 429),
        (UnsafeQueryError(), "UNSAFE_QUERY", 400),
        (InvalidDataError(), "INVALID_DATA", 400),
        (InternalError(), "INTERNAL_ERROR", 500),
        (UnsupportedOperationError(), "UNSUPPORTED_OPERATION", 501),
    ],
)
def test_codes_and_statuses(error: TenantCoreError, code: str, status: int) -> None:
    assert isinstance(error, TenantCoreError)
    assert error.code == code
    assert error.status_code == status
    assert error.to_dict() == {"error": code, "message": error.message}


def test_default_message() -> None:
    assert TokenExpiredError().message == "Token has expired"
    assert str(MissingTenantError()) == "Token does not contain tenant_id"


def test_custom_message() -> None:
    err = InsufficientPermissionsError("This action requires one of these roles: admin")
    assert err.to_dict()["message"].endswith("admin")


def test_not_found_carries_resource() -> None:
    err = NotFoundError("orders", "abc")
    assert err.resource == "orders"
    assert err.record_id == "abc"
    assert err.message == "orders record not found: abc"


def test_quota_exceeded_carries_usage() -> None:
    err = QuotaExceededError("orders", 1000, 1000)
    assert (err.resource, err.used, err.limit) == ("orders", 1000, 1000)
    assert "1000/1000" in err.message


def test_missing_tenant_is_distinct_type() -> None:
    """Same wire code as InvalidToken, but callers can tell them apart."""
    assert not isinstance(MissingTenantError(), InvalidTokenError)
