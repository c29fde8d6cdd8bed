"""Bearer credential parsing and issuance.

Turns a signed JWT into a ``TenantContext``. Parsing is pure: it verifies
the signature and expiry, extracts the tenant identity and applies the
claim defaults, but never touches storage.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from tenant_core.auth.context import TenantContext
from tenant_core.errors import InvalidTokenError, MissingTenantError, TokenExpiredError
from tenant_core.models.tenant import Plan, Role

BEARER_PREFIX = "Bearer "


class CredentialParser:
    """Verify bearer tokens and build tenant contexts from their claims.

    Args:
        secret: HMAC signing secret.
        algorithm: JWT signing algorithm.
        subject_delimiter: Separator used by ``<tenant><delim><user>``
            subjects when the explicit ``tenant_id`` claim is absent.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        subject_delimiter: str = "|",
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._delimiter = subject_delimiter

    def parse(self, raw: str | None) -> TenantContext | None:
        """Parse a bearer token or ``Authorization`` header value.

        Args:
            raw: Bare token, ``"Bearer <token>"``, or None.

        Returns:
            TenantContext, or None when no bearer credential is present
            (public endpoints).

        Raises:
            TokenExpiredError: Token is past its expiry.
            InvalidTokenError: Signature or claim structure is invalid.
            MissingTenantError: No tenant id in claims or subject.
        """
        token = self._extract_token(raw)
        if token is None:
            return None

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError() from None
        except jwt.InvalidTokenError:
            raise InvalidTokenError() from None

        return self.context_from_claims(claims)

    def context_from_claims(self, claims: Mapping[str, Any]) -> TenantContext:
        """Build a context from already-verified claims."""
        subject = claims.get("sub")
        if subject is not None and not isinstance(subject, str):
            raise InvalidTokenError()

        tenant_id = claims.get("tenant_id") or self._tenant_from_subject(subject)
        if not tenant_id:
            raise MissingTenantError()

        try:
            role = Role(claims.get("role") or Role.USER)
            plan = Plan(claims.get("plan") or Plan.FREE)
        except ValueError:
            raise InvalidTokenError() from None

        permissions = claims.get("permissions") or []
        if not isinstance(permissions, list | tuple):
            raise InvalidTokenError()

        metadata = claims.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise InvalidTokenError()

        return TenantContext(
            tenant_id=str(tenant_id),
            user_id=subject or "",
            role=role,
            permissions=frozenset(str(p) for p in permissions),
            plan=plan,
            tenant_name=claims.get("tenant_name"),
            issued_at=_timestamp(claims.get("iat")),
            expires_at=_timestamp(claims.get("exp")),
            metadata=metadata,
        )

    def issue_token(
        self,
        context: TenantContext,
        *,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        """Sign a token carrying the given context.

        Args:
            context: Identity to encode.
            expires_in: Lifetime of the token.

        Returns:
            Encoded JWT string.
        """
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": context.user_id,
            "tenant_id": context.tenant_id,
            "role": str(context.role),
            "permissions": sorted(context.permissions),
            "plan": str(context.plan),
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
        }
        if context.tenant_name is not None:
            payload["tenant_name"] = context.tenant_name
        if context.metadata:
            payload["metadata"] = context.metadata

        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    @staticmethod
    def _extract_token(raw: str | None) -> str | None:
        if not raw:
            return None
        raw = raw.strip()
        if raw.startswith(BEARER_PREFIX):
            token = raw[len(BEARER_PREFIX) :].strip()
            return token or None
        # Any other auth scheme is treated as no credential at all
        if " " in raw:
            return None
        return raw

    def _tenant_from_subject(self, subject: str | None) -> str | None:
        if not subject:
            return None
        return subject.split(self._delimiter)[0] or None


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    return None
