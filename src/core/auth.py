from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum

import jwt
from src.core.config import get_settings


class TokenError(Exception):
    """Raised when a token cannot be decoded or validated."""


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    CLINICAL_PRECEPTOR = "CLINICAL_PRECEPTOR"
    CLINICAL_SUPERVISOR = "CLINICAL_SUPERVISOR"
    STUDENT = "STUDENT"


def create_access_token(
    subject: str,
    *,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Generate a signed JWT shaped like the identity provider's session tokens.

    Only used for smoke testing and tests; production tokens come from the
    identity provider.
    """
    settings = get_settings()

    now = datetime.now(UTC)
    ttl = expires_delta or timedelta(seconds=settings.access_token_ttl_seconds)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "iss": settings.jwt_issuer or settings.app_name,
    }

    if email:
        payload["email"] = email

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and validate a bearer token. Roles are not trusted from the token."""
    settings = get_settings()

    options = {"require": ["sub", "exp"]}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options=options,
        )
    except jwt.PyJWTError as exc:  # pragma: no cover - third-party raises numerous subclasses
        raise TokenError("Invalid token") from exc

    if not payload.get("sub"):
        raise TokenError("Token missing subject")
    return payload
