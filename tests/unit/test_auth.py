from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from src.core.auth import TokenError, create_access_token, decode_access_token
from src.core.config import Settings, get_settings


def test_create_and_decode_token_roundtrip() -> None:
    token = create_access_token("user-123", email="user@example.com")

    payload = decode_access_token(token)

    assert payload["sub"] == "user-123"
    assert payload["email"] == "user@example.com"
    assert "roles" not in payload


def test_expired_token_rejected() -> None:
    token = create_access_token("user-123", expires_delta=timedelta(seconds=-5))

    with pytest.raises(TokenError):
        decode_access_token(token)


def test_token_signed_with_other_secret_rejected() -> None:
    settings = get_settings()
    token = jwt.encode(
        {"sub": "user-123", "exp": 4102444800},
        "not-the-configured-secret",
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(TokenError):
        decode_access_token(token)


def test_token_without_subject_rejected() -> None:
    settings = get_settings()
    token = jwt.encode(
        {"exp": 4102444800}, settings.jwt_secret, algorithm=settings.jwt_algorithm
    )

    with pytest.raises(TokenError):
        decode_access_token(token)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@db:5432/app", "postgresql+asyncpg://u:p@db:5432/app"),
        ("postgresql://u:p@db:5432/app", "postgresql+asyncpg://u:p@db:5432/app"),
        ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ],
)
def test_async_database_url_normalisation(raw: str, expected: str) -> None:
    settings = Settings(DATABASE_URL=raw)

    assert settings.async_database_url == expected


def test_rate_limit_defaults() -> None:
    settings = Settings()

    assert settings.submission_rate_limit == 50
    assert settings.submission_query_rate_limit == 100
    assert settings.rate_limit_window_seconds == 60
    assert settings.max_batch_submissions == 50
