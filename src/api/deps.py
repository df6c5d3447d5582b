from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from functools import lru_cache

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.auth import TokenError, create_access_token, decode_access_token
from src.core.config import get_settings
from src.core.rate_limit import RateLimiter, build_rate_limiter, client_identifier
from src.domain import RequestContext, User
from src.infrastructure.db.models import UserModel
from src.infrastructure.db.session import get_session

bearer_scheme = HTTPBearer(auto_error=False)
logger = structlog.get_logger(__name__)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Provide an async SQLAlchemy session for API handlers."""
    async for session in get_session():
        yield session


async def get_token_subject(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
) -> str:
    """Return the verified ``sub`` claim of the bearer token."""
    if credentials is None:
        raise _unauthorized("Unauthorized")

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized("Unauthorized") from exc

    return payload["sub"]


async def get_current_user(
    subject: str = Depends(get_token_subject),  # noqa: B008
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
) -> User:
    """Resolve the caller's user record. Role and school always come from the database."""
    record = await session.get(UserModel, subject)
    if record is None or not record.is_active:
        raise _unauthorized("Unauthorized")

    return User(
        user_id=record.id,
        role=record.role.value,
        email=record.email,
        name=record.name,
        school_id=record.school_id,
    )


def require_roles(
    allowed_roles: Iterable[str], *, detail: str = "Insufficient permissions"
) -> Callable[[User], Awaitable[User]]:
    """Dependency factory enforcing that the caller holds one of ``allowed_roles``."""
    allowed = frozenset(allowed_roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:  # noqa: B008
        if user.role not in allowed:
            raise _forbidden(detail)
        return user

    return dependency


@lru_cache
def get_submission_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return build_rate_limiter(
        settings, max_requests=settings.submission_rate_limit, scope="competency-submissions"
    )


@lru_cache
def get_submission_query_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return build_rate_limiter(
        settings,
        max_requests=settings.submission_query_rate_limit,
        scope="competency-submissions-query",
    )


def rate_limited(
    limiter_dependency: Callable[[], RateLimiter],
) -> Callable[..., Awaitable[None]]:
    """Dependency factory rejecting clients over the limiter's budget with 429."""

    async def dependency(
        request: Request,
        limiter: RateLimiter = Depends(limiter_dependency),  # noqa: B008
    ) -> None:
        key = client_identifier(request.headers, request.client.host if request.client else None)
        if not await limiter.check_and_consume(key):
            await logger.awarning("rate_limit_exceeded", client=key, path=request.url.path)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded"
            )

    return dependency


def get_request_context(request: Request) -> RequestContext:
    """Client details recorded alongside audit entries."""
    return RequestContext(
        ip_address=client_identifier(
            request.headers, request.client.host if request.client else None
        ),
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


def issue_smoke_token(user_id: str, *, email: str | None = None) -> str:
    """Generate a signed token for manual smoke testing."""
    return create_access_token(user_id, email=email)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
