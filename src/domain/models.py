from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class User:
    """Represents an authenticated actor within the system."""

    user_id: str
    role: str
    email: str = ""
    name: str | None = None
    school_id: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == "SUPER_ADMIN"


@dataclass(slots=True)
class RequestContext:
    """Client details captured for audit records."""

    ip_address: str = "unknown"
    user_agent: str | None = None
    request_id: str | None = None
