"""
Audit logging for competency submission activity.

Every entry carries an integrity hash over a fixed field set (user, action,
details, resource id, target user, timestamp). Entries written by this
service use SHA-256. Rows produced by browser clients use a 32-bit string
hash instead; that algorithm is much weaker and is only kept so those rows
can still be verified.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.models import RequestContext
from src.infrastructure.db.models import AuditLog, AuditSeverity, AuditStatus

logger = structlog.get_logger(__name__)

SHA256 = "sha256"
LEGACY32 = "legacy32"

HASHED_FIELDS = ("user_id", "action", "details", "resource_id", "target_user_id", "timestamp")


def _canonical(fields: dict[str, Any]) -> str:
    payload = {key: fields.get(key) for key in HASHED_FIELDS}
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def compute_integrity_hash(fields: dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON of the hashed fields."""
    return hashlib.sha256(_canonical(fields).encode("utf-8")).hexdigest()


def legacy_string_hash(fields: dict[str, Any]) -> str:
    """Non-cryptographic 32-bit hash used by browser-side producers."""
    value = 0
    for char in _canonical(fields):
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")


_ALGORITHMS = {
    SHA256: compute_integrity_hash,
    LEGACY32: legacy_string_hash,
}


def verify_integrity(entry: AuditLog) -> bool:
    """Recompute the hash of a stored entry with the algorithm it was written with."""
    hasher = _ALGORITHMS.get(entry.hash_algorithm)
    if hasher is None:
        return False
    fields = {
        "user_id": entry.user_id,
        "action": entry.action,
        "details": entry.details,
        "resource_id": entry.resource_id,
        "target_user_id": entry.target_user_id,
        "timestamp": entry.hashed_at,
    }
    return hasher(fields) == entry.integrity_hash


class AuditLogger:
    """Appends audit entries to the caller's session."""

    DEFAULT_RESOURCE_TYPE = "COMPETENCY_SUBMISSION"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        *,
        action: str,
        details: str,
        user_id: str,
        target_user_id: str | None = None,
        resource_id: str | None = None,
        resource_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: RequestContext | None = None,
        severity: AuditSeverity = AuditSeverity.MEDIUM,
        status: AuditStatus = AuditStatus.SUCCESS,
    ) -> AuditLog:
        """Insert one entry and flush it. Errors are logged and re-raised."""
        timestamp = datetime.now(UTC).isoformat()
        integrity_hash = compute_integrity_hash(
            {
                "user_id": user_id,
                "action": action,
                "details": details,
                "resource_id": resource_id,
                "target_user_id": target_user_id,
                "timestamp": timestamp,
            }
        )

        entry = AuditLog(
            user_id=user_id,
            action=action,
            details=details,
            resource_type=resource_type or self.DEFAULT_RESOURCE_TYPE,
            resource_id=resource_id,
            target_user_id=target_user_id,
            metadata_=metadata or {},
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
            severity=severity,
            status=status,
            hashed_at=timestamp,
            integrity_hash=integrity_hash,
            hash_algorithm=SHA256,
        )

        try:
            self.session.add(entry)
            await self.session.flush()
        except Exception:
            logger.exception("audit_log_write_failed", action=action, user_id=user_id)
            raise

        await logger.ainfo(
            "audit_logged",
            audit_id=entry.id,
            action=action,
            user_id=user_id,
            target_user_id=target_user_id,
            resource_id=resource_id,
        )
        return entry
