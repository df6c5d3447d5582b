"""Role predicates for competency submission and evaluation.

These are pure functions over role strings and user ids. Tenant (school)
isolation is not decided here; callers filter by school in their queries.
"""

from __future__ import annotations

from enum import Enum

from src.core.auth import Role

SUBMITTER_ROLES = frozenset(
    {
        Role.CLINICAL_PRECEPTOR.value,
        Role.CLINICAL_SUPERVISOR.value,
        Role.SUPER_ADMIN.value,
        Role.SCHOOL_ADMIN.value,
    }
)
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN.value, Role.SCHOOL_ADMIN.value})
PROGRESS_VIEWER_ROLES = frozenset(
    {Role.SUPER_ADMIN.value, Role.SCHOOL_ADMIN.value, Role.CLINICAL_SUPERVISOR.value}
)
SUBMISSION_READER_ROLES = frozenset(role.value for role in Role)


def _role_value(role: Role | str | None) -> str:
    if isinstance(role, Enum):
        return role.value
    return role or ""


def can_submit_competencies(role: Role | str | None) -> bool:
    """Return True if the role may submit competencies on behalf of students."""
    return _role_value(role) in SUBMITTER_ROLES


def is_administrator(role: Role | str | None) -> bool:
    return _role_value(role) in ADMIN_ROLES


def validate_submission_target(
    submitter_id: str,
    student_id: str,
    submitter_role: Role | str | None,
) -> bool:
    """Reject self-evaluation for everyone except administrators.

    Super and school admins may target any student, themselves included, so
    they can exercise the workflow administratively.
    """
    if is_administrator(submitter_role):
        return True
    return submitter_id != student_id


def can_view_assignment_progress(
    role: Role | str | None,
    viewer_id: str,
    assignment_owner_id: str,
) -> bool:
    if _role_value(role) in PROGRESS_VIEWER_ROLES:
        return True
    return viewer_id == assignment_owner_id

