"""Unit tests for the role predicates used by submission and evaluation."""

from __future__ import annotations

import pytest
from src.core.auth import Role
from src.core.permissions import (
    can_submit_competencies,
    can_view_assignment_progress,
    is_administrator,
    validate_submission_target,
)
from src.infrastructure.db.models import UserRole


class TestCanSubmitCompetencies:
    @pytest.mark.parametrize(
        "role",
        ["CLINICAL_PRECEPTOR", "CLINICAL_SUPERVISOR", "SUPER_ADMIN", "SCHOOL_ADMIN"],
    )
    def test_submitter_roles_allowed(self, role: str) -> None:
        assert can_submit_competencies(role) is True

    @pytest.mark.parametrize("role", ["STUDENT", "ADMIN", "", None, "clinical_preceptor"])
    def test_other_roles_rejected(self, role: str | None) -> None:
        assert can_submit_competencies(role) is False

    def test_accepts_enum_members(self) -> None:
        assert can_submit_competencies(Role.CLINICAL_PRECEPTOR) is True
        assert can_submit_competencies(UserRole.SCHOOL_ADMIN) is True
        assert can_submit_competencies(UserRole.STUDENT) is False


class TestValidateSubmissionTarget:
    def test_super_admin_may_target_themselves(self) -> None:
        assert validate_submission_target("admin-1", "admin-1", "SUPER_ADMIN") is True

    def test_school_admin_may_target_themselves(self) -> None:
        assert validate_submission_target("admin-2", "admin-2", "SCHOOL_ADMIN") is True

    def test_preceptor_cannot_target_themselves(self) -> None:
        assert validate_submission_target("prec-1", "prec-1", "CLINICAL_PRECEPTOR") is False

    def test_preceptor_may_target_a_student(self) -> None:
        assert validate_submission_target("prec-1", "student-1", "CLINICAL_PRECEPTOR") is True

    def test_role_outside_submitter_set_still_only_checks_identity(self) -> None:
        # tenant and role checks live elsewhere; this guard is identity only
        assert validate_submission_target("student-1", "student-2", "STUDENT") is True
        assert validate_submission_target("student-1", "student-1", "STUDENT") is False


class TestAdministratorAndProgressViewing:
    def test_is_administrator(self) -> None:
        assert is_administrator("SUPER_ADMIN")
        assert is_administrator("SCHOOL_ADMIN")
        assert not is_administrator("CLINICAL_SUPERVISOR")

    @pytest.mark.parametrize("role", ["SUPER_ADMIN", "SCHOOL_ADMIN", "CLINICAL_SUPERVISOR"])
    def test_staff_roles_view_any_assignment(self, role: str) -> None:
        assert can_view_assignment_progress(role, "viewer", "owner") is True

    def test_owner_views_own_assignment(self) -> None:
        assert can_view_assignment_progress("STUDENT", "student-1", "student-1") is True

    def test_preceptor_cannot_view_others(self) -> None:
        assert can_view_assignment_progress("CLINICAL_PRECEPTOR", "prec-1", "student-1") is False
