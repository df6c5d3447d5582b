"""Initial schema for competency deployments, assignments, evaluations and audit logs

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None

user_role_enum = sa.Enum(
    "SUPER_ADMIN",
    "SCHOOL_ADMIN",
    "CLINICAL_PRECEPTOR",
    "CLINICAL_SUPERVISOR",
    "STUDENT",
    name="user_role",
)
rotation_status_enum = sa.Enum(
    "SCHEDULED", "ACTIVE", "COMPLETED", "CANCELLED", name="rotation_status"
)
deployment_status_enum = sa.Enum(
    "PENDING", "ACTIVE", "INACTIVE", "ARCHIVED", name="deployment_status"
)
competency_level_enum = sa.Enum(
    "FUNDAMENTAL", "INTERMEDIATE", "ADVANCED", "EXPERT", name="competency_level"
)
assignment_type_enum = sa.Enum("REQUIRED", "OPTIONAL", "SUPPLEMENTARY", name="assignment_type")
assignment_status_enum = sa.Enum(
    "ASSIGNED", "IN_PROGRESS", "COMPLETED", "OVERDUE", name="assignment_status"
)
evaluation_type_enum = sa.Enum("MIDTERM", "FINAL", "WEEKLY", "INCIDENT", name="evaluation_type")
submission_status_enum = sa.Enum(
    "SUBMITTED",
    "UNDER_REVIEW",
    "APPROVED",
    "REJECTED",
    "REQUIRES_REVISION",
    name="submission_status",
)
submission_type_enum = sa.Enum("INDIVIDUAL", "BATCH", name="submission_type")
audit_severity_enum = sa.Enum("LOW", "MEDIUM", "HIGH", "CRITICAL", name="audit_severity")
audit_status_enum = sa.Enum("SUCCESS", "FAILURE", "ERROR", name="audit_status")

ENUMS = (
    user_role_enum,
    rotation_status_enum,
    deployment_status_enum,
    competency_level_enum,
    assignment_type_enum,
    assignment_status_enum,
    evaluation_type_enum,
    submission_status_enum,
    submission_type_enum,
    audit_severity_enum,
    audit_status_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("school_id", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_school_id", "users", ["school_id"])

    op.create_table(
        "rotations",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("specialty", sa.String(length=128), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", rotation_status_enum, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_rotations_student_id", "rotations", ["student_id"])

    op.create_table(
        "competency_deployments",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("school_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", deployment_status_enum, nullable=False),
        sa.Column("deployed_by", sa.String(length=64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deployed_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_competency_deployments_school_id", "competency_deployments", ["school_id"]
    )

    op.create_table(
        "competencies",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=128), nullable=False),
        sa.Column("level", competency_level_enum, nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deployed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "deployment_id",
            sa.String(length=64),
            sa.ForeignKey("competency_deployments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("school_id", sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_competencies_deployment_id", "competencies", ["deployment_id"])

    op.create_table(
        "competency_assignments",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "competency_id",
            sa.String(length=64),
            sa.ForeignKey("competencies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "deployment_id",
            sa.String(length=64),
            sa.ForeignKey("competency_deployments.id"),
            nullable=True,
        ),
        sa.Column("assigned_by", sa.String(length=64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assignment_type", assignment_type_enum, nullable=False),
        sa.Column("status", assignment_status_enum, nullable=False),
        sa.Column(
            "progress_percentage",
            sa.Numeric(precision=5, scale=2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_competency_assignments_user_id", "competency_assignments", ["user_id"])
    op.create_index(
        "ix_competency_assignments_competency_id", "competency_assignments", ["competency_id"]
    )
    op.create_index(
        "ix_competency_assignments_deployment_id", "competency_assignments", ["deployment_id"]
    )
    op.create_index("ix_competency_assignments_status", "competency_assignments", ["status"])

    op.create_table(
        "evaluations",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "assignment_id",
            sa.String(length=64),
            sa.ForeignKey("competency_assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rotation_id", sa.String(length=64), sa.ForeignKey("rotations.id"), nullable=True),
        sa.Column("evaluator_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("clinical_site_id", sa.String(length=64), nullable=True),
        sa.Column("type", evaluation_type_enum, nullable=True),
        sa.Column("observation_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("overall_rating", sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column("clinical_skills", sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column("communication", sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column("professionalism", sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column("critical_thinking", sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column("criteria", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("strengths", sa.Text(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column(
            "student_signature", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "evaluator_signature", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "assignment_id", "evaluator_id", name="uq_evaluation_assignment_evaluator"
        ),
    )
    op.create_index("ix_evaluations_assignment_id", "evaluations", ["assignment_id"])
    op.create_index("ix_evaluations_student_id", "evaluations", ["student_id"])
    op.create_index("ix_evaluations_evaluator_id", "evaluations", ["evaluator_id"])

    op.create_table(
        "competency_submissions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("student_id", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "competency_id",
            sa.String(length=64),
            sa.ForeignKey("competencies.id"),
            nullable=False,
        ),
        sa.Column("submitted_by", sa.String(length=64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "evaluation_id",
            sa.String(length=64),
            sa.ForeignKey("evaluations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("rotation_id", sa.String(length=64), sa.ForeignKey("rotations.id"), nullable=True),
        sa.Column("status", submission_status_enum, nullable=False),
        sa.Column("submission_type", submission_type_enum, nullable=False),
        sa.Column("evidence", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_competency_submissions_student_id", "competency_submissions", ["student_id"]
    )
    op.create_index(
        "ix_competency_submissions_competency_id", "competency_submissions", ["competency_id"]
    )
    op.create_index("ix_competency_submissions_status", "competency_submissions", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("resource_type", sa.String(length=64), nullable=True),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("target_user_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("severity", audit_severity_enum, nullable=False),
        sa.Column("status", audit_status_enum, nullable=False),
        sa.Column("hashed_at", sa.String(length=40), nullable=False),
        sa.Column("integrity_hash", sa.String(length=64), nullable=False),
        sa.Column("hash_algorithm", sa.String(length=16), nullable=False, server_default="sha256"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("competency_submissions")
    op.drop_table("evaluations")
    op.drop_table("competency_assignments")
    op.drop_table("competencies")
    op.drop_table("competency_deployments")
    op.drop_table("rotations")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in ENUMS:
        enum.drop(bind, checkfirst=True)
