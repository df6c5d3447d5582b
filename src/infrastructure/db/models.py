from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda e: [x.value for x in e])


class UserRole(str, enum.Enum):
    """User role enum matching auth.Role."""

    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    CLINICAL_PRECEPTOR = "CLINICAL_PRECEPTOR"
    CLINICAL_SUPERVISOR = "CLINICAL_SUPERVISOR"
    STUDENT = "STUDENT"


class RotationStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CompetencyLevel(str, enum.Enum):
    """Required proficiency, ordered FUNDAMENTAL < INTERMEDIATE < ADVANCED < EXPERT."""

    FUNDAMENTAL = "FUNDAMENTAL"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


class DeploymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class AssignmentType(str, enum.Enum):
    REQUIRED = "REQUIRED"
    OPTIONAL = "OPTIONAL"
    SUPPLEMENTARY = "SUPPLEMENTARY"


class AssignmentStatus(str, enum.Enum):
    """Assignment obligation status.

    ASSIGNED -> IN_PROGRESS -> COMPLETED is driven by progress reconciliation.
    OVERDUE is a time-based side state set elsewhere and never touched by it.
    """

    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REQUIRES_REVISION = "REQUIRES_REVISION"


class SubmissionType(str, enum.Enum):
    INDIVIDUAL = "INDIVIDUAL"
    BATCH = "BATCH"


class EvaluationType(str, enum.Enum):
    MIDTERM = "MIDTERM"
    FINAL = "FINAL"
    WEEKLY = "WEEKLY"
    INCIDENT = "INCIDENT"


class AuditSeverity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    ERROR = "ERROR"


class UserModel(Base):
    """SQLAlchemy model for users mirrored from the identity provider."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "user_role"),
        default=UserRole.STUDENT,
        nullable=False,
    )
    school_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UserModel(id={self.id}, email={self.email}, role={self.role.value})>"


class Rotation(Base):
    """Time-boxed clinical placement of a student."""

    __tablename__ = "rotations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    specialty: Mapped[str] = mapped_column(String(128), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[RotationStatus] = mapped_column(
        _enum(RotationStatus, "rotation_status"),
        default=RotationStatus.SCHEDULED,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


class CompetencyDeployment(Base):
    """A named bundle of competencies published to a school or program."""

    __tablename__ = "competency_deployments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    school_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[DeploymentStatus] = mapped_column(
        _enum(DeploymentStatus, "deployment_status"),
        default=DeploymentStatus.PENDING,
        nullable=False,
    )
    deployed_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    deployed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    competencies: Mapped[list[Competency]] = relationship(back_populates="deployment")


class Competency(Base):
    __tablename__ = "competencies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    level: Mapped[CompetencyLevel] = mapped_column(
        _enum(CompetencyLevel, "competency_level"), nullable=False
    )
    is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deployed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deployment_id: Mapped[str | None] = mapped_column(
        ForeignKey("competency_deployments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    school_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    deployment: Mapped[CompetencyDeployment | None] = relationship(back_populates="competencies")


class CompetencyAssignment(Base):
    """Per-student, per-competency obligation.

    ``status`` and ``progress_percentage`` are owned by progress reconciliation
    and are only made consistent when it runs; readers must tolerate a lag
    between a submission and the reconciled values.
    """

    __tablename__ = "competency_assignments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    competency_id: Mapped[str] = mapped_column(
        ForeignKey("competencies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deployment_id: Mapped[str | None] = mapped_column(
        ForeignKey("competency_deployments.id"), nullable=True, index=True
    )
    assigned_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    assignment_type: Mapped[AssignmentType] = mapped_column(
        _enum(AssignmentType, "assignment_type"),
        default=AssignmentType.REQUIRED,
        nullable=False,
    )
    status: Mapped[AssignmentStatus] = mapped_column(
        _enum(AssignmentStatus, "assignment_status"),
        default=AssignmentStatus.ASSIGNED,
        nullable=False,
        index=True,
    )
    progress_percentage: Mapped[float] = mapped_column(
        Numeric(5, 2, asdecimal=False), default=0.0, nullable=False
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    competency: Mapped[Competency] = relationship()
    deployment: Mapped[CompetencyDeployment | None] = relationship()


class Evaluation(Base):
    """Per-rotation assessment of a student against one assignment.

    At most one evaluation per (assignment, evaluator). The services check
    before inserting and the unique constraint settles concurrent requests.
    """

    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint(
            "assignment_id", "evaluator_id", name="uq_evaluation_assignment_evaluator"
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    assignment_id: Mapped[str] = mapped_column(
        ForeignKey("competency_assignments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # the batch path accepts evaluations without a rotation reference
    rotation_id: Mapped[str | None] = mapped_column(ForeignKey("rotations.id"), nullable=True)
    evaluator_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    clinical_site_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[EvaluationType | None] = mapped_column(
        _enum(EvaluationType, "evaluation_type"), nullable=True
    )
    observation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    overall_rating: Mapped[float] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=False)
    clinical_skills: Mapped[float] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=False)
    communication: Mapped[float] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=False)
    professionalism: Mapped[float] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=False)
    critical_thinking: Mapped[float] = mapped_column(
        Numeric(3, 2, asdecimal=False), nullable=False
    )
    criteria: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    strengths: Mapped[str | None] = mapped_column(Text, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    student_signature: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    evaluator_signature: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class CompetencySubmission(Base):
    """Evidence that a student was evaluated on one competency.

    Created once per submission event. Progress reconciliation only counts
    these rows; it never updates them.
    """

    __tablename__ = "competency_submissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    competency_id: Mapped[str] = mapped_column(
        ForeignKey("competencies.id"), nullable=False, index=True
    )
    submitted_by: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    evaluation_id: Mapped[str | None] = mapped_column(
        ForeignKey("evaluations.id", ondelete="SET NULL"), nullable=True
    )
    rotation_id: Mapped[str | None] = mapped_column(ForeignKey("rotations.id"), nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        _enum(SubmissionStatus, "submission_status"),
        default=SubmissionStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    submission_type: Mapped[SubmissionType] = mapped_column(
        _enum(SubmissionType, "submission_type"),
        default=SubmissionType.INDIVIDUAL,
        nullable=False,
    )
    evidence: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class AuditLog(Base):
    """Append-only record of who did what, with an integrity hash."""

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    severity: Mapped[AuditSeverity] = mapped_column(
        _enum(AuditSeverity, "audit_severity"), default=AuditSeverity.LOW, nullable=False
    )
    status: Mapped[AuditStatus] = mapped_column(
        _enum(AuditStatus, "audit_status"), default=AuditStatus.SUCCESS, nullable=False
    )
    # timestamp that went into the hash, kept as text so verification is exact
    hashed_at: Mapped[str] = mapped_column(String(40), nullable=False)
    integrity_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    hash_algorithm: Mapped[str] = mapped_column(String(16), nullable=False, default="sha256")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


__all__ = [
    "UserRole",
    "RotationStatus",
    "CompetencyLevel",
    "DeploymentStatus",
    "AssignmentType",
    "AssignmentStatus",
    "SubmissionStatus",
    "SubmissionType",
    "EvaluationType",
    "AuditSeverity",
    "AuditStatus",
    "UserModel",
    "Rotation",
    "CompetencyDeployment",
    "Competency",
    "CompetencyAssignment",
    "Evaluation",
    "CompetencySubmission",
    "AuditLog",
]
