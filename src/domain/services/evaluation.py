"""
Single-record evaluation ingestion.

An evaluator signs off one competency assignment. The student must have at
least one rotation (any status); the most recently started one is attached to
the evaluation. After the insert the deployment-level reconciler runs with a
status hint derived from the approval status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.permissions import (
    can_submit_competencies,
    is_administrator,
    validate_submission_target,
)
from src.domain.models import RequestContext
from src.domain.services.audit import AuditLogger
from src.domain.services.progress import AssignmentProgressReconciler, ProgressReconciliation
from src.infrastructure.db.models import (
    CompetencyAssignment,
    Evaluation,
    EvaluationType,
    Rotation,
    UserModel,
)

logger = structlog.get_logger(__name__)


class UserNotFoundError(Exception):
    """Raised when the authenticated caller has no user record."""


class InactiveUserError(Exception):
    """Raised when the authenticated caller has been deactivated."""


class ForbiddenProxyError(Exception):
    """Raised when a non-administrator submits under another evaluator's id."""


class InsufficientPermissionsError(Exception):
    """Raised when the caller's role may not submit evaluations."""


class AssignmentNotFoundError(Exception):
    """Raised when the assignment does not exist."""


class InvalidSubmissionTargetError(Exception):
    """Raised when a non-administrator evaluates themselves."""


class NoRotationError(Exception):
    """Raised when the student has no rotation to attach the evaluation to."""


class DuplicateEvaluationError(Exception):
    """Raised when the evaluator already evaluated this assignment."""

    def __init__(self, assignment_id: str, evaluator_id: str) -> None:
        super().__init__("Evaluation already exists for this assignment by this evaluator")
        self.assignment_id = assignment_id
        self.evaluator_id = evaluator_id


@dataclass(slots=True)
class EvaluationRequest:
    assignment_id: str
    evaluator_id: str
    overall_score: float
    status: str
    criterion_scores: dict[str, float] = field(default_factory=dict)
    feedback: str | None = None
    recommendations: str | None = None
    evaluation_date: datetime | None = None

    @property
    def progress_hint(self) -> str:
        return "completed" if self.status == "approved" else "submitted"


@dataclass(slots=True)
class EvaluationResult:
    evaluation_id: str
    assignment_id: str
    rotation_id: str
    progress: ProgressReconciliation


async def find_evaluation(
    session: AsyncSession, assignment_id: str, evaluator_id: str
) -> Evaluation | None:
    return await session.scalar(
        select(Evaluation)
        .where(
            Evaluation.assignment_id == assignment_id,
            Evaluation.evaluator_id == evaluator_id,
        )
        .limit(1)
    )


async def insert_evaluation(session: AsyncSession, evaluation: Evaluation) -> Evaluation:
    """Add and flush ``evaluation``.

    The (assignment, evaluator) unique constraint is the backstop for
    concurrent requests that both passed the existence check. On an integrity
    error the session is rolled back; if a matching evaluation is now visible
    the error becomes ``DuplicateEvaluationError``, otherwise it propagates.
    """
    session.add(evaluation)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        if await find_evaluation(session, evaluation.assignment_id, evaluation.evaluator_id):
            raise DuplicateEvaluationError(
                evaluation.assignment_id, evaluation.evaluator_id
            ) from None
        raise
    return evaluation


class EvaluationService:
    """Handles POST /api/competency-evaluations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.audit = AuditLogger(session)
        self.reconciler = AssignmentProgressReconciler(session)

    async def submit_evaluation(
        self,
        *,
        caller_id: str,
        request: EvaluationRequest,
        context: RequestContext | None = None,
    ) -> EvaluationResult:
        caller = await self.session.get(UserModel, caller_id)
        if caller is not None and not caller.is_active:
            raise InactiveUserError("Unauthorized")
        if caller_id != request.evaluator_id and not (
            caller is not None and is_administrator(caller.role)
        ):
            raise ForbiddenProxyError("Forbidden: Cannot submit as another user")
        if caller is None:
            raise UserNotFoundError("User not found")
        if not can_submit_competencies(caller.role):
            raise InsufficientPermissionsError("Insufficient permissions to submit evaluations")

        assignment = await self.session.get(CompetencyAssignment, request.assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError("Assignment not found")

        if not validate_submission_target(caller.id, assignment.user_id, caller.role):
            raise InvalidSubmissionTargetError("Invalid submission target")

        rotation = await self._latest_rotation(assignment.user_id)
        if rotation is None:
            raise NoRotationError("Student must be assigned to a rotation to receive evaluations")

        if await find_evaluation(self.session, assignment.id, caller.id):
            raise DuplicateEvaluationError(assignment.id, caller.id)

        # read before the insert; a rollback on conflict expires the instance
        student_id = assignment.user_id
        competency_id = assignment.competency_id
        score = request.overall_score

        evaluation = await insert_evaluation(
            self.session,
            Evaluation(
                assignment_id=assignment.id,
                student_id=student_id,
                rotation_id=rotation.id,
                evaluator_id=caller.id,
                type=EvaluationType.FINAL,
                observation_date=request.evaluation_date or datetime.now(UTC),
                feedback=request.feedback,
                overall_rating=score,
                clinical_skills=score,
                communication=score,
                professionalism=score,
                critical_thinking=score,
                criteria=dict(request.criterion_scores),
                strengths=request.recommendations,
                comments=request.recommendations,
            ),
        )

        progress = await self.reconciler.update_assignment_progress(
            student_id, competency_id, request.progress_hint
        )

        await self.audit.record(
            action="SUBMIT_EVALUATION",
            details=f"Submitted evaluation for assignment {request.assignment_id}",
            user_id=caller_id,
            target_user_id=student_id,
            resource_id=evaluation.id,
            resource_type="EVALUATION",
            metadata=self._audit_metadata(request, student_id, competency_id),
            context=context,
        )
        await self.session.commit()

        await logger.ainfo(
            "competency_evaluation_submitted",
            evaluation_id=evaluation.id,
            assignment_id=request.assignment_id,
            evaluator_id=caller_id,
            status=request.status,
            progress_outcome=progress.outcome.value,
        )
        return EvaluationResult(
            evaluation_id=evaluation.id,
            assignment_id=request.assignment_id,
            rotation_id=rotation.id,
            progress=progress,
        )

    async def _latest_rotation(self, student_id: str) -> Rotation | None:
        return await self.session.scalar(
            select(Rotation)
            .where(Rotation.student_id == student_id)
            .order_by(Rotation.start_date.desc())
            .limit(1)
        )

    @staticmethod
    def _audit_metadata(
        request: EvaluationRequest, student_id: str, competency_id: str
    ) -> dict[str, Any]:
        return {
            "student_id": student_id,
            "competency_id": competency_id,
            "score": request.overall_score,
            "status": request.status,
        }
