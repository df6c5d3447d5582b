"""
Competency assignment progress.

Two different numbers are both called "progress" in this workflow. Keep them
apart:

* Deployment coverage (``deployment_progress_percentage``): the share of a
  deployment's deployed competencies the student has SUBMITTED submissions
  for. ``AssignmentProgressReconciler`` owns this one and it drives the
  ASSIGNED -> IN_PROGRESS -> COMPLETED transitions.
* Evaluation pass rate (``evaluation_pass_rate``): the share of an
  assignment's evaluations rated at or above the passing threshold. The batch
  submission path writes it directly after each evaluation.

They answer different questions and must not be merged.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from src.infrastructure.db.models import (
    AssignmentStatus,
    Competency,
    CompetencyAssignment,
    CompetencySubmission,
    SubmissionStatus,
)

logger = structlog.get_logger(__name__)


class ReconciliationOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NO_ASSIGNMENT = "no_assignment"
    NO_DEPLOYMENT = "no_deployment"
    FAILED = "failed"


@dataclass(slots=True)
class ProgressReconciliation:
    """Result of one reconciliation. Callers are free to discard it."""

    outcome: ReconciliationOutcome
    student_id: str
    competency_id: str
    assignment_id: str | None = None
    previous_percentage: float | None = None
    new_percentage: int | None = None
    previous_status: AssignmentStatus | None = None
    new_status: AssignmentStatus | None = None
    error: str | None = None

    @property
    def written(self) -> bool:
        return self.outcome is ReconciliationOutcome.UPDATED


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def deployment_progress_percentage(submitted: int, total: int) -> int:
    """Whole-number coverage of a deployment, 0 when it has no deployed competencies.

    Submission rows are counted, not distinct competencies, so the raw ratio can
    exceed 1; the result is capped at 100.
    """
    if total <= 0:
        return 0
    return min(100, _round_half_up(100 * submitted / total))


def evaluation_pass_rate(total: int, passing: int) -> int:
    """Whole-number share of evaluations rated at or above the passing threshold."""
    if total <= 0:
        return 0
    return min(100, _round_half_up(100 * passing / total))


def next_assignment_status(current: AssignmentStatus, percentage: int) -> AssignmentStatus:
    """Forward-only status transition for deployment coverage.

    COMPLETED is never left once reached, and OVERDUE is not ours to change.
    A jump from ASSIGNED straight to 100 leaves the status ASSIGNED; it moves
    on the next reconciliation after passing through IN_PROGRESS.
    """
    # percentage is capped at 100, so more submitted rows than deployed
    # competencies also counts as full coverage here
    if percentage >= 100 and current is AssignmentStatus.IN_PROGRESS:
        return AssignmentStatus.COMPLETED
    if 0 < percentage < 100 and current is AssignmentStatus.ASSIGNED:
        return AssignmentStatus.IN_PROGRESS
    return current


class AssignmentProgressReconciler:
    """Recomputes deployment coverage for one (student, competency) assignment.

    Best-effort: every failure is logged and reported as a FAILED result, never
    raised, so progress tracking cannot abort the submission that triggered it.
    The work runs in a SAVEPOINT so a failed statement does not poison the
    caller's transaction. There is no lock around the read-modify-write;
    concurrent reconciliations of the same assignment converge on the next run.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def update_assignment_progress(
        self,
        student_id: str,
        competency_id: str,
        submission_status: str,
    ) -> ProgressReconciliation:
        # submission_status is a hint for logs only. Whether it should restrict
        # which submissions are counted is an open product question; until it
        # is answered it must not change the computation.
        try:
            async with self.session.begin_nested():
                return await self._reconcile(student_id, competency_id, submission_status)
        except Exception as exc:
            logger.exception(
                "assignment_progress_update_failed",
                student_id=student_id,
                competency_id=competency_id,
                status_hint=submission_status,
            )
            return ProgressReconciliation(
                outcome=ReconciliationOutcome.FAILED,
                student_id=student_id,
                competency_id=competency_id,
                error=str(exc),
            )

    async def _reconcile(
        self,
        student_id: str,
        competency_id: str,
        submission_status: str,
    ) -> ProgressReconciliation:
        assignment = await self.session.scalar(
            select(CompetencyAssignment)
            .where(
                CompetencyAssignment.user_id == student_id,
                CompetencyAssignment.competency_id == competency_id,
            )
            .order_by(CompetencyAssignment.created_at)
            .limit(1)
        )
        if assignment is None:
            await logger.awarning(
                "assignment_progress_no_assignment",
                student_id=student_id,
                competency_id=competency_id,
            )
            return ProgressReconciliation(
                outcome=ReconciliationOutcome.NO_ASSIGNMENT,
                student_id=student_id,
                competency_id=competency_id,
            )

        if not assignment.deployment_id:
            await logger.awarning("assignment_progress_no_deployment", assignment_id=assignment.id)
            return ProgressReconciliation(
                outcome=ReconciliationOutcome.NO_DEPLOYMENT,
                student_id=student_id,
                competency_id=competency_id,
                assignment_id=assignment.id,
            )

        total = await self._count_deployed_competencies(assignment.deployment_id)
        submitted = await self._count_submitted(student_id, assignment.deployment_id)

        new_percentage = deployment_progress_percentage(submitted, total)
        current_status = AssignmentStatus(assignment.status)
        new_status = next_assignment_status(current_status, new_percentage)
        current_percentage = float(assignment.progress_percentage or 0)

        result = ProgressReconciliation(
            outcome=ReconciliationOutcome.UNCHANGED,
            student_id=student_id,
            competency_id=competency_id,
            assignment_id=assignment.id,
            previous_percentage=current_percentage,
            new_percentage=new_percentage,
            previous_status=current_status,
            new_status=new_status,
        )

        if new_percentage == current_percentage and new_status is current_status:
            return result

        assignment.progress_percentage = new_percentage
        assignment.status = new_status
        if new_status is AssignmentStatus.COMPLETED and current_status is not new_status:
            assignment.completion_date = datetime.now(UTC)
        await self.session.flush()

        result.outcome = ReconciliationOutcome.UPDATED
        await logger.ainfo(
            "assignment_progress_updated",
            assignment_id=assignment.id,
            previous_percentage=current_percentage,
            new_percentage=new_percentage,
            previous_status=current_status.value,
            new_status=new_status.value,
            submitted=submitted,
            total=total,
            status_hint=submission_status,
        )
        return result

    async def _count_deployed_competencies(self, deployment_id: str) -> int:
        count = await self.session.scalar(
            select(func.count(Competency.id)).where(
                Competency.deployment_id == deployment_id,
                Competency.is_deployed.is_(True),
            )
        )
        return int(count or 0)

    async def _count_submitted(self, student_id: str, deployment_id: str) -> int:
        count = await self.session.scalar(
            select(func.count(CompetencySubmission.id))
            .join(Competency, Competency.id == CompetencySubmission.competency_id)
            .where(
                CompetencySubmission.student_id == student_id,
                CompetencySubmission.status == SubmissionStatus.SUBMITTED,
                Competency.deployment_id == deployment_id,
            )
        )
        return int(count or 0)
