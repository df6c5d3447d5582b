"""
Read-only per-competency progress for one assignment.

Looks at every deployed competency of the assignment's deployment and derives
a status from the student's latest submission and latest evaluation. The
stored assignment status and percentage are reported next to the computed
figures as they are; the two may briefly disagree until reconciliation runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.config import get_settings
from src.core.permissions import can_view_assignment_progress
from src.domain.models import User
from src.infrastructure.db.models import (
    AssignmentStatus,
    Competency,
    CompetencyAssignment,
    CompetencySubmission,
    Evaluation,
    SubmissionStatus,
)

logger = structlog.get_logger(__name__)

NOT_STARTED = "NOT_STARTED"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"


class AssignmentNotFoundError(Exception):
    """Raised when the assignment does not exist."""


class ProgressAccessDeniedError(Exception):
    """Raised when the viewer may not see this assignment."""


@dataclass(slots=True)
class CompetencyProgress:
    competency_id: str
    competency_name: str
    category: str
    level: str
    is_required: bool
    status: str
    score: float | None = None
    feedback: str | None = None
    evaluation_id: str | None = None
    submission_id: str | None = None
    submission_status: str | None = None
    last_activity: datetime | None = None


@dataclass(slots=True)
class ProgressStatistics:
    total: int = 0
    required: int = 0
    completed: int = 0
    completed_required: int = 0
    in_progress: int = 0

    @property
    def not_started(self) -> int:
        return self.total - self.completed - self.in_progress

    @property
    def overall_progress(self) -> float:
        if not self.total:
            return 0.0
        return round(self.completed / self.total * 100, 2)

    @property
    def required_progress(self) -> float:
        if not self.required:
            return 100.0
        return round(self.completed_required / self.required * 100, 2)


@dataclass(slots=True)
class AssignmentProgressView:
    assignment_id: str
    user_id: str
    deployment_id: str | None
    status: str
    current_progress: float
    statistics: ProgressStatistics
    competencies: list[CompetencyProgress] = field(default_factory=list)

    @property
    def calculated_progress(self) -> int:
        return int(self.statistics.overall_progress + 0.5)


def competency_status(
    submission_status: str | None,
    evaluation_rating: float | None,
    passing_rating: float,
) -> str:
    if submission_status == SubmissionStatus.APPROVED.value:
        return COMPLETED
    if evaluation_rating is not None and evaluation_rating >= passing_rating:
        return COMPLETED
    if submission_status is not None or evaluation_rating is not None:
        return IN_PROGRESS
    return NOT_STARTED


class AssignmentProgressService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.passing_rating = get_settings().evaluation_passing_rating

    async def get_progress(self, *, assignment_id: str, viewer: User) -> AssignmentProgressView:
        assignment = await self.session.get(CompetencyAssignment, assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError("Assignment not found")
        if not can_view_assignment_progress(viewer.role, viewer.user_id, assignment.user_id):
            raise ProgressAccessDeniedError("Insufficient permissions")

        competencies: list[Competency] = []
        if assignment.deployment_id:
            competencies = list(
                await self.session.scalars(
                    select(Competency)
                    .where(
                        Competency.deployment_id == assignment.deployment_id,
                        Competency.is_deployed.is_(True),
                    )
                    .order_by(Competency.category, Competency.name)
                )
            )

        submissions = await self._latest_submissions(assignment.user_id)
        evaluations = await self._latest_evaluations(assignment.user_id)

        stats = ProgressStatistics()
        rows: list[CompetencyProgress] = []
        for competency in competencies:
            submission = submissions.get(competency.id)
            evaluation = evaluations.get(competency.id)
            submission_status = (
                SubmissionStatus(submission.status).value if submission else None
            )
            rating = evaluation.overall_rating if evaluation else None
            status = competency_status(submission_status, rating, self.passing_rating)

            activity = [
                moment
                for moment in (
                    evaluation.observation_date if evaluation else None,
                    submission.reviewed_at if submission else None,
                    submission.submitted_at if submission else None,
                )
                if moment is not None
            ]
            rows.append(
                CompetencyProgress(
                    competency_id=competency.id,
                    competency_name=competency.name,
                    category=competency.category,
                    level=competency.level.value,
                    is_required=competency.is_required,
                    status=status,
                    score=rating,
                    feedback=(evaluation.feedback if evaluation else None)
                    or (submission.feedback if submission else None),
                    evaluation_id=evaluation.id if evaluation else None,
                    submission_id=submission.id if submission else None,
                    submission_status=submission_status,
                    last_activity=activity[0] if activity else None,
                )
            )

            stats.total += 1
            if competency.is_required:
                stats.required += 1
            if status == COMPLETED:
                stats.completed += 1
                if competency.is_required:
                    stats.completed_required += 1
            elif status == IN_PROGRESS:
                stats.in_progress += 1

        await logger.ainfo(
            "assignment_progress_viewed",
            assignment_id=assignment.id,
            viewer_id=viewer.user_id,
            total=stats.total,
            completed=stats.completed,
        )
        return AssignmentProgressView(
            assignment_id=assignment.id,
            user_id=assignment.user_id,
            deployment_id=assignment.deployment_id,
            status=AssignmentStatus(assignment.status).value,
            current_progress=float(assignment.progress_percentage or 0),
            statistics=stats,
            competencies=rows,
        )

    async def _latest_submissions(self, student_id: str) -> dict[str, CompetencySubmission]:
        result = await self.session.scalars(
            select(CompetencySubmission)
            .where(CompetencySubmission.student_id == student_id)
            .order_by(CompetencySubmission.submitted_at.desc())
        )
        latest: dict[str, CompetencySubmission] = {}
        for submission in result:
            latest.setdefault(submission.competency_id, submission)
        return latest

    async def _latest_evaluations(self, student_id: str) -> dict[str, Evaluation]:
        result = await self.session.execute(
            select(Evaluation, CompetencyAssignment.competency_id)
            .join(CompetencyAssignment, CompetencyAssignment.id == Evaluation.assignment_id)
            .where(Evaluation.student_id == student_id)
            .order_by(Evaluation.observation_date.desc(), Evaluation.created_at.desc())
        )
        latest: dict[str, Evaluation] = {}
        for evaluation, competency_id in result:
            latest.setdefault(competency_id, evaluation)
        return latest
