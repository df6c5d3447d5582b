"""
Competency submission ingestion and listing.

POST /api/competency-submissions
- One submission or a batch of up to MAX_BATCH_SUBMISSIONS, processed in order
- Each item is validated, written and committed on its own; a failing item is
  recorded with its index and the loop moves on
- Every written evaluation updates the assignment's evaluation pass rate
- After the loop the deployment-level reconciler runs once per success

GET /api/competency-submissions
- Filtered, paginated listing scoped to the caller's school and role
"""

from __future__ import annotations

import json
import math
import uuid
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.config import get_settings
from src.core.permissions import validate_submission_target
from src.domain.models import RequestContext, User
from src.domain.services.audit import AuditLogger
from src.domain.services.evaluation import (
    DuplicateEvaluationError,
    find_evaluation,
    insert_evaluation,
)
from src.domain.services.progress import AssignmentProgressReconciler, evaluation_pass_rate
from src.infrastructure.db.models import (
    AssignmentStatus,
    AuditSeverity,
    Competency,
    CompetencyAssignment,
    CompetencySubmission,
    Evaluation,
    EvaluationType,
    SubmissionStatus,
    SubmissionType,
    UserModel,
    UserRole,
)

logger = structlog.get_logger(__name__)


class SubmissionItemError(Exception):
    """A single item of a submission request that could not be processed."""

    def __init__(self, index: int, error: str, **context: Any) -> None:
        super().__init__(error)
        self.index = index
        self.error = error
        self.context = context

    def as_dict(self) -> dict[str, Any]:
        return {"index": self.index, "error": self.error, **self.context}


@dataclass(slots=True)
class SubmissionItem:
    assignment_id: str
    student_id: str
    competency_id: str
    rating: float
    observation_date: datetime
    feedback: str | None = None
    clinical_site_id: str | None = None
    rotation_id: str | None = None
    criteria: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class SubmissionOutcome:
    index: int
    submission_id: str
    evaluation_id: str
    assignment_id: str
    student_id: str
    competency_id: str
    previous_progress: float
    new_progress: int
    status_change: dict[str, str] | None = None


@dataclass(slots=True)
class BatchSubmissionResult:
    is_batch: bool
    total: int
    successful: list[SubmissionOutcome] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": len(self.successful),
            "failed": len(self.failed),
        }

    @property
    def message(self) -> str:
        if not self.failed:
            return f"Successfully processed {len(self.successful)} submission(s)"
        return (
            f"Processed {len(self.successful)} submission(s) with {len(self.failed)} error(s)"
        )


@dataclass(slots=True)
class SubmissionQuery:
    page: int = 1
    limit: int = 20
    student_id: str | None = None
    competency_id: str | None = None
    assignment_id: str | None = None
    submitted_by: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    status: AssignmentStatus | None = None
    search: str | None = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"


@dataclass(slots=True)
class SubmissionRecord:
    id: str
    assignment_id: str | None
    competency_id: str
    competency_name: str
    student_id: str
    student_name: str | None
    student_email: str
    submitted_by: str
    evaluation_id: str | None
    rating: float | None
    feedback: str | None
    status: str
    submission_type: str
    assignment_status: str | None
    progress: float | None
    rotation_id: str | None
    submitted_at: datetime
    created_at: datetime


@dataclass(slots=True)
class SubmissionPage:
    items: list[SubmissionRecord]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


_SORT_COLUMNS = {
    "createdAt": CompetencySubmission.created_at,
    "submissionDate": CompetencySubmission.submitted_at,
    "rating": Evaluation.overall_rating,
    "studentName": UserModel.name,
}


class CompetencySubmissionService:
    """Records evaluations that preceptors and admins submit for students."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.settings = get_settings()
        self.audit = AuditLogger(session)
        self.reconciler = AssignmentProgressReconciler(session)

    async def submit(
        self,
        *,
        submitter: User,
        items: Sequence[SubmissionItem],
        is_batch: bool,
        context: RequestContext | None = None,
        batch_metadata: dict[str, Any] | None = None,
    ) -> BatchSubmissionResult:
        """Process ``items`` in order. Per-item failures never abort the batch."""
        context = context or RequestContext()
        result = BatchSubmissionResult(is_batch=is_batch, total=len(items))

        for index, item in enumerate(items):
            try:
                outcome = await self._process_item(index, item, submitter, is_batch, context)
                await self.session.commit()
            except SubmissionItemError as exc:
                await self.session.rollback()
                await logger.awarning(
                    "competency_submission_rejected", index=index, error=exc.error
                )
                result.failed.append(exc.as_dict())
                continue
            except Exception as exc:
                await self.session.rollback()
                logger.exception("competency_submission_failed", index=index)
                result.failed.append(
                    {"index": index, "error": "Failed to process submission", "details": str(exc)}
                )
                continue
            result.successful.append(outcome)

        if is_batch:
            await self._record_batch(submitter, result, context, batch_metadata)

        for outcome in result.successful:
            await self.reconciler.update_assignment_progress(
                outcome.student_id, outcome.competency_id, "submitted"
            )
        await self.session.commit()

        await logger.ainfo(
            "competency_submission_processed",
            submitter_id=submitter.user_id,
            submission_type="batch" if is_batch else "individual",
            **result.summary,
        )
        return result

    async def _process_item(
        self,
        index: int,
        item: SubmissionItem,
        submitter: User,
        is_batch: bool,
        context: RequestContext,
    ) -> SubmissionOutcome:
        assignment = await self.session.scalar(
            select(CompetencyAssignment)
            .where(
                CompetencyAssignment.id == item.assignment_id,
                CompetencyAssignment.user_id == item.student_id,
                CompetencyAssignment.competency_id == item.competency_id,
            )
            .limit(1)
        )
        if assignment is None:
            raise SubmissionItemError(
                index,
                "Assignment not found or does not match student/competency",
                assignmentId=item.assignment_id,
                studentId=item.student_id,
                competencyId=item.competency_id,
            )

        if not submitter.is_super_admin and submitter.school_id:
            student = await self.session.scalar(
                select(UserModel.id).where(
                    UserModel.id == item.student_id,
                    UserModel.school_id == submitter.school_id,
                    UserModel.role == UserRole.STUDENT,
                )
            )
            if student is None:
                raise SubmissionItemError(
                    index,
                    "Student not found in your school or invalid student role",
                    studentId=item.student_id,
                )

        if not validate_submission_target(submitter.user_id, item.student_id, submitter.role):
            raise SubmissionItemError(
                index,
                "Invalid submission target - users cannot submit competencies for "
                "themselves unless they are administrators",
                studentId=item.student_id,
            )

        if await find_evaluation(self.session, item.assignment_id, submitter.user_id):
            raise self._duplicate(index, item, submitter)

        previous_progress = float(assignment.progress_percentage or 0)
        previous_status = AssignmentStatus(assignment.status)
        submission_type = "batch" if is_batch else "individual"
        now = datetime.now(UTC)

        try:
            evaluation = await insert_evaluation(
                self.session,
                Evaluation(
                    assignment_id=item.assignment_id,
                    student_id=item.student_id,
                    evaluator_id=submitter.user_id,
                    rotation_id=item.rotation_id,
                    clinical_site_id=item.clinical_site_id,
                    type=EvaluationType.FINAL,
                    observation_date=item.observation_date,
                    feedback=item.feedback,
                    overall_rating=item.rating,
                    clinical_skills=item.rating,
                    communication=item.rating,
                    professionalism=item.rating,
                    critical_thinking=item.rating,
                    criteria=item.criteria,
                    metadata_={
                        **(item.metadata or {}),
                        "submitted_on_behalf_of": item.student_id,
                        "submission_type": submission_type,
                    },
                ),
            )
        except DuplicateEvaluationError:
            raise self._duplicate(index, item, submitter) from None

        new_progress = await self._evaluation_pass_rate(item.assignment_id)
        new_status = (
            AssignmentStatus.COMPLETED if new_progress >= 100 else AssignmentStatus.IN_PROGRESS
        )
        assignment.progress_percentage = new_progress
        assignment.status = new_status
        assignment.completion_date = now if new_status is AssignmentStatus.COMPLETED else None

        submission = CompetencySubmission(
            student_id=item.student_id,
            competency_id=item.competency_id,
            submitted_by=submitter.user_id,
            evaluation_id=evaluation.id,
            rotation_id=item.rotation_id,
            status=SubmissionStatus.SUBMITTED,
            submission_type=SubmissionType.BATCH if is_batch else SubmissionType.INDIVIDUAL,
            evidence=item.feedback,
            notes=(item.metadata or {}).get("notes"),
            submitted_at=now,
            metadata_={
                "submitted_on_behalf_of": item.student_id,
                "submission_type": submission_type,
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
            },
        )
        self.session.add(submission)
        await self.session.flush()

        await self.audit.record(
            action="COMPETENCY_SUBMITTED",
            details=f"Submitted competency {item.competency_id} for student {item.student_id}",
            user_id=submitter.user_id,
            target_user_id=item.student_id,
            resource_id=item.competency_id,
            metadata={
                "competency_id": item.competency_id,
                "evaluation_id": evaluation.id,
                "submission_id": submission.id,
            },
            context=context,
        )

        return SubmissionOutcome(
            index=index,
            submission_id=submission.id,
            evaluation_id=evaluation.id,
            assignment_id=item.assignment_id,
            student_id=item.student_id,
            competency_id=item.competency_id,
            previous_progress=previous_progress,
            new_progress=new_progress,
            status_change=(
                {"from": previous_status.value, "to": new_status.value}
                if previous_status is not new_status
                else None
            ),
        )

    @staticmethod
    def _duplicate(index: int, item: SubmissionItem, submitter: User) -> SubmissionItemError:
        return SubmissionItemError(
            index,
            "Evaluation already exists for this assignment by this evaluator",
            assignmentId=item.assignment_id,
            evaluatorId=submitter.user_id,
        )

    async def _evaluation_pass_rate(self, assignment_id: str) -> int:
        passing = self.settings.evaluation_passing_rating
        row = (
            await self.session.execute(
                select(
                    func.count(Evaluation.id),
                    func.count(case((Evaluation.overall_rating >= passing, 1))),
                ).where(Evaluation.assignment_id == assignment_id)
            )
        ).one()
        return evaluation_pass_rate(int(row[0] or 0), int(row[1] or 0))

    async def _record_batch(
        self,
        submitter: User,
        result: BatchSubmissionResult,
        context: RequestContext,
        batch_metadata: dict[str, Any] | None,
    ) -> None:
        # items are already committed; a failed summary entry must not hide them
        try:
            await self.audit.record(
                action="BATCH_SUBMIT_COMPETENCIES",
                details=f"Batch submitted {result.total} competencies",
                user_id=submitter.user_id,
                resource_id=str(uuid.uuid4()),
                metadata={
                    "total_submissions": result.total,
                    "successful_submissions": len(result.successful),
                    "failed_submissions": len(result.failed),
                    "evaluation_ids": [outcome.evaluation_id for outcome in result.successful],
                    "batch": batch_metadata or {},
                },
                context=context,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception("batch_audit_failed", submitter_id=submitter.user_id)

    async def list_submissions(
        self,
        *,
        viewer: User,
        query: SubmissionQuery,
        context: RequestContext | None = None,
    ) -> SubmissionPage:
        """Return one page of submissions visible to ``viewer``."""
        conditions = self._visibility(viewer)

        if query.student_id:
            conditions.append(CompetencySubmission.student_id == query.student_id)
        if query.competency_id:
            conditions.append(CompetencySubmission.competency_id == query.competency_id)
        if query.assignment_id:
            conditions.append(CompetencyAssignment.id == query.assignment_id)
        if query.submitted_by:
            conditions.append(CompetencySubmission.submitted_by == query.submitted_by)
        if query.date_from:
            conditions.append(CompetencySubmission.submitted_at >= query.date_from)
        if query.date_to:
            conditions.append(CompetencySubmission.submitted_at <= query.date_to)
        if query.status:
            conditions.append(CompetencyAssignment.status == query.status)
        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(
                or_(UserModel.name.ilike(pattern), Competency.name.ilike(pattern))
            )

        base = (
            select(CompetencySubmission, UserModel, Competency, CompetencyAssignment, Evaluation)
            .join(UserModel, UserModel.id == CompetencySubmission.student_id)
            .join(Competency, Competency.id == CompetencySubmission.competency_id)
            .outerjoin(
                CompetencyAssignment,
                and_(
                    CompetencyAssignment.user_id == CompetencySubmission.student_id,
                    CompetencyAssignment.competency_id == CompetencySubmission.competency_id,
                ),
            )
            .outerjoin(Evaluation, Evaluation.id == CompetencySubmission.evaluation_id)
            .where(*conditions)
        )

        total_count = await self.session.scalar(
            select(func.count()).select_from(base.order_by(None).subquery())
        )

        sort_column = _SORT_COLUMNS.get(query.sort_by, CompetencySubmission.created_at)
        order = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()
        rows = await self.session.execute(
            base.order_by(order, CompetencySubmission.id)
            .limit(query.limit)
            .offset((query.page - 1) * query.limit)
        )
        items = [self._to_record(*row) for row in rows.all()]

        await self.audit.record(
            action="VIEW_COMPETENCY_SUBMISSIONS",
            details=json.dumps(
                {
                    "filters": asdict(query),
                    "result_count": len(items),
                    "total_count": total_count,
                },
                default=str,
            ),
            user_id=viewer.user_id,
            resource_id="competency_submissions",
            severity=AuditSeverity.LOW,
            context=context,
        )
        await self.session.commit()

        return SubmissionPage(
            items=items,
            page=query.page,
            limit=query.limit,
            total_count=int(total_count or 0),
        )

    @staticmethod
    def _visibility(viewer: User) -> list[Any]:
        conditions: list[Any] = []
        if not viewer.is_super_admin and viewer.school_id:
            conditions.append(UserModel.school_id == viewer.school_id)

        if viewer.role == UserRole.STUDENT.value:
            conditions.append(CompetencySubmission.student_id == viewer.user_id)
        elif viewer.role in (
            UserRole.CLINICAL_PRECEPTOR.value,
            UserRole.CLINICAL_SUPERVISOR.value,
        ):
            conditions.append(
                or_(
                    CompetencySubmission.submitted_by == viewer.user_id,
                    UserModel.role == UserRole.STUDENT,
                )
            )
        return conditions

    @staticmethod
    def _to_record(
        submission: CompetencySubmission,
        student: UserModel,
        competency: Competency,
        assignment: CompetencyAssignment | None,
        evaluation: Evaluation | None,
    ) -> SubmissionRecord:
        return SubmissionRecord(
            id=submission.id,
            assignment_id=assignment.id if assignment else None,
            competency_id=competency.id,
            competency_name=competency.name,
            student_id=student.id,
            student_name=student.name,
            student_email=student.email,
            submitted_by=submission.submitted_by,
            evaluation_id=submission.evaluation_id,
            rating=evaluation.overall_rating if evaluation else None,
            feedback=submission.feedback or submission.evidence,
            status=SubmissionStatus(submission.status).value,
            submission_type=SubmissionType(submission.submission_type).value,
            assignment_status=AssignmentStatus(assignment.status).value if assignment else None,
            progress=float(assignment.progress_percentage) if assignment else None,
            rotation_id=submission.rotation_id,
            submitted_at=submission.submitted_at,
            created_at=submission.created_at,
        )
