from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import (
    get_db_session,
    get_request_context,
    get_submission_query_rate_limiter,
    get_submission_rate_limiter,
    rate_limited,
    require_roles,
)
from src.api.schemas.submissions import (
    BatchSubmissionRequest,
    CompetencySubmissionRequest,
    CompetencySubmissionResponse,
    Pagination,
    ResponseMeta,
    SubmissionBatchData,
    SubmissionListItem,
    SubmissionListResponse,
    SubmissionOutcomeItem,
    SubmissionSummary,
)
from src.core.permissions import SUBMISSION_READER_ROLES, SUBMITTER_ROLES
from src.domain import RequestContext, User
from src.domain.services.submission import (
    BatchSubmissionResult,
    CompetencySubmissionService,
    SubmissionItem,
    SubmissionQuery,
)
from src.infrastructure.db.models import AssignmentStatus

router = APIRouter(prefix="/api/competency-submissions", tags=["Competency Submissions"])


def batch_status_code(result: BatchSubmissionResult) -> int:
    """201 when every item succeeded, 207 for a mix, 400 when nothing succeeded."""
    if not result.failed:
        return status.HTTP_201_CREATED
    if result.successful:
        return status.HTTP_207_MULTI_STATUS
    return status.HTTP_400_BAD_REQUEST


def _to_item(payload: CompetencySubmissionRequest) -> SubmissionItem:
    data = payload.evaluation_data
    return SubmissionItem(
        assignment_id=str(payload.assignment_id),
        student_id=str(payload.student_id),
        competency_id=str(payload.competency_id),
        rating=data.rating,
        observation_date=data.observation_date,
        feedback=data.feedback,
        clinical_site_id=str(data.clinical_site_id) if data.clinical_site_id else None,
        rotation_id=str(data.rotation_id) if data.rotation_id else None,
        criteria=(
            [criterion.model_dump(mode="json", by_alias=True) for criterion in data.criteria]
            if data.criteria
            else None
        ),
        metadata=payload.metadata.model_dump(mode="json") if payload.metadata else None,
    )


def _parse_body(body: dict[str, Any]) -> tuple[list[CompetencySubmissionRequest], bool, Any]:
    is_batch = isinstance(body.get("submissions"), list)
    try:
        if is_batch:
            batch = BatchSubmissionRequest.model_validate(body)
            return batch.submissions, True, batch.batch_metadata
        return [CompetencySubmissionRequest.model_validate(body)], False, None
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


@router.post(
    "",
    response_model=CompetencySubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={207: {"model": CompetencySubmissionResponse}, 400: {}},
    dependencies=[Depends(rate_limited(get_submission_rate_limiter))],
)
async def submit_competencies(
    body: dict[str, Any] = Body(...),  # noqa: B008
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: User = Depends(  # noqa: B008
        require_roles(SUBMITTER_ROLES, detail="Insufficient permissions to submit competencies")
    ),
    context: RequestContext = Depends(get_request_context),  # noqa: B008
) -> JSONResponse:
    """Submit competencies on behalf of students, individually or in a batch."""
    submissions, is_batch, batch_metadata = _parse_body(body)

    service = CompetencySubmissionService(session)
    result = await service.submit(
        submitter=user,
        items=[_to_item(submission) for submission in submissions],
        is_batch=is_batch,
        context=context,
        batch_metadata=batch_metadata.model_dump(mode="json") if batch_metadata else None,
    )

    response = CompetencySubmissionResponse(
        success=not result.failed,
        message=result.message,
        data=SubmissionBatchData(
            successful=[
                SubmissionOutcomeItem(
                    index=outcome.index,
                    submission_id=outcome.submission_id,
                    evaluation_id=outcome.evaluation_id,
                    assignment_id=outcome.assignment_id,
                    student_id=outcome.student_id,
                    competency_id=outcome.competency_id,
                    previous_progress=outcome.previous_progress,
                    new_progress=outcome.new_progress,
                    status_change=outcome.status_change,
                )
                for outcome in result.successful
            ],
            failed=result.failed,
            summary=SubmissionSummary(**result.summary),
        ),
        meta=ResponseMeta(
            timestamp=datetime.now(UTC).isoformat(),
            request_id=context.request_id or str(uuid4()),
            submission_type="batch" if is_batch else "individual",
        ),
    )
    return JSONResponse(
        status_code=batch_status_code(result),
        content=response.model_dump(mode="json", by_alias=True),
    )


@router.get(
    "",
    response_model=SubmissionListResponse,
    dependencies=[Depends(rate_limited(get_submission_query_rate_limiter))],
)
async def list_competency_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    student_id: UUID | None = Query(None, alias="studentId"),  # noqa: B008
    competency_id: UUID | None = Query(None, alias="competencyId"),  # noqa: B008
    assignment_id: UUID | None = Query(None, alias="assignmentId"),  # noqa: B008
    submitted_by: UUID | None = Query(None, alias="submittedBy"),  # noqa: B008
    date_from: datetime | None = Query(None, alias="dateFrom"),  # noqa: B008
    date_to: datetime | None = Query(None, alias="dateTo"),  # noqa: B008
    assignment_status: AssignmentStatus | None = Query(None, alias="status"),  # noqa: B008
    search: str | None = Query(None, max_length=200),
    sort_by: Literal["createdAt", "submissionDate", "rating", "studentName"] = Query(
        "createdAt", alias="sortBy"
    ),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: User = Depends(require_roles(SUBMISSION_READER_ROLES)),  # noqa: B008
    context: RequestContext = Depends(get_request_context),  # noqa: B008
) -> SubmissionListResponse:
    """List competency submissions visible to the caller."""
    query = SubmissionQuery(
        page=page,
        limit=limit,
        student_id=str(student_id) if student_id else None,
        competency_id=str(competency_id) if competency_id else None,
        assignment_id=str(assignment_id) if assignment_id else None,
        submitted_by=str(submitted_by) if submitted_by else None,
        date_from=date_from,
        date_to=date_to,
        status=assignment_status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    service = CompetencySubmissionService(session)
    result = await service.list_submissions(viewer=user, query=query, context=context)

    return SubmissionListResponse(
        data=[
            SubmissionListItem(
                id=record.id,
                assignment_id=record.assignment_id,
                competency_id=record.competency_id,
                competency_name=record.competency_name,
                student_id=record.student_id,
                student_name=record.student_name,
                student_email=record.student_email,
                submitted_by=record.submitted_by,
                evaluation_id=record.evaluation_id,
                rating=record.rating,
                feedback=record.feedback,
                status=record.status,
                submission_type=record.submission_type,
                assignment_status=record.assignment_status,
                progress=record.progress,
                rotation_id=record.rotation_id,
                submission_date=record.submitted_at,
                created_at=record.created_at,
            )
            for record in result.items
        ],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total_count=result.total_count,
            total_pages=result.total_pages,
            has_next_page=result.has_next_page,
            has_previous_page=result.has_previous_page,
        ),
        meta=ResponseMeta(
            timestamp=datetime.now(UTC).isoformat(),
            request_id=context.request_id or str(uuid4()),
        ),
    )
