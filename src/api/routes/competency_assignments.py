from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_current_user, get_db_session
from src.api.schemas.assignments import (
    AssignmentProgressData,
    AssignmentProgressResponse,
    CompetencyProgressItem,
    ProgressStatisticsItem,
)
from src.domain import User
from src.domain.services.assignment_progress import (
    AssignmentNotFoundError,
    AssignmentProgressService,
    ProgressAccessDeniedError,
)

router = APIRouter(prefix="/api/competency-assignments", tags=["Competency Assignments"])


@router.get("/{assignment_id}/progress", response_model=AssignmentProgressResponse)
async def get_assignment_progress(
    assignment_id: str,
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: User = Depends(get_current_user),  # noqa: B008
) -> AssignmentProgressResponse:
    """Per-competency progress of one assignment within its deployment."""
    service = AssignmentProgressService(session)
    try:
        view = await service.get_progress(assignment_id=assignment_id, viewer=user)
    except AssignmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProgressAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    stats = view.statistics
    return AssignmentProgressResponse(
        data=AssignmentProgressData(
            assignment_id=view.assignment_id,
            user_id=view.user_id,
            deployment_id=view.deployment_id,
            status=view.status,
            current_progress=view.current_progress,
            calculated_progress=view.calculated_progress,
            statistics=ProgressStatisticsItem(
                total_competencies=stats.total,
                required_competencies=stats.required,
                completed_competencies=stats.completed,
                completed_required=stats.completed_required,
                in_progress_competencies=stats.in_progress,
                not_started_competencies=stats.not_started,
                overall_progress=stats.overall_progress,
                required_progress=stats.required_progress,
            ),
            competencies=[
                CompetencyProgressItem(
                    competency_id=item.competency_id,
                    competency_name=item.competency_name,
                    competency_category=item.category,
                    competency_level=item.level,
                    is_required=item.is_required,
                    status=item.status,
                    score=item.score,
                    feedback=item.feedback,
                    evaluation_id=item.evaluation_id,
                    submission_id=item.submission_id,
                    submission_status=item.submission_status,
                    last_activity=item.last_activity,
                    has_evaluation=item.evaluation_id is not None,
                    has_submission=item.submission_id is not None,
                )
                for item in view.competencies
            ],
        )
    )
