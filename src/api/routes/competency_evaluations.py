from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_db_session, get_request_context, get_token_subject
from src.api.schemas.evaluations import EvaluationSubmitRequest, EvaluationSubmitResponse
from src.domain import RequestContext
from src.domain.services.evaluation import (
    AssignmentNotFoundError,
    DuplicateEvaluationError,
    EvaluationRequest,
    EvaluationService,
    ForbiddenProxyError,
    InactiveUserError,
    InsufficientPermissionsError,
    InvalidSubmissionTargetError,
    NoRotationError,
    UserNotFoundError,
)

router = APIRouter(prefix="/api/competency-evaluations", tags=["Competency Evaluations"])


@router.post("", response_model=EvaluationSubmitResponse)
async def submit_evaluation(
    payload: EvaluationSubmitRequest,
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    caller_id: str = Depends(get_token_subject),  # noqa: B008
    context: RequestContext = Depends(get_request_context),  # noqa: B008
) -> EvaluationSubmitResponse:
    """Record one evaluator sign-off for a competency assignment."""
    service = EvaluationService(session)
    try:
        result = await service.submit_evaluation(
            caller_id=caller_id,
            request=EvaluationRequest(
                assignment_id=payload.assignment_id,
                evaluator_id=payload.evaluator_id,
                overall_score=payload.overall_score,
                status=payload.status,
                criterion_scores=payload.criterion_scores,
                feedback=payload.feedback,
                recommendations=payload.recommendations,
                evaluation_date=payload.evaluation_date,
            ),
            context=context,
        )
    except InactiveUserError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except (UserNotFoundError, AssignmentNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (
        ForbiddenProxyError,
        InsufficientPermissionsError,
        InvalidSubmissionTargetError,
    ) as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except (NoRotationError, DuplicateEvaluationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return EvaluationSubmitResponse(evaluation_id=result.evaluation_id)
