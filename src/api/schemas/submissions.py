from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from src.core.config import get_settings


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CriteriaScore(CamelModel):
    criteria_id: UUID
    rating: float = Field(..., ge=1, le=5, description="Criteria rating between 1 and 5")
    comments: str | None = None


class EvaluationData(CamelModel):
    rating: float = Field(..., ge=1, le=5, description="Rating between 1 and 5")
    feedback: str | None = None
    observation_date: datetime
    clinical_site_id: UUID | None = None
    rotation_id: UUID | None = None
    criteria: list[CriteriaScore] | None = None


class SubmissionMetadata(CamelModel):
    submission_method: Literal["direct", "batch", "import"] = "direct"
    notes: str | None = None
    tags: list[str] | None = None


class CompetencySubmissionRequest(CamelModel):
    assignment_id: UUID
    student_id: UUID
    competency_id: UUID
    evaluation_data: EvaluationData
    metadata: SubmissionMetadata | None = None


class BatchMetadata(CamelModel):
    batch_name: str | None = None
    description: str | None = None
    submission_date: datetime | None = None


class BatchSubmissionRequest(CamelModel):
    submissions: list[CompetencySubmissionRequest] = Field(..., min_length=1)
    batch_metadata: BatchMetadata | None = None

    @field_validator("submissions")
    @classmethod
    def _limit_batch_size(
        cls, value: list[CompetencySubmissionRequest]
    ) -> list[CompetencySubmissionRequest]:
        limit = get_settings().max_batch_submissions
        if len(value) > limit:
            raise ValueError(f"Maximum {limit} submissions per batch")
        return value


class SubmissionOutcomeItem(CamelModel):
    index: int
    success: bool = True
    submission_id: str
    evaluation_id: str
    assignment_id: str
    student_id: str
    competency_id: str
    previous_progress: float
    new_progress: int
    status_change: dict[str, str] | None = None


class SubmissionSummary(CamelModel):
    total: int
    successful: int
    failed: int


class SubmissionBatchData(CamelModel):
    successful: list[SubmissionOutcomeItem]
    failed: list[dict[str, Any]]
    summary: SubmissionSummary


class ResponseMeta(CamelModel):
    timestamp: str
    request_id: str
    submission_type: str | None = None


class CompetencySubmissionResponse(CamelModel):
    success: bool
    message: str
    data: SubmissionBatchData
    meta: ResponseMeta


class SubmissionListItem(CamelModel):
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
    submission_date: datetime
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class SubmissionListResponse(CamelModel):
    success: bool = True
    data: list[SubmissionListItem]
    pagination: Pagination
    meta: ResponseMeta
