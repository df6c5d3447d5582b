from __future__ import annotations

from datetime import datetime

from src.api.schemas.submissions import CamelModel


class CompetencyProgressItem(CamelModel):
    competency_id: str
    competency_name: str
    competency_category: str
    competency_level: str
    is_required: bool
    status: str
    score: float | None = None
    feedback: str | None = None
    evaluation_id: str | None = None
    submission_id: str | None = None
    submission_status: str | None = None
    last_activity: datetime | None = None
    has_evaluation: bool = False
    has_submission: bool = False


class ProgressStatisticsItem(CamelModel):
    total_competencies: int
    required_competencies: int
    completed_competencies: int
    completed_required: int
    in_progress_competencies: int
    not_started_competencies: int
    overall_progress: float
    required_progress: float


class AssignmentProgressData(CamelModel):
    assignment_id: str
    user_id: str
    deployment_id: str | None
    status: str
    current_progress: float
    calculated_progress: int
    statistics: ProgressStatisticsItem
    competencies: list[CompetencyProgressItem]


class AssignmentProgressResponse(CamelModel):
    success: bool = True
    data: AssignmentProgressData
