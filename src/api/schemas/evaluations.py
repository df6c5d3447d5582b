from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import Field
from src.api.schemas.submissions import CamelModel

Score = Annotated[float, Field(ge=0, le=5)]


class EvaluationSubmitRequest(CamelModel):
    assignment_id: str = Field(..., min_length=1, description="Assignment being evaluated")
    evaluator_id: str = Field(..., min_length=1, description="Declared evaluator")
    criterion_scores: dict[str, Score]
    overall_score: Score
    feedback: str | None = None
    status: Literal["approved", "needs_revision", "incomplete"]
    recommendations: str | None = None
    evaluation_date: datetime | None = None


class EvaluationSubmitResponse(CamelModel):
    success: bool = True
    message: str = "Evaluation submitted successfully"
    evaluation_id: str
