from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import issue_smoke_token
from src.infrastructure.db.models import CompetencySubmission, SubmissionStatus

SCHOOL_ID = "school-north"
OTHER_SCHOOL_ID = "school-south"


@dataclass
class SeedData:
    """Ids of the rows every test database starts with."""

    super_admin: str
    school_admin: str
    preceptor: str
    supervisor: str
    student: str
    classmate: str
    foreign_student: str
    inactive_preceptor: str
    deployment: str
    # deployed competencies of ``deployment``; the first two are required
    competencies: list[str] = field(default_factory=list)
    undeployed_competency: str = ""
    loose_competency: str = ""
    # student's assignment per deployed competency
    assignments: dict[str, str] = field(default_factory=dict)
    loose_assignment: str = ""
    classmate_assignment: str = ""
    foreign_assignment: str = ""
    rotation: str = ""


def new_id() -> str:
    return str(uuid.uuid4())


def auth_headers(user_id: str) -> dict[str, str]:
    token = issue_smoke_token(user_id, email=f"{user_id[:8]}@example.edu")
    return {"Authorization": f"Bearer {token}"}


def submission_payload(
    assignment_id: str,
    student_id: str,
    competency_id: str,
    *,
    rating: float = 4,
    **evaluation_overrides: Any,
) -> dict[str, Any]:
    """Body of one item for POST /api/competency-submissions."""
    evaluation = {
        "rating": rating,
        "feedback": "Confident and safe throughout the procedure.",
        "observationDate": datetime.now(UTC).isoformat(),
    }
    evaluation.update(evaluation_overrides)
    return {
        "assignmentId": assignment_id,
        "studentId": student_id,
        "competencyId": competency_id,
        "evaluationData": evaluation,
        "metadata": {"submissionMethod": "direct", "notes": "Observed on ward rounds"},
    }


def evaluation_payload(
    assignment_id: str,
    evaluator_id: str,
    *,
    overall_score: float = 4,
    status: str = "approved",
) -> dict[str, Any]:
    """Body for POST /api/competency-evaluations."""
    return {
        "assignmentId": assignment_id,
        "evaluatorId": evaluator_id,
        "criterionScores": {"technique": overall_score, "safety": overall_score},
        "overallScore": overall_score,
        "feedback": "Meets expectations.",
        "status": status,
        "recommendations": "Practice under time pressure.",
    }


async def add_submission(
    session: AsyncSession,
    *,
    student_id: str,
    competency_id: str,
    submitted_by: str,
    status: SubmissionStatus = SubmissionStatus.SUBMITTED,
) -> CompetencySubmission:
    submission = CompetencySubmission(
        student_id=student_id,
        competency_id=competency_id,
        submitted_by=submitted_by,
        status=status,
    )
    session.add(submission)
    await session.commit()
    return submission
