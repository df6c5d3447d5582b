"""Integration tests for GET /api/competency-assignments/{id}/progress."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.services.assignment_progress import competency_status
from src.infrastructure.db.models import Evaluation, SubmissionStatus

from tests.utils import SeedData, add_submission, auth_headers, new_id


def _url(assignment_id: str) -> str:
    return f"/api/competency-assignments/{assignment_id}/progress"


class TestCompetencyStatus:
    def test_approved_submission_completes(self) -> None:
        assert competency_status("APPROVED", None, 3.0) == "COMPLETED"

    def test_passing_evaluation_completes(self) -> None:
        assert competency_status("SUBMITTED", 3.0, 3.0) == "COMPLETED"

    def test_failing_evaluation_is_in_progress(self) -> None:
        assert competency_status(None, 2.5, 3.0) == "IN_PROGRESS"

    def test_nothing_recorded(self) -> None:
        assert competency_status(None, None, 3.0) == "NOT_STARTED"


class TestAssignmentProgressEndpoint:
    @pytest.mark.asyncio
    async def test_progress_breakdown(
        self, async_client: AsyncClient, seed: SeedData, db: AsyncSession
    ) -> None:
        """Required and overall progress are computed per deployed competency."""
        first, second, third, _ = seed.competencies
        await add_submission(
            db,
            student_id=seed.student,
            competency_id=first,
            submitted_by=seed.preceptor,
            status=SubmissionStatus.APPROVED,
        )
        await add_submission(
            db, student_id=seed.student, competency_id=third, submitted_by=seed.preceptor
        )
        db.add(
            Evaluation(
                assignment_id=seed.assignments[second],
                student_id=seed.student,
                evaluator_id=seed.preceptor,
                observation_date=datetime.now(UTC),
                overall_rating=2,
                clinical_skills=2,
                communication=2,
                professionalism=2,
                critical_thinking=2,
                feedback="Needs more supervised practice.",
            )
        )
        await db.commit()

        response = await async_client.get(
            _url(seed.assignments[first]), headers=auth_headers(seed.supervisor)
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        stats = data["statistics"]
        assert stats["totalCompetencies"] == 4
        assert stats["requiredCompetencies"] == 2
        assert stats["completedCompetencies"] == 1
        assert stats["completedRequired"] == 1
        assert stats["inProgressCompetencies"] == 2
        assert stats["notStartedCompetencies"] == 1
        assert stats["overallProgress"] == 25.0
        assert stats["requiredProgress"] == 50.0
        assert data["calculatedProgress"] == 25
        assert data["currentProgress"] == 0
        assert data["status"] == "ASSIGNED"

        by_id = {item["competencyId"]: item for item in data["competencies"]}
        assert seed.undeployed_competency not in by_id
        assert by_id[second]["score"] == 2
        assert by_id[second]["hasEvaluation"] is True
        assert by_id[second]["feedback"] == "Needs more supervised practice."
        assert by_id[third]["status"] == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_student_sees_own_assignment(
        self, async_client: AsyncClient, seed: SeedData
    ) -> None:
        response = await async_client.get(
            _url(seed.assignments[seed.competencies[0]]), headers=auth_headers(seed.student)
        )

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.asyncio
    async def test_other_student_denied(self, async_client: AsyncClient, seed: SeedData) -> None:
        response = await async_client.get(
            _url(seed.assignments[seed.competencies[0]]), headers=auth_headers(seed.classmate)
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.asyncio
    async def test_assignment_without_deployment_is_empty(
        self, async_client: AsyncClient, seed: SeedData
    ) -> None:
        response = await async_client.get(
            _url(seed.loose_assignment), headers=auth_headers(seed.school_admin)
        )

        data = response.json()["data"]
        assert data["competencies"] == []
        assert data["statistics"]["overallProgress"] == 0
        assert data["statistics"]["requiredProgress"] == 100

    @pytest.mark.asyncio
    async def test_unknown_assignment(self, async_client: AsyncClient, seed: SeedData) -> None:
        response = await async_client.get(_url(new_id()), headers=auth_headers(seed.school_admin))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "Assignment not found"}
