from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from src.api.deps import (
    get_db_session,
    get_submission_query_rate_limiter,
    get_submission_rate_limiter,
)
from src.api.main import app
from src.core.rate_limit import InMemoryRateLimiter
from src.infrastructure.db.base import Base
from src.infrastructure.db.models import (
    AssignmentStatus,
    Competency,
    CompetencyAssignment,
    CompetencyDeployment,
    CompetencyLevel,
    DeploymentStatus,
    Rotation,
    RotationStatus,
    UserModel,
    UserRole,
)
from tests.utils import OTHER_SCHOOL_ID, SCHOOL_ID, SeedData, new_id


@pytest.fixture()
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'competency.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a database session for tests that need direct DB access."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> SeedData:
    data = SeedData(
        super_admin=new_id(),
        school_admin=new_id(),
        preceptor=new_id(),
        supervisor=new_id(),
        student=new_id(),
        classmate=new_id(),
        foreign_student=new_id(),
        inactive_preceptor=new_id(),
        deployment=new_id(),
    )
    users = [
        (data.super_admin, UserRole.SUPER_ADMIN, None, True),
        (data.school_admin, UserRole.SCHOOL_ADMIN, SCHOOL_ID, True),
        (data.preceptor, UserRole.CLINICAL_PRECEPTOR, SCHOOL_ID, True),
        (data.supervisor, UserRole.CLINICAL_SUPERVISOR, SCHOOL_ID, True),
        (data.student, UserRole.STUDENT, SCHOOL_ID, True),
        (data.classmate, UserRole.STUDENT, SCHOOL_ID, True),
        (data.foreign_student, UserRole.STUDENT, OTHER_SCHOOL_ID, True),
        (data.inactive_preceptor, UserRole.CLINICAL_PRECEPTOR, SCHOOL_ID, False),
    ]

    async with session_factory() as session:
        for user_id, role, school_id, active in users:
            session.add(
                UserModel(
                    id=user_id,
                    email=f"{role.value.lower()}-{user_id[:8]}@example.edu",
                    name=f"{role.value.title()} {user_id[:4]}",
                    role=role,
                    school_id=school_id,
                    is_active=active,
                )
            )
        await session.flush()

        session.add(
            CompetencyDeployment(
                id=data.deployment,
                school_id=SCHOOL_ID,
                name="Year 3 Clinical Skills",
                status=DeploymentStatus.ACTIVE,
                deployed_by=data.school_admin,
            )
        )
        await session.flush()

        names = ["Airway Management", "Patient Handoff", "Sterile Technique", "Vital Signs"]
        for position, name in enumerate(names):
            competency_id = new_id()
            data.competencies.append(competency_id)
            session.add(
                Competency(
                    id=competency_id,
                    name=name,
                    category="Clinical" if position % 2 == 0 else "Communication",
                    level=CompetencyLevel.INTERMEDIATE,
                    is_required=position < 2,
                    is_deployed=True,
                    deployment_id=data.deployment,
                    school_id=SCHOOL_ID,
                )
            )

        data.undeployed_competency = new_id()
        data.loose_competency = new_id()
        session.add(
            Competency(
                id=data.undeployed_competency,
                name="Wound Care",
                category="Clinical",
                level=CompetencyLevel.ADVANCED,
                is_deployed=False,
                deployment_id=data.deployment,
            )
        )
        session.add(
            Competency(
                id=data.loose_competency,
                name="Reflective Practice",
                category="Professionalism",
                level=CompetencyLevel.FUNDAMENTAL,
            )
        )
        await session.flush()

        for competency_id in data.competencies:
            assignment_id = new_id()
            data.assignments[competency_id] = assignment_id
            session.add(
                CompetencyAssignment(
                    id=assignment_id,
                    user_id=data.student,
                    competency_id=competency_id,
                    deployment_id=data.deployment,
                    assigned_by=data.school_admin,
                    status=AssignmentStatus.ASSIGNED,
                )
            )

        data.loose_assignment = new_id()
        data.classmate_assignment = new_id()
        data.foreign_assignment = new_id()
        session.add_all(
            [
                CompetencyAssignment(
                    id=data.loose_assignment,
                    user_id=data.student,
                    competency_id=data.loose_competency,
                    deployment_id=None,
                ),
                CompetencyAssignment(
                    id=data.classmate_assignment,
                    user_id=data.classmate,
                    competency_id=data.competencies[0],
                    deployment_id=data.deployment,
                ),
                CompetencyAssignment(
                    id=data.foreign_assignment,
                    user_id=data.foreign_student,
                    competency_id=data.competencies[0],
                    deployment_id=data.deployment,
                ),
            ]
        )

        now = datetime.now(UTC)
        data.rotation = new_id()
        session.add_all(
            [
                Rotation(
                    id=new_id(),
                    student_id=data.student,
                    specialty="Internal Medicine",
                    start_date=now - timedelta(days=120),
                    end_date=now - timedelta(days=60),
                    status=RotationStatus.COMPLETED,
                ),
                Rotation(
                    id=data.rotation,
                    student_id=data.student,
                    specialty="Emergency Medicine",
                    start_date=now - timedelta(days=10),
                    end_date=now + timedelta(days=20),
                    status=RotationStatus.ACTIVE,
                ),
            ]
        )
        await session.commit()

    return data


@pytest.fixture()
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the test database with a generous rate limit."""

    async def override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    limiter = InMemoryRateLimiter(10_000, 60)
    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_submission_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_submission_query_rate_limiter] = lambda: limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
