from fastapi import FastAPI

from . import competency_assignments, competency_evaluations, competency_submissions, health


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(competency_submissions.router)
    app.include_router(competency_evaluations.router)
    app.include_router(competency_assignments.router)
