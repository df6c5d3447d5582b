import pytest
from fastapi.testclient import TestClient
from src.api.main import app
from src.api.routes import health


def _stub(result: dict):
    async def check() -> dict:
        return result

    return check


def test_health_endpoint_returns_service_metadata(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(health, "check_postgres", _stub({"status": "ok"}))
    monkeypatch.setattr(health, "check_redis", _stub({"status": "skipped"}))
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["service"]
    assert payload["status"] == "ok"
    assert set(payload["datastores"]) == {"postgres", "redis"}


def test_health_reports_degraded_when_database_is_down(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        health, "check_postgres", _stub({"status": "error", "message": "connection refused"})
    )
    monkeypatch.setattr(health, "check_redis", _stub({"status": "skipped"}))
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


async def test_redis_check_skipped_for_memory_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "memory")
    health.get_settings.cache_clear()
    try:
        result = await health.check_redis()
    finally:
        health.get_settings.cache_clear()

    assert result["status"] == "skipped"
