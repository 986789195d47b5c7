import pytest
from httpx import ASGITransport, AsyncClient

from quizloop.core.config import settings
from quizloop.main import app


@pytest.mark.asyncio
async def test_health_reports_environment() -> None:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "env": settings.env}


def test_public_routes_are_mounted_under_api_v1() -> None:
    paths = set(app.openapi()["paths"])
    assert {
        "/api/v1/sessions/start",
        "/api/v1/sessions/continue-survival",
        "/api/v1/sessions/save-results",
        "/api/v1/challenges/generate",
        "/api/v1/challenges/{challenge_id}/start",
        "/api/v1/challenges/{challenge_id}/responses",
        "/api/v1/users/{user_id}/challenges/pending",
        "/api/v1/users/{user_id}/topics",
        "/api/v1/users/{user_id}/metrics/overall",
        "/api/v1/users/{user_id}/metrics/timeline",
    } <= paths


@pytest.mark.asyncio
async def test_unknown_route_is_404() -> None:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        response = await client.get("/api/v1/nope")
    assert response.status_code == 404
