from __future__ import annotations

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from quizloop.db.base import Base
from quizloop.db.models import Challenge
from quizloop.db.models_session import GameMode, PracticeSession
from quizloop.db.session import get_session
from quizloop.main import app as fastapi_app
from quizloop.services.session_service import save_results


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def http_client(session_factory):
    async def override_session():
        async with session_factory() as s:
            yield s

    fastapi_app.dependency_overrides[get_session] = override_session
    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app), base_url="http://test"
    ) as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


async def _play(
    db: AsyncSession, session_id: str, topic: str, mode: GameMode,
    correct: list[int], incorrect: list[int],
) -> None:
    db.add(PracticeSession(
        id=session_id, user_id=1, topic=topic, game_mode=mode,
        total_questions=len(correct) + len(incorrect),
    ))
    await db.commit()
    await save_results(
        db, session_id=session_id, correct_ids=correct, incorrect_ids=incorrect,
        game_mode=mode, time_used=30, topic=topic,
    )


@pytest_asyncio.fixture
async def played(session_factory) -> None:
    async with session_factory() as s:
        await _play(s, "a", "Linux", GameMode.timed, [1, 2, 3, 4, 5], [])
        await _play(s, "b", "SQL", GameMode.survival, [6], [7])


@pytest.mark.asyncio
async def test_overall_for_new_user_is_zero(http_client: AsyncClient) -> None:
    resp = await http_client.get("/api/v1/users/42/metrics/overall")
    assert resp.status_code == 200
    assert resp.json() == {
        "total_points": 0,
        "total_sessions": 0,
        "total_correct_answers": 0,
        "total_time_spent": 0,
        "average_accuracy": 0.0,
    }


@pytest.mark.asyncio
async def test_overall_after_sessions(http_client: AsyncClient, played) -> None:
    body = (await http_client.get("/api/v1/users/1/metrics/overall")).json()
    assert body["total_sessions"] == 2
    assert body["total_correct_answers"] == 6
    assert body["average_accuracy"] == pytest.approx(75.0)


@pytest.mark.asyncio
async def test_recent_sessions(http_client: AsyncClient, played) -> None:
    body = (await http_client.get("/api/v1/users/1/metrics/sessions?limit=1")).json()
    assert len(body) == 1
    assert body[0]["session_id"] == "b"


@pytest.mark.asyncio
async def test_topics_and_game_modes(http_client: AsyncClient, played) -> None:
    topics = (await http_client.get("/api/v1/users/1/metrics/topics")).json()
    assert [t["topic"] for t in topics] == ["Linux", "SQL"]

    modes = {m["game_mode"]: m for m in (await http_client.get("/api/v1/users/1/metrics/game-modes")).json()}
    assert set(modes) == {"timed", "survival"}


@pytest.mark.asyncio
async def test_timeline(http_client: AsyncClient, played) -> None:
    body = (await http_client.get("/api/v1/users/1/metrics/timeline")).json()
    assert len(body) == 1
    assert body[0]["sessions_count"] == 2


@pytest.mark.asyncio
async def test_achievements(http_client: AsyncClient, played) -> None:
    body = (await http_client.get("/api/v1/users/1/metrics/achievements")).json()
    assert {"first_session", "perfect_accuracy", "point_master"} <= {
        a["achievement_id"] for a in body
    }


@pytest.mark.asyncio
async def test_user_topics(http_client: AsyncClient, session_factory) -> None:
    async with session_factory() as s:
        for topic in ("Linux", "SQL", "Linux"):
            s.add(Challenge(
                topic=topic, question_text="Question text here?",
                options=json.dumps([]), correct_answer="A", owner_user_id=1,
            ))
        await s.commit()

    resp = await http_client.get("/api/v1/users/1/topics")
    assert resp.json() == ["Linux", "SQL"]


@pytest.mark.asyncio
async def test_invalid_user_id_is_422(http_client: AsyncClient) -> None:
    resp = await http_client.get("/api/v1/users/0/metrics/overall")
    assert resp.status_code == 422
