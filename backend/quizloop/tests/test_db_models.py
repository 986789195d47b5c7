import json
import uuid
from datetime import time

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from quizloop.db.base import Base
from quizloop.db.models import Challenge, DisplayStatus
from quizloop.db.models_session import (
    GameMode,
    PracticeSession,
    SessionChallenge,
    SessionScore,
    UserAchievement,
    UserMetrics,
)


@pytest_asyncio.fixture
async def session():
    """In-memory SQLite session — isolated per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as s:
        yield s

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.mark.asyncio
async def test_create_challenge_defaults(session: AsyncSession) -> None:
    challenge = Challenge(
        topic="Linux",
        question_text="Which command lists files?",
        options=json.dumps([{"letter": "A", "text": "ls"}]),
        correct_answer="A",
        owner_user_id=1,
    )
    session.add(challenge)
    await session.commit()
    await session.refresh(challenge)

    assert challenge.id is not None
    assert challenge.level == "advanced"
    assert challenge.display_status == DisplayStatus.pending
    assert challenge.is_active is True
    assert challenge.delivery_time == time(9, 0)
    assert challenge.frequency == "daily"
    assert challenge.created_at is not None


@pytest.mark.asyncio
async def test_session_with_outcomes_and_score(session: AsyncSession) -> None:
    session_id = str(uuid.uuid4())
    session.add(PracticeSession(
        id=session_id, user_id=1, topic="Linux",
        game_mode=GameMode.survival, total_questions=2,
    ))
    session.add_all([
        SessionChallenge(session_id=session_id, challenge_id=1, correct=True),
        SessionChallenge(session_id=session_id, challenge_id=2, correct=False),
    ])
    session.add(SessionScore(
        session_id=session_id, user_id=1, points_earned=10,
        accuracy=50.0, time_spent=20, game_mode="survival", topic="Linux",
    ))
    await session.commit()

    row = await session.get(PracticeSession, session_id)
    assert row.game_mode == GameMode.survival
    assert row.completed_at is None
    assert row.correct_answers is None


@pytest.mark.asyncio
async def test_one_score_per_session(session: AsyncSession) -> None:
    session.add(PracticeSession(id="s1", user_id=1, topic="Linux", total_questions=1))
    session.add(SessionScore(session_id="s1", user_id=1, game_mode="timed", topic="Linux"))
    await session.commit()

    session.add(SessionScore(session_id="s1", user_id=1, game_mode="timed", topic="Linux"))
    with pytest.raises(IntegrityError):
        await session.commit()


@pytest.mark.asyncio
async def test_one_metrics_row_per_user(session: AsyncSession) -> None:
    session.add(UserMetrics(user_id=1))
    await session.commit()

    session.add(UserMetrics(user_id=1))
    with pytest.raises(IntegrityError):
        await session.commit()


@pytest.mark.asyncio
async def test_achievement_unique_per_user(session: AsyncSession) -> None:
    session.add(UserAchievement(user_id=1, achievement_id="first_session", name="First Steps"))
    session.add(UserAchievement(user_id=2, achievement_id="first_session", name="First Steps"))
    await session.commit()

    session.add(UserAchievement(user_id=1, achievement_id="first_session", name="First Steps"))
    with pytest.raises(IntegrityError):
        await session.commit()
