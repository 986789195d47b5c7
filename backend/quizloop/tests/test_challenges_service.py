import json

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import quizloop.db.models_session  # noqa: F401
from quizloop.db.base import Base
from quizloop.core.errors import NotFoundError, ValidationError
from quizloop.db.models import Challenge, ChallengeResponse, DisplayStatus
from quizloop.db.models_session import UserAchievement
from quizloop.db.upsert import insert_ignoring_conflicts
from quizloop.services.challenges_service import (
    challenge_payload,
    find_excluding,
    find_for_user_topic,
    list_pending,
    list_user_topics,
    mark_started,
    recent_question_texts,
    record_response,
)


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as s:
        yield s
    await engine.dispose()


async def _add(db: AsyncSession, topic: str, owner: int = 1, text: str | None = None) -> Challenge:
    challenge = Challenge(
        topic=topic,
        question_text=text or f"A question about {topic}?",
        options=json.dumps([{"letter": l, "text": f"opt {l}"} for l in "ABCD"]),
        correct_answer="B",
        owner_user_id=owner,
    )
    db.add(challenge)
    await db.flush()
    return challenge


@pytest.mark.asyncio
async def test_find_for_user_topic_matches_by_containment(db_session: AsyncSession) -> None:
    await _add(db_session, "Linux")
    await _add(db_session, "Advanced linux admin")
    await _add(db_session, "SQL")
    await _add(db_session, "Linux", owner=2)

    rows = await find_for_user_topic(db_session, 1, "LINUX", limit=10)
    assert {r.topic for r in rows} == {"Linux", "Advanced linux admin"}
    assert all(r.owner_user_id == 1 for r in rows)


@pytest.mark.asyncio
async def test_find_for_user_topic_respects_limit(db_session: AsyncSession) -> None:
    for _ in range(6):
        await _add(db_session, "Linux")
    assert len(await find_for_user_topic(db_session, 1, "Linux", limit=4)) == 4


@pytest.mark.asyncio
async def test_topic_wildcards_are_literal(db_session: AsyncSession) -> None:
    await _add(db_session, "100% uptime")
    await _add(db_session, "1000 facts")

    rows = await find_for_user_topic(db_session, 1, "100%", limit=10)
    assert [r.topic for r in rows] == ["100% uptime"]


@pytest.mark.asyncio
async def test_find_excluding_skips_used_ids(db_session: AsyncSession) -> None:
    used = [await _add(db_session, "Linux") for _ in range(3)]
    fresh = await _add(db_session, "Linux")

    rows = await find_excluding(db_session, 1, "Linux", [c.id for c in used])
    assert [r.id for r in rows] == [fresh.id]


@pytest.mark.asyncio
async def test_find_excluding_with_nothing_left(db_session: AsyncSession) -> None:
    only = await _add(db_session, "Linux")
    assert await find_excluding(db_session, 1, "Linux", [only.id]) == []


@pytest.mark.asyncio
async def test_recent_question_texts_oldest_first_across_users(db_session: AsyncSession) -> None:
    await _add(db_session, "Linux", owner=1, text="first?")
    await _add(db_session, "Linux", owner=2, text="second?")
    await _add(db_session, "Linux", owner=1, text="third?")

    assert await recent_question_texts(db_session, "Linux", limit=2) == ["second?", "third?"]


@pytest.mark.asyncio
async def test_list_user_topics_distinct_sorted(db_session: AsyncSession) -> None:
    for topic in ("SQL", "Linux", "SQL"):
        await _add(db_session, topic)
    await _add(db_session, "Rust", owner=2)

    assert await list_user_topics(db_session, 1) == ["Linux", "SQL"]


@pytest.mark.asyncio
async def test_challenge_payload_shape(db_session: AsyncSession) -> None:
    challenge = await _add(db_session, "Linux")
    payload = challenge_payload(challenge)

    assert payload["id"] == challenge.id
    assert payload["question"] == "A question about Linux?"
    assert payload["options"] == ["opt A", "opt B", "opt C", "opt D"]
    assert payload["correct_answer"] == "B"


def test_challenge_payload_malformed_options() -> None:
    challenge = Challenge(
        id=9, topic="Linux", level="advanced", question_text="q?",
        options="[broken", correct_answer="A", owner_user_id=1,
    )
    assert challenge_payload(challenge)["options"] == []


@pytest.mark.asyncio
async def test_insert_ignoring_conflicts_inserts_once(db_session: AsyncSession) -> None:
    values = {
        "user_id": 1,
        "achievement_id": "first_session",
        "name": "First Steps",
        "description": "d",
        "points_earned": 50,
    }
    first = await insert_ignoring_conflicts(
        db_session, UserAchievement, values, ("user_id", "achievement_id")
    )
    second = await insert_ignoring_conflicts(
        db_session, UserAchievement, values, ("user_id", "achievement_id")
    )

    assert (first, second) == (True, False)
    count = await db_session.scalar(select(func.count()).select_from(UserAchievement))
    assert count == 1


# ---------------------------------------------------------------------------
# Delivered challenges
# ---------------------------------------------------------------------------

async def _delivered(
    db: AsyncSession,
    owner: int = 1,
    *,
    status: DisplayStatus = DisplayStatus.pending,
    is_active: bool = False,
) -> Challenge:
    challenge = await _add(db, "Linux", owner=owner)
    challenge.display_status = status
    challenge.is_active = is_active
    await db.flush()
    return challenge


@pytest.mark.asyncio
async def test_list_pending_only_delivered_pending_newest_first(db_session: AsyncSession) -> None:
    older = await _delivered(db_session)
    newer = await _delivered(db_session)
    await _delivered(db_session, status=DisplayStatus.active)
    await _delivered(db_session, is_active=True)
    await _delivered(db_session, owner=2)

    rows = await list_pending(db_session, 1)
    assert [r.id for r in rows] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_mark_started_moves_challenge_to_active(db_session: AsyncSession) -> None:
    challenge = await _delivered(db_session)

    started = await mark_started(db_session, challenge.id)

    assert started.display_status == DisplayStatus.active
    assert await list_pending(db_session, 1) == []
    # a second start leaves it active
    assert (await mark_started(db_session, challenge.id)).display_status == DisplayStatus.active


@pytest.mark.asyncio
async def test_mark_started_unknown_id(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await mark_started(db_session, 999)


@pytest.mark.asyncio
async def test_record_response_grades_and_stores(db_session: AsyncSession) -> None:
    challenge = await _add(db_session, "Linux")  # correct answer is B

    wrong = await record_response(
        db_session, challenge_id=challenge.id, user_id=7, selected_answer="a", response_time=12
    )
    right = await record_response(
        db_session, challenge_id=challenge.id, user_id=7, selected_answer="B"
    )

    assert (wrong["is_correct"], right["is_correct"]) == (False, True)
    assert wrong["correct_answer"] == "B"
    rows = (await db_session.execute(
        select(ChallengeResponse).order_by(ChallengeResponse.id)
    )).scalars().all()
    assert [(r.selected_answer, r.is_correct, r.response_time) for r in rows] == [
        ("A", False, 12),
        ("B", True, None),
    ]


@pytest.mark.asyncio
async def test_record_response_unknown_challenge(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await record_response(db_session, challenge_id=404, user_id=1, selected_answer="A")


@pytest.mark.asyncio
async def test_record_response_rejects_bad_letter(db_session: AsyncSession) -> None:
    challenge = await _add(db_session, "Linux")
    with pytest.raises(ValidationError):
        await record_response(
            db_session, challenge_id=challenge.id, user_id=1, selected_answer="E"
        )
