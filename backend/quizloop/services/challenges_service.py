import json
import logging
from collections.abc import Sequence
from datetime import time
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.core.errors import NotFoundError, ValidationError
from quizloop.db.models import Challenge, ChallengeResponse, DisplayStatus
from quizloop.services.question_parser import StructuredQuestion

logger = logging.getLogger(__name__)


def _topic_matches(topic: str):
    return Challenge.topic.icontains(topic.strip(), autoescape=True)


async def save_challenge(
    db: AsyncSession,
    question: StructuredQuestion,
    *,
    owner_user_id: int,
    topic: str,
    level: str,
    delivery_time: time = time(9, 0),
    frequency: str = "daily",
    is_active: bool = True,
    display_status: DisplayStatus = DisplayStatus.pending,
) -> Challenge:
    """Insert one validated question. Flushes (assigns ``id``) but does not commit."""
    challenge = Challenge(
        topic=topic.strip(),
        level=level,
        question_text=question.question_text,
        options=json.dumps(question.options_as_dicts(), ensure_ascii=False),
        correct_answer=question.correct_answer,
        raw_response=question.raw_text,
        owner_user_id=owner_user_id,
        delivery_time=delivery_time,
        frequency=frequency,
        is_active=is_active,
        display_status=display_status,
    )
    db.add(challenge)
    await db.flush()
    logger.info(
        "Saved challenge id=%s owner=%s topic=%r", challenge.id, owner_user_id, topic[:40]
    )
    return challenge


async def find_for_user_topic(
    db: AsyncSession,
    user_id: int,
    topic: str,
    limit: int,
) -> list[Challenge]:
    result = await db.execute(
        select(Challenge)
        .where(Challenge.owner_user_id == user_id, _topic_matches(topic))
        .order_by(func.random())
        .limit(limit)
    )
    return list(result.scalars().all())


async def find_excluding(
    db: AsyncSession,
    user_id: int,
    topic: str,
    exclude_ids: Sequence[int],
    limit: int = 5,
) -> list[Challenge]:
    stmt = select(Challenge).where(
        Challenge.owner_user_id == user_id, _topic_matches(topic)
    )
    if exclude_ids:
        stmt = stmt.where(Challenge.id.not_in(list(exclude_ids)))
    result = await db.execute(stmt.order_by(func.random()).limit(limit))
    return list(result.scalars().all())


async def recent_question_texts(
    db: AsyncSession,
    topic: str,
    limit: int = 20,
) -> list[str]:
    """Most recent question texts for *topic* across all users, oldest first."""
    result = await db.execute(
        select(Challenge.question_text)
        .where(_topic_matches(topic))
        .order_by(Challenge.created_at.desc(), Challenge.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def list_user_topics(db: AsyncSession, user_id: int) -> list[str]:
    result = await db.execute(
        select(Challenge.topic)
        .where(Challenge.owner_user_id == user_id, Challenge.topic != "")
        .distinct()
        .order_by(Challenge.topic)
    )
    return list(result.scalars().all())


def challenge_payload(challenge: Challenge) -> dict[str, Any]:
    """Client shape: options deserialised into a list of four strings."""
    try:
        options = json.loads(challenge.options or "[]")
    except json.JSONDecodeError:
        logger.warning("Challenge id=%s has malformed options JSON", challenge.id)
        options = []
    return {
        "id":             challenge.id,
        "topic":          challenge.topic,
        "level":          challenge.level,
        "question":       challenge.question_text,
        "options":        [o["text"] if isinstance(o, dict) else str(o) for o in options],
        "correct_answer": challenge.correct_answer,
    }


# ---------------------------------------------------------------------------
# Delivered challenges: pending → active, then one response per answer
# ---------------------------------------------------------------------------

ANSWER_LETTERS: frozenset[str] = frozenset("ABCD")


async def _get_challenge(db: AsyncSession, challenge_id: int) -> Challenge:
    challenge = await db.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError(f"Challenge {challenge_id} not found")
    return challenge


async def list_pending(db: AsyncSession, user_id: int) -> list[Challenge]:
    """Delivered challenges the user has not opened yet, newest first.

    A delivered row has ``is_active=False`` (the trigger has fired) and stays
    ``pending`` until ``mark_started`` is called.
    """
    result = await db.execute(
        select(Challenge)
        .where(
            Challenge.owner_user_id == user_id,
            Challenge.display_status == DisplayStatus.pending,
            Challenge.is_active.is_(False),
        )
        .order_by(Challenge.created_at.desc(), Challenge.id.desc())
    )
    return list(result.scalars().all())


async def mark_started(db: AsyncSession, challenge_id: int) -> Challenge:
    """Move a challenge to ``active``. Starting an active challenge is a no-op."""
    challenge = await _get_challenge(db, challenge_id)
    if challenge.display_status is not DisplayStatus.active:
        challenge.display_status = DisplayStatus.active
        await db.commit()
        logger.info("Challenge id=%s started", challenge_id)
    return challenge


async def record_response(
    db: AsyncSession,
    *,
    challenge_id: int,
    user_id: int,
    selected_answer: str,
    response_time: int | None = None,
) -> dict[str, Any]:
    """Store one answer and grade it against the stored correct letter."""
    answer = (selected_answer or "").strip().upper()
    if answer not in ANSWER_LETTERS:
        raise ValidationError(f"selected_answer must be one of A-D, got {selected_answer!r}")

    challenge = await _get_challenge(db, challenge_id)
    response = ChallengeResponse(
        user_id=user_id,
        challenge_id=challenge.id,
        selected_answer=answer,
        is_correct=answer == challenge.correct_answer,
        response_time=response_time,
    )
    db.add(response)
    await db.commit()

    logger.info(
        "Response id=%s user=%s challenge=%s correct=%s",
        response.id, user_id, challenge_id, response.is_correct,
    )
    return {
        "response_id":    response.id,
        "challenge_id":   challenge.id,
        "is_correct":     response.is_correct,
        "correct_answer": challenge.correct_answer,
    }
