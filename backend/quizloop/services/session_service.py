"""
Session lifecycle: start, survival continuation and finalisation.

    start_session()     → top up supply (backfill), create PracticeSession,
                          return the challenges for the client.
    continue_survival() → up to 5 more challenges, excluding those already used.
    save_results()      → the only write path for scores, metrics and
                          achievements; one transaction, commit-or-rollback.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.core.errors import (
    NotFoundError,
    PersistenceError,
    QuizEngineError,
    ValidationError,
)
from quizloop.db.models_session import (
    GameMode,
    PracticeSession,
    SessionChallenge,
    SessionScore,
)
from quizloop.services.achievement_service import check_and_award
from quizloop.services.backfill_service import ensure_supply
from quizloop.services.challenges_service import challenge_payload, find_excluding
from quizloop.services.llm_client import LLMClient
from quizloop.services.metrics_service import record_session
from quizloop.services.scoring import SessionOutcome, compute_accuracy, score_outcome

logger = logging.getLogger(__name__)

SURVIVAL_BATCH_SIZE: int = 5
UNKNOWN_TOPIC: str = "Unknown topic"


async def start_session(
    db: AsyncSession,
    *,
    user_id: int,
    topic: str,
    game_mode: GameMode | str,
    llm_client: LLMClient,
) -> dict[str, Any]:
    """Create a session over the user's challenges for *topic*, generating more if short."""
    topic = topic.strip()
    if not topic:
        raise ValidationError("topic must not be empty")
    mode = GameMode(game_mode)

    challenges = await ensure_supply(
        db, user_id=user_id, topic=topic, game_mode=mode, llm_client=llm_client
    )
    if not challenges:
        raise NotFoundError("No challenges available for this topic")

    session_row = PracticeSession(
        id=str(uuid.uuid4()),
        user_id=user_id,
        topic=topic,
        game_mode=mode,
        total_questions=len(challenges),
    )
    db.add(session_row)
    await db.commit()

    logger.info(
        "Started session id=%s user=%s topic=%r mode=%s challenges=%d",
        session_row.id, user_id, topic[:40], mode.value, len(challenges),
    )
    return {
        "session_id": session_row.id,
        "game_mode":  mode.value,
        "challenges": [challenge_payload(c) for c in challenges],
    }


async def continue_survival(
    db: AsyncSession,
    *,
    session_id: str,
    user_id: int,
    topic: str,
    used_challenge_ids: Sequence[int] = (),
) -> dict[str, Any]:
    """Serve the next survival batch for an open session owned by *user_id*."""
    session_row = await db.get(PracticeSession, session_id)
    if session_row is None or session_row.user_id != user_id:
        raise NotFoundError(f"Session {session_id} not found")
    if session_row.completed_at is not None:
        raise ValidationError(f"Session {session_id} is already completed")

    challenges = await find_excluding(
        db, user_id, topic, used_challenge_ids, limit=SURVIVAL_BATCH_SIZE
    )
    if not challenges:
        raise NotFoundError("No more challenges available")

    logger.info(
        "Survival continuation session=%s user=%s served=%d excluded=%d",
        session_id, user_id, len(challenges), len(used_challenge_ids),
    )
    return {"challenges": [challenge_payload(c) for c in challenges]}


async def save_results(
    db: AsyncSession,
    *,
    session_id: str,
    correct_ids: Sequence[int],
    incorrect_ids: Sequence[int],
    game_mode: GameMode | str | None = None,
    time_used: int | None = 0,
    topic: str | None = None,
) -> dict[str, Any]:
    """Score and finalise a session.

    Every write (session row, per-challenge outcomes, score, metrics,
    achievements) happens in one transaction.  On any failure the whole
    transaction is rolled back; database errors surface as PersistenceError,
    everything else propagates unchanged.
    """
    try:
        session_row = await db.scalar(
            select(PracticeSession)
            .where(PracticeSession.id == session_id)
            .with_for_update()
        )
        if session_row is None:
            raise NotFoundError(f"Session {session_id} not found")
        if session_row.completed_at is not None:
            raise ValidationError(f"Session {session_id} is already completed")

        mode = GameMode(game_mode) if game_mode else session_row.game_mode
        topic = (topic or "").strip() or session_row.topic or UNKNOWN_TOPIC
        time_used = time_used or 0

        correct_answers = len(correct_ids)
        total_questions = correct_answers + len(incorrect_ids)
        accuracy = compute_accuracy(correct_answers, total_questions)
        outcome = SessionOutcome(
            correct_answers=correct_answers,
            total_questions=total_questions,
            accuracy=accuracy,
            time_used=time_used,
            game_mode=mode.value,
            topic=topic,
        )
        points = score_outcome(outcome)

        session_row.correct_answers = correct_answers
        session_row.time_used = time_used
        session_row.completed_at = datetime.now(timezone.utc)

        db.add_all(
            [SessionChallenge(session_id=session_id, challenge_id=cid, correct=True)
             for cid in correct_ids]
            + [SessionChallenge(session_id=session_id, challenge_id=cid, correct=False)
               for cid in incorrect_ids]
        )
        db.add(SessionScore(
            session_id=session_id,
            user_id=session_row.user_id,
            points_earned=points,
            accuracy=accuracy,
            time_spent=time_used,
            game_mode=mode.value,
            topic=topic,
        ))
        await db.flush()

        update = await record_session(
            db,
            user_id=session_row.user_id,
            points=points,
            correct_answers=correct_answers,
            time_used=time_used,
            accuracy=accuracy,
        )
        achievements = await check_and_award(
            db,
            user_id=session_row.user_id,
            outcome=outcome,
            points_earned=points,
            before=update.before,
        )
        await db.commit()
    except QuizEngineError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("save_results failed session=%s", session_id)
        raise PersistenceError(f"Could not save results for session {session_id}") from exc
    except Exception:
        await db.rollback()
        logger.exception("save_results failed session=%s", session_id)
        raise

    logger.info(
        "Finalised session=%s points=%d accuracy=%.1f achievements=%s",
        session_id, points, accuracy, [a["achievement_id"] for a in achievements],
    )
    return {"points": points, "accuracy": accuracy, "achievements": achievements}
