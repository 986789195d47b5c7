"""
Content backfill. Keeps a user's per-topic supply of challenges topped up.

Flow per missing slot:
    recent texts (dedup context) → prompt → oracle → parse → validate → save

Generation is strictly sequential so every new question is fed back into the
dedup context before the next prompt is built.  Per-slot failures are logged
and skipped: a short supply is preferred over failing the whole session
start.  Questions that fail validation are never persisted; the slot is
retried up to ``settings.backfill_max_attempts_per_item`` times.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import time

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.core.config import settings
from quizloop.core.errors import UpstreamError, ValidationError
from quizloop.db.models import Challenge, DisplayStatus
from quizloop.db.models_session import GameMode
from quizloop.services.challenges_service import (
    find_for_user_topic,
    recent_question_texts,
    save_challenge,
)
from quizloop.services.llm_client import LLMClient, generate_with_retries
from quizloop.services.prompting import (
    QUESTION_SYSTEM_PROMPT,
    build_notes_prompt,
    build_question_prompt,
)
from quizloop.services.question_parser import StructuredQuestion, parse_question
from quizloop.services.question_validator import validate_question

logger = logging.getLogger(__name__)

SURVIVAL_LIMIT: int = 15
DEFAULT_LIMIT: int = 10
BACKFILL_LEVEL: str = "advanced"


def challenge_limit(game_mode: GameMode | str) -> int:
    return SURVIVAL_LIMIT if GameMode(game_mode) is GameMode.survival else DEFAULT_LIMIT


# ---------------------------------------------------------------------------
# Single question: oracle → parse → validate
# ---------------------------------------------------------------------------

async def _generate_valid_question(
    llm: LLMClient,
    prompt: str,
    *,
    topic: str,
    level: str,
) -> StructuredQuestion:
    """One oracle round trip. Raises UpstreamError or ValidationError."""
    raw = await generate_with_retries(llm, prompt, system_prompt=QUESTION_SYSTEM_PROMPT)
    question = parse_question(raw, topic=topic, level=level)
    result = validate_question(question, topic)
    if not result.is_valid:
        raise ValidationError(
            f"Generated question rejected: {'; '.join(result.errors)}", result
        )
    if result.warnings:
        logger.info(
            "Accepted question with warnings topic=%r score=%d warnings=%s",
            topic[:40], result.score, list(result.warnings),
        )
    return question


async def generate_one_challenge(
    db: AsyncSession,
    *,
    user_id: int,
    topic: str,
    level: str,
    llm_client: LLMClient,
    previous_questions: Sequence[str] | None = None,
    notes: str | None = None,
    delivery_time: time = time(9, 0),
    frequency: str = "daily",
    is_active: bool = True,
) -> Challenge:
    """Generate, validate and persist exactly one challenge.

    Used by the periodic delivery trigger and the ``/challenges/generate``
    endpoint.  When *previous_questions* is None the recent texts for the
    topic are loaded from the database.  Blank notes count as no notes and a
    blank topic raises ValidationError.  Commits on success.
    """
    topic = (topic or "").strip()
    if not topic:
        raise ValidationError("topic must not be empty")
    level = (level or "").strip() or BACKFILL_LEVEL
    notes = notes.strip() if notes else None

    if notes:
        prompt = build_notes_prompt(notes, topic, level)
    else:
        if previous_questions is None:
            previous_questions = await recent_question_texts(
                db, topic, settings.backfill_context_size
            )
        prompt = build_question_prompt(topic, level, previous_questions)

    question = await _generate_valid_question(llm_client, prompt, topic=topic, level=level)
    challenge = await save_challenge(
        db,
        question,
        owner_user_id=user_id,
        topic=topic,
        level=level,
        delivery_time=delivery_time,
        frequency=frequency,
        is_active=is_active,
        display_status=DisplayStatus.pending,
    )
    await db.commit()
    return challenge


# ---------------------------------------------------------------------------
# Backfill loop
# ---------------------------------------------------------------------------

async def generate_challenges(
    db: AsyncSession,
    *,
    user_id: int,
    topic: str,
    count: int,
    llm_client: LLMClient,
) -> list[Challenge]:
    """Generate up to *count* challenges for (user, topic); partial success is fine."""
    context = await recent_question_texts(db, topic, settings.backfill_context_size)
    generated: list[Challenge] = []

    for slot in range(1, count + 1):
        for attempt in range(1, settings.backfill_max_attempts_per_item + 1):
            prompt = build_question_prompt(topic, BACKFILL_LEVEL, context)
            try:
                question = await _generate_valid_question(
                    llm_client, prompt, topic=topic, level=BACKFILL_LEVEL
                )
                challenge = await save_challenge(
                    db,
                    question,
                    owner_user_id=user_id,
                    topic=topic,
                    level=BACKFILL_LEVEL,
                    is_active=False,
                    display_status=DisplayStatus.active,
                )
                await db.commit()
            except ValidationError as exc:
                logger.warning(
                    "Backfill slot %d/%d attempt %d rejected user=%s topic=%r: %s",
                    slot, count, attempt, user_id, topic[:40], exc,
                )
                continue
            except UpstreamError as exc:
                logger.error(
                    "Backfill slot %d/%d oracle failure user=%s topic=%r: %s",
                    slot, count, user_id, topic[:40], exc,
                )
                break
            except SQLAlchemyError:
                await db.rollback()
                logger.exception(
                    "Backfill slot %d/%d could not be saved user=%s topic=%r",
                    slot, count, user_id, topic[:40],
                )
                break

            generated.append(challenge)
            context = (context + [question.question_text])[-settings.backfill_context_window:]
            break
        else:
            logger.warning(
                "Backfill slot %d/%d gave up after %d invalid questions",
                slot, count, settings.backfill_max_attempts_per_item,
            )

    logger.info(
        "Backfill generated %d/%d challenges user=%s topic=%r",
        len(generated), count, user_id, topic[:40],
    )
    return generated


async def ensure_supply(
    db: AsyncSession,
    *,
    user_id: int,
    topic: str,
    game_mode: GameMode | str,
    llm_client: LLMClient,
) -> list[Challenge]:
    """Return at least ``challenge_limit(game_mode)`` challenges when possible."""
    limit = challenge_limit(game_mode)
    challenges = await find_for_user_topic(db, user_id, topic, limit)

    if len(challenges) < limit:
        needed = limit - len(challenges)
        logger.info(
            "Supply short for user=%s topic=%r: have %d, generating %d",
            user_id, topic[:40], len(challenges), needed,
        )
        challenges += await generate_challenges(
            db, user_id=user_id, topic=topic, count=needed, llm_client=llm_client
        )
        # A failed save rolls back, which expires every loaded row
        for challenge in challenges:
            if inspect(challenge).expired:
                await db.refresh(challenge)

    return challenges
