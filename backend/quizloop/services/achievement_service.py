"""
Achievement engine.

Each badge is a threshold-crossing predicate over the user's metrics BEFORE
this session plus this session's outcome.  A badge is recorded with an
INSERT that ignores conflicts on (user_id, achievement_id), so it is awarded
at most once even when two finalisations race: only the transaction whose
insert actually lands reports the badge.

Bonus points are stored on the achievement row; they are not folded back
into ``user_metrics.total_points``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.db.models_session import GameMode, UserAchievement
from quizloop.db.upsert import insert_ignoring_conflicts
from quizloop.services.metrics_service import MetricsSnapshot, get_user_metrics
from quizloop.services.scoring import SessionOutcome

logger = logging.getLogger(__name__)

DEDICATED_LEARNER_SESSIONS: int = 5
POINT_MASTER_POINTS: int = 100


@dataclass(frozen=True, slots=True)
class AchievementRule:
    achievement_id: str
    name: str
    description: str
    points: int
    earned: Callable[[MetricsSnapshot, SessionOutcome, int], bool]


def _crossed(before: int, delta: int, threshold: int) -> bool:
    return before < threshold <= before + delta


ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule(
        "first_session", "First Steps",
        "Completed your first practice session", 50,
        lambda before, outcome, points: before.total_sessions == 0,
    ),
    AchievementRule(
        "perfect_accuracy", "Perfect!",
        "Scored 100% accuracy in a session", 100,
        lambda before, outcome, points: (
            outcome.game_mode != GameMode.survival
            and outcome.accuracy == 100
            and outcome.total_questions >= 5
        ),
    ),
    AchievementRule(
        "survival_master", "Survival Master",
        "Finished a survival run without a single mistake", 200,
        lambda before, outcome, points: (
            outcome.game_mode == GameMode.survival
            and outcome.correct_answers == outcome.total_questions
            and outcome.total_questions >= 3
        ),
    ),
    AchievementRule(
        "dedicated_learner", "Dedicated Learner",
        f"Completed {DEDICATED_LEARNER_SESSIONS} practice sessions", 150,
        lambda before, outcome, points: _crossed(
            before.total_sessions, 1, DEDICATED_LEARNER_SESSIONS
        ),
    ),
    AchievementRule(
        "point_master", "Point Master",
        f"Reached {POINT_MASTER_POINTS} total points", 50,
        lambda before, outcome, points: _crossed(
            before.total_points, points, POINT_MASTER_POINTS
        ),
    ),
)


async def award(
    db: AsyncSession,
    user_id: int,
    rule: AchievementRule,
) -> bool:
    """Record *rule* for *user_id*. Returns False when it was already held."""
    return await insert_ignoring_conflicts(
        db,
        UserAchievement,
        {
            "user_id": user_id,
            "achievement_id": rule.achievement_id,
            "name": rule.name,
            "description": rule.description,
            "points_earned": rule.points,
        },
        conflict_columns=("user_id", "achievement_id"),
    )


async def check_and_award(
    db: AsyncSession,
    *,
    user_id: int,
    outcome: SessionOutcome,
    points_earned: int,
    before: MetricsSnapshot | None = None,
) -> list[dict]:
    """Award every newly earned badge and return them.

    *before* is the metrics snapshot taken before this session was recorded.
    When omitted the current ``user_metrics`` row is read (all zeros when the
    user has none).  Runs inside the caller's transaction and does not commit.
    """
    baseline = before if before is not None else await get_user_metrics(db, user_id)
    newly_awarded: list[dict] = []

    for rule in ACHIEVEMENT_RULES:
        if not rule.earned(baseline, outcome, points_earned or 0):
            continue
        if await award(db, user_id, rule):
            newly_awarded.append({
                "achievement_id": rule.achievement_id,
                "name":           rule.name,
                "description":    rule.description,
                "points_earned":  rule.points,
            })
            logger.info("Achievement %s awarded to user=%s", rule.achievement_id, user_id)
        else:
            logger.debug(
                "Achievement %s already held by user=%s", rule.achievement_id, user_id
            )

    return newly_awarded
