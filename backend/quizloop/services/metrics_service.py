"""
Running per-user statistics (write side) and the statistics queries the
dashboard reads (read side).

Write side
----------
``record_session`` keeps exactly one ``user_metrics`` row per user.  The
running average must use the session count from BEFORE this session:

    average = (old_average * old_sessions + accuracy) / (old_sessions + 1)

so the update is an explicit read-then-write:

    1. INSERT a zero row, ignoring a conflict on user_id   (row now exists)
    2. SELECT … FOR UPDATE                                  (row lock on PostgreSQL)
    3. capture the pre-update snapshot in Python
    4. write the new totals

The lock is held until the caller's transaction ends, which also serialises
the achievement threshold checks for the same user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.db.models_session import SessionScore, UserAchievement, UserMetrics
from quizloop.db.upsert import insert_ignoring_conflicts

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    total_points: int = 0
    total_sessions: int = 0
    total_correct_answers: int = 0
    total_time_spent: int = 0
    average_accuracy: float = 0.0

    @classmethod
    def from_row(cls, row: UserMetrics | None) -> MetricsSnapshot:
        if row is None:
            return cls()
        return cls(
            total_points=row.total_points or 0,
            total_sessions=row.total_sessions or 0,
            total_correct_answers=row.total_correct_answers or 0,
            total_time_spent=row.total_time_spent or 0,
            average_accuracy=row.average_accuracy or 0.0,
        )


@dataclass(frozen=True, slots=True)
class MetricsUpdate:
    before: MetricsSnapshot
    after: MetricsSnapshot


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------

def running_average(old_average: float, old_sessions: int, accuracy: float) -> float:
    return (old_average * old_sessions + accuracy) / (old_sessions + 1)


async def record_session(
    db: AsyncSession,
    *,
    user_id: int,
    points: int,
    correct_answers: int,
    time_used: int,
    accuracy: float,
) -> MetricsUpdate:
    """Fold one finished session into the user's running totals.

    Runs inside the caller's transaction and does not commit.
    """
    await insert_ignoring_conflicts(
        db,
        UserMetrics,
        {
            "user_id": user_id,
            "total_points": 0,
            "total_sessions": 0,
            "total_correct_answers": 0,
            "total_time_spent": 0,
            "average_accuracy": 0.0,
        },
        conflict_columns=("user_id",),
    )
    result = await db.execute(
        select(UserMetrics)
        .where(UserMetrics.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one()
    before = MetricsSnapshot.from_row(row)

    row.total_points = before.total_points + (points or 0)
    row.total_sessions = before.total_sessions + 1
    row.total_correct_answers = before.total_correct_answers + (correct_answers or 0)
    row.total_time_spent = before.total_time_spent + (time_used or 0)
    row.average_accuracy = running_average(
        before.average_accuracy, before.total_sessions, accuracy or 0.0
    )
    await db.flush()

    after = MetricsSnapshot.from_row(row)
    logger.info(
        "Metrics user=%s sessions %d→%d points %d→%d avg_accuracy=%.1f",
        user_id, before.total_sessions, after.total_sessions,
        before.total_points, after.total_points, after.average_accuracy,
    )
    return MetricsUpdate(before=before, after=after)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

async def get_user_metrics(db: AsyncSession, user_id: int) -> MetricsSnapshot:
    row = await db.scalar(select(UserMetrics).where(UserMetrics.user_id == user_id))
    return MetricsSnapshot.from_row(row)


async def list_recent_scores(
    db: AsyncSession, user_id: int, limit: int = 20
) -> list[SessionScore]:
    result = await db.execute(
        select(SessionScore)
        .where(SessionScore.user_id == user_id)
        .order_by(SessionScore.created_at.desc(), SessionScore.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_achievements(db: AsyncSession, user_id: int) -> list[UserAchievement]:
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.achieved_at.desc(), UserAchievement.id.desc())
    )
    return list(result.scalars().all())


async def topic_progress(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    """Per-topic totals, best average accuracy first."""
    avg_accuracy = func.avg(SessionScore.accuracy)
    result = await db.execute(
        select(
            SessionScore.topic,
            func.count().label("total_sessions"),
            avg_accuracy.label("average_accuracy"),
            func.sum(SessionScore.points_earned).label("total_points"),
            func.sum(SessionScore.time_spent).label("total_time"),
        )
        .where(SessionScore.user_id == user_id)
        .group_by(SessionScore.topic)
        .order_by(avg_accuracy.desc())
    )
    return [dict(r._mapping) for r in result]


async def game_mode_stats(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    result = await db.execute(
        select(
            SessionScore.game_mode,
            func.count().label("total_sessions"),
            func.avg(SessionScore.accuracy).label("average_accuracy"),
            func.avg(SessionScore.points_earned).label("average_points"),
            func.sum(SessionScore.time_spent).label("total_time"),
        )
        .where(SessionScore.user_id == user_id)
        .group_by(SessionScore.game_mode)
        .order_by(SessionScore.game_mode)
    )
    return [dict(r._mapping) for r in result]


async def progress_timeline(
    db: AsyncSession, user_id: int, days: int = 30
) -> list[dict[str, Any]]:
    """Sessions, accuracy and points per calendar day over the last *days* days."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    day = func.date(SessionScore.created_at)
    result = await db.execute(
        select(
            day.label("date"),
            func.count().label("sessions_count"),
            func.avg(SessionScore.accuracy).label("daily_accuracy"),
            func.sum(SessionScore.points_earned).label("daily_points"),
        )
        .where(SessionScore.user_id == user_id, SessionScore.created_at >= since)
        .group_by(day)
        .order_by(day)
    )
    return [
        {**r._mapping, "date": str(r.date)}
        for r in result
    ]
