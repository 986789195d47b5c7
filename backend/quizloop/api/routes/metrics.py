from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quizloop.api.schemas import (
    AchievementOut,
    GameModeStats,
    OverallMetrics,
    SessionScoreOut,
    TimelinePoint,
    TopicProgress,
)
from quizloop.db.session import get_session
from quizloop.services.challenges_service import list_user_topics
from quizloop.services.metrics_service import (
    game_mode_stats,
    get_user_metrics,
    list_achievements,
    list_recent_scores,
    progress_timeline,
    topic_progress,
)

router = APIRouter(prefix="/users/{user_id}", tags=["metrics"])

UserId = Annotated[int, Path(gt=0)]


@router.get("/topics", response_model=list[str])
async def user_topics_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[str]:
    return await list_user_topics(db, user_id)


@router.get("/metrics/overall", response_model=OverallMetrics)
async def overall_metrics_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> OverallMetrics:
    return OverallMetrics.model_validate(await get_user_metrics(db, user_id))


@router.get("/metrics/sessions", response_model=list[SessionScoreOut])
async def recent_sessions_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> list[SessionScoreOut]:
    scores = await list_recent_scores(db, user_id, limit)
    return [SessionScoreOut.model_validate(s) for s in scores]


@router.get("/metrics/achievements", response_model=list[AchievementOut])
async def achievements_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[AchievementOut]:
    return [AchievementOut.model_validate(a) for a in await list_achievements(db, user_id)]


@router.get("/metrics/topics", response_model=list[TopicProgress])
async def topic_progress_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[TopicProgress]:
    return [TopicProgress.model_validate(r) for r in await topic_progress(db, user_id)]


@router.get("/metrics/timeline", response_model=list[TimelinePoint])
async def timeline_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
    days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> list[TimelinePoint]:
    rows = await progress_timeline(db, user_id, days)
    return [TimelinePoint.model_validate(r) for r in rows]


@router.get("/metrics/game-modes", response_model=list[GameModeStats])
async def game_modes_endpoint(
    user_id: UserId,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[GameModeStats]:
    return [GameModeStats.model_validate(r) for r in await game_mode_stats(db, user_id)]
