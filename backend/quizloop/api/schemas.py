from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from quizloop.db.models_session import GameMode

PositiveId = Annotated[int, Field(gt=0)]
Topic = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=2, max_length=100),
    Field(examples=["Linux"]),
]
Notes = Annotated[str, StringConstraints(strip_whitespace=True, max_length=20000)]


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------

class ChallengeOut(BaseModel):
    id: int
    topic: str
    level: str
    question: str
    options: list[str]
    correct_answer: str | None = None


class DeliveredChallengeOut(ChallengeOut):
    display_status: str
    frequency: str
    created_at: datetime


class ChallengeResponseRequest(BaseModel):
    user_id: PositiveId
    selected_answer: Annotated[
        str, StringConstraints(strip_whitespace=True, to_upper=True, pattern=r"^[A-D]$")
    ]
    response_time: int | None = Field(default=None, ge=0, description="Seconds")


class ChallengeResponseOut(BaseModel):
    response_id: int
    challenge_id: int
    is_correct: bool
    correct_answer: str


class GenerateChallengeRequest(BaseModel):
    user_id: PositiveId
    topic: Topic
    level: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)
    ] = "advanced"
    notes: Notes | None = None
    previous_questions: list[str] | None = Field(
        default=None,
        description="Question texts the generator must not repeat; loaded from the database when omitted",
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class StartSessionRequest(BaseModel):
    user_id: PositiveId
    topic: Topic
    game_mode: GameMode = GameMode.timed


class StartSessionResponse(BaseModel):
    session_id: str
    game_mode: GameMode
    challenges: list[ChallengeOut]


class ContinueSurvivalRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    user_id: PositiveId
    topic: Topic
    used_challenge_ids: list[PositiveId] = Field(default_factory=list)


class ChallengeBatch(BaseModel):
    challenges: list[ChallengeOut]


class SaveResultsRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    correct_answers: list[PositiveId] = Field(default_factory=list)
    incorrect_answers: list[PositiveId] = Field(default_factory=list)
    game_mode: GameMode | None = None
    time_used: int = Field(default=0, ge=0)
    topic: Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)] | None = None


class AwardedAchievement(BaseModel):
    achievement_id: str
    name: str
    description: str
    points_earned: int


class SaveResultsResponse(BaseModel):
    points: int
    accuracy: float
    achievements: list[AwardedAchievement] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class OverallMetrics(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_points: int = 0
    total_sessions: int = 0
    total_correct_answers: int = 0
    total_time_spent: int = 0
    average_accuracy: float = 0.0


class SessionScoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    points_earned: int
    accuracy: float
    time_spent: int
    game_mode: str
    topic: str
    created_at: datetime


class AchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    achievement_id: str
    name: str
    description: str
    points_earned: int
    achieved_at: datetime


class TopicProgress(BaseModel):
    topic: str
    total_sessions: int
    average_accuracy: float
    total_points: int
    total_time: int


class GameModeStats(BaseModel):
    game_mode: str
    total_sessions: int
    average_accuracy: float
    average_points: float
    total_time: int


class TimelinePoint(BaseModel):
    date: str
    sessions_count: int
    daily_accuracy: float
    daily_points: int
