import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quizloop.db.base import Base


class GameMode(str, enum.Enum):
    timed = "timed"
    survival = "survival"


class PracticeSession(Base):
    """One timed or survival run.

    ``correct_answers``, ``time_used`` and ``completed_at`` are written exactly
    once, by ``session_service.save_results``.
    """

    __tablename__ = "practice_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    game_mode: Mapped[GameMode] = mapped_column(
        Enum(GameMode), default=GameMode.timed, nullable=False
    )
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    outcomes: Mapped[list["SessionChallenge"]] = relationship(
        "SessionChallenge", back_populates="session", cascade="all, delete-orphan",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return (
            f"<PracticeSession id={self.id} user_id={self.user_id} "
            f"mode={self.game_mode}>"
        )


class SessionChallenge(Base):
    """Append-only: one row per answered challenge in a session."""

    __tablename__ = "session_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("practice_sessions.id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[int] = mapped_column(Integer, nullable=False)
    correct: Mapped[bool] = mapped_column(Boolean, nullable=False)

    session: Mapped["PracticeSession"] = relationship(
        "PracticeSession", back_populates="outcomes"
    )

    __table_args__ = (
        Index("ix_session_challenges_session_id", "session_id"),
    )


class SessionScore(Base):
    __tablename__ = "session_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("practice_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    game_mode: Mapped[str] = mapped_column(String(32), nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_session_scores_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SessionScore session_id={self.session_id} "
            f"points={self.points_earned}>"
        )


class UserMetrics(Base):
    """Running statistics, exactly one row per user."""

    __tablename__ = "user_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_correct_answers: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UserMetrics user_id={self.user_id} sessions={self.total_sessions} "
            f"points={self.total_points}>"
        )


class UserAchievement(Base):
    """Append-only, never revoked. The unique constraint is the award guard."""

    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    achieved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserAchievement user_id={self.user_id} "
            f"achievement_id={self.achievement_id!r}>"
        )
