import enum
from datetime import datetime, time

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from quizloop.db.base import Base


class DisplayStatus(str, enum.Enum):
    pending = "pending"
    active = "active"


class Challenge(Base):
    """A single persisted multiple-choice question owned by one user.

    ``options`` holds the four options serialised as JSON:
    ``[{"letter": "A", "text": "..."}, ...]``.

    ``is_active`` belongs to the delivery scheduler: ``False`` means the row
    has been delivered (or was generated on demand) and must not fire again.
    """

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    level: Mapped[str] = mapped_column(String(64), nullable=False, default="advanced")
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[str] = mapped_column(
        Text, nullable=False, default="[]", comment="JSON list of {letter, text}"
    )
    correct_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    raw_response: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    display_status: Mapped[DisplayStatus] = mapped_column(
        Enum(DisplayStatus), default=DisplayStatus.pending, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    delivery_time: Mapped[time] = mapped_column(
        Time, default=time(9, 0), nullable=False
    )
    frequency: Mapped[str] = mapped_column(String(32), default="daily", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_challenges_owner_topic", "owner_user_id", "topic"),
        Index("ix_challenges_topic_created", "topic", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Challenge id={self.id} owner={self.owner_user_id} "
            f"topic={self.topic!r}>"
        )


class ChallengeResponse(Base):
    """One answer a user gave to a delivered challenge."""

    __tablename__ = "challenge_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    selected_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="seconds"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_challenge_responses_user_challenge", "user_id", "challenge_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChallengeResponse id={self.id} user_id={self.user_id} "
            f"challenge_id={self.challenge_id} correct={self.is_correct}>"
        )
