"""Pure scoring functions: no I/O and no failure modes."""

from __future__ import annotations

from dataclasses import dataclass

POINTS_PER_CORRECT: int = 10
ACCURACY_BONUS: int = 50
ACCURACY_BONUS_THRESHOLD: float = 80.0
TIME_BONUS_CEILING: int = 100


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    correct_answers: int
    total_questions: int
    accuracy: float
    time_used: int
    game_mode: str
    topic: str


def compute_accuracy(correct_answers: int | None, total_questions: int | None) -> float:
    """Percentage in [0, 100]; 0.0 when there were no questions."""
    correct = correct_answers or 0
    total = total_questions or 0
    if total <= 0:
        return 0.0
    return correct / total * 100


def calculate_points(
    correct_answers: int | None,
    accuracy: float | None,
    game_mode: str | None,
    time_used: int | float | None,
) -> int:
    """points = correct·10 + 50 if accuracy ≥ 80 + (100 − time_used, floored at 0) if timed."""
    base = (correct_answers or 0) * POINTS_PER_CORRECT
    accuracy_bonus = ACCURACY_BONUS if (accuracy or 0) >= ACCURACY_BONUS_THRESHOLD else 0
    time_bonus = (
        max(0, TIME_BONUS_CEILING - (time_used or 0)) if game_mode == "timed" else 0
    )
    return int(base + accuracy_bonus + time_bonus)


def score_outcome(outcome: SessionOutcome) -> int:
    return calculate_points(
        outcome.correct_answers, outcome.accuracy, outcome.game_mode, outcome.time_used
    )
