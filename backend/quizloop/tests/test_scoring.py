from __future__ import annotations

import pytest

from quizloop.services.scoring import (
    SessionOutcome,
    calculate_points,
    compute_accuracy,
    score_outcome,
)


def test_timed_session_with_all_bonuses() -> None:
    assert calculate_points(8, 90, "timed", 40) == 8 * 10 + 50 + 60 == 190


def test_survival_has_no_time_bonus() -> None:
    assert calculate_points(5, 50, "survival", 999) == 50


def test_accuracy_bonus_threshold_is_inclusive() -> None:
    assert calculate_points(4, 80, "survival", 0) == 90
    assert calculate_points(4, 79.9, "survival", 0) == 40


def test_time_bonus_is_floored_at_zero() -> None:
    assert calculate_points(0, 0, "timed", 250) == 0


def test_missing_inputs_count_as_zero() -> None:
    assert calculate_points(None, None, None, None) == 0
    assert calculate_points(None, None, "timed", None) == 100


def test_points_are_integers() -> None:
    assert isinstance(calculate_points(3, 100.0, "timed", 12.5), int)


@pytest.mark.parametrize(
    "correct, total, expected",
    [(5, 5, 100.0), (1, 4, 25.0), (0, 3, 0.0), (0, 0, 0.0), (None, None, 0.0)],
)
def test_compute_accuracy(correct, total, expected) -> None:
    assert compute_accuracy(correct, total) == pytest.approx(expected)


def test_score_outcome_matches_calculate_points() -> None:
    outcome = SessionOutcome(
        correct_answers=5, total_questions=5, accuracy=100.0,
        time_used=30, game_mode="timed", topic="Linux",
    )
    assert score_outcome(outcome) == 50 + 50 + 70
