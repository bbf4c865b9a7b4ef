from __future__ import annotations

import pytest

from app.core.clock import SECONDS_PER_DAY
from app.services import scoring

# ---- percentages and pass/fail ----


def test_percentage_of_zero_total_is_zero() -> None:
    assert scoring.percentage(5, 0) == 0.0
    assert scoring.percentage(0, 0) == 0.0


def test_zero_total_only_passes_with_non_positive_threshold() -> None:
    pct = scoring.percentage(0, 0)
    assert scoring.passed(pct, 70) is False
    assert scoring.passed(pct, 0) is True


def test_quiz_half_right_fails_at_sixty() -> None:
    pct = scoring.percentage(5, 10)
    assert pct == 50.0
    assert scoring.passed(pct, 60) is False


def test_pass_is_inclusive_of_threshold() -> None:
    assert scoring.passed(70.0, 70) is True


# ---- rounding ----


@pytest.mark.parametrize(
    ("value", "expected"), [(12.5, 13), (37.5, 38), (62.5, 63), (87.5, 88), (0.4, 0)]
)
def test_round_half_up(value: float, expected: int) -> None:
    assert scoring.round_half_up(value) == expected


def test_progress_percent_eight_topics_sequence() -> None:
    seq = [scoring.progress_percent(i, 8) for i in range(1, 9)]
    assert seq == [13, 25, 38, 50, 63, 75, 88, 100]


def test_progress_percent_caps_at_100_and_handles_empty_course() -> None:
    assert scoring.progress_percent(9, 8) == 100
    assert scoring.progress_percent(0, 0) == 0


# ---- late penalty ----


def test_days_late_counts_partial_days_as_whole() -> None:
    due = 1_000_000
    assert scoring.days_late(due, due) == 0
    assert scoring.days_late(due + 1, due) == 1
    assert scoring.days_late(due + 3 * SECONDS_PER_DAY, due) == 3
    assert scoring.days_late(due + 3 * SECONDS_PER_DAY + 1, due) == 4


def test_days_late_without_due_date_is_zero() -> None:
    assert scoring.days_late(5, None) == 0


def test_late_penalty_is_capped() -> None:
    assert scoring.late_penalty(3, 10) == 30
    assert scoring.late_penalty(20, 10) == 100
    assert scoring.late_penalty(0, 10) == 0


def test_scenario_b_three_days_late() -> None:
    penalty = scoring.late_penalty(3, 10)
    final = scoring.final_score(90, penalty)
    assert penalty == 30
    assert final == pytest.approx(63.0)
    assert scoring.passed(scoring.percentage(final, 100), 70) is False


@pytest.mark.parametrize("raw", [0, 1, 42.5, 100])
@pytest.mark.parametrize("penalty", [0, 10, 55, 100])
def test_final_score_never_exceeds_raw(raw: float, penalty: float) -> None:
    assert scoring.final_score(raw, penalty) <= raw


def test_final_score_without_penalty_is_raw() -> None:
    assert scoring.final_score(87.25, 0) == 87.25


# ---- certificate grade ----


def test_scenario_d_weighted_final_and_grade() -> None:
    final = scoring.weighted_final_score(80, 90, scoring.ScoreWeights(0.4, 0.6))
    assert final == pytest.approx(86)
    assert scoring.letter_grade(scoring.round_half_up(final)) == "B+"


@pytest.mark.parametrize(
    ("score", "grade"),
    [(100, "A+"), (95, "A+"), (94, "A"), (90, "A"), (85, "B+"), (80, "B"),
     (75, "C+"), (70, "C"), (69, "Pass"), (0, "Pass")],
)
def test_letter_grade_bands(score: int, grade: str) -> None:
    assert scoring.letter_grade(score) == grade


def test_mean_of_nothing_is_zero() -> None:
    assert scoring.mean([]) == 0.0
    assert scoring.mean([80, 90]) == 85.0
