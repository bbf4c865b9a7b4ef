"""Pure scoring rules: percentages, pass/fail, late penalties, grades.

Nothing in this module touches storage, the clock, or the network.  The
engines call these functions explicitly right before a terminal state
write, so every number that ends up on a record can be reproduced (and
tested) from its raw inputs alone.

Division by a zero total is defined as 0, never an error.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from app.core.clock import SECONDS_PER_DAY


@dataclass(frozen=True, slots=True)
class GradeBand:
    min_score: float
    grade: str


# Highest band first; the first band whose floor the score reaches wins.
GRADE_BANDS: tuple[GradeBand, ...] = (
    GradeBand(95, "A+"),
    GradeBand(90, "A"),
    GradeBand(85, "B+"),
    GradeBand(80, "B"),
    GradeBand(75, "C+"),
    GradeBand(70, "C"),
)
FALLBACK_GRADE = "Pass"


@dataclass(frozen=True, slots=True)
class ScoreWeights:
    quiz: float = 0.4
    assignment: float = 0.6


DEFAULT_WEIGHTS = ScoreWeights()
LATE_PENALTY_CAP = 100.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (12.5 -> 13).

    The built-in round() uses banker's rounding, which would turn a
    one-in-eight topic completion into 12% instead of 13%.
    """
    return math.floor(value + 0.5)


def percentage(earned: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return earned / total * 100


def passed(score_percentage: float, passing_threshold: float) -> bool:
    return score_percentage >= passing_threshold


def days_late(submitted_at: int, due_at: int | None) -> int:
    """Whole days past due, counting any partial day as a full one."""
    if due_at is None or submitted_at <= due_at:
        return 0
    return math.ceil((submitted_at - due_at) / SECONDS_PER_DAY)


def late_penalty(
    days: int, per_day_percent: float, cap: float = LATE_PENALTY_CAP
) -> float:
    if days <= 0 or per_day_percent <= 0:
        return 0.0
    return min(days * per_day_percent, cap)


def final_score(raw_score: float, late_penalty_percent: float) -> float:
    return raw_score - raw_score * late_penalty_percent / 100


def letter_grade(
    final_score_percent: float, bands: Sequence[GradeBand] = GRADE_BANDS
) -> str:
    for band in bands:
        if final_score_percent >= band.min_score:
            return band.grade
    return FALLBACK_GRADE


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def weighted_final_score(
    avg_quiz_score: float,
    avg_assignment_score: float,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> float:
    return avg_quiz_score * weights.quiz + avg_assignment_score * weights.assignment


def progress_percent(completed: int, total: int) -> int:
    """Course or module completion as a whole percentage, capped at 100."""
    if total <= 0:
        return 0
    return min(round_half_up(completed / total * 100), 100)
