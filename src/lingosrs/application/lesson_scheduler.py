"""Heuristic interval scheduler for whole lessons."""

import math
from dataclasses import replace
from datetime import datetime, timedelta

from lingosrs.domain.constants import (
    LESSON_BASE_MULTIPLIER,
    LESSON_MULTIPLIER_BANDS,
    MAX_SCORE,
    MIN_SCORE,
)
from lingosrs.domain.errors import InvalidInput
from lingosrs.domain.models import LessonProgress


def validate_score(score: int) -> int:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise InvalidInput(f"score must be a number, got {score!r}")
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidInput(f"score must be within {MIN_SCORE}..{MAX_SCORE}, got {score}")
    return score


def multiplier_for(score: float) -> float:
    for threshold, multiplier in LESSON_MULTIPLIER_BANDS:
        if score >= threshold:
            return multiplier
    return LESSON_BASE_MULTIPLIER


def update(
    progress: LessonProgress,
    score: int,
    time_spent_seconds: float,
    now: datetime,
) -> LessonProgress:
    """
    Stretch the lesson's review interval by a score-banded multiplier.

    The interval only ever grows (every multiplier is > 1); a poor score grows
    it slowly rather than resetting it.
    """
    validate_score(score)
    if time_spent_seconds < 0:
        raise InvalidInput(f"time spent must be >= 0, got {time_spent_seconds}")

    interval = math.ceil(progress.review_interval_days * multiplier_for(score))
    return replace(
        progress,
        last_score=score,
        review_interval_days=interval,
        times_reviewed=progress.times_reviewed + 1,
        total_time_spent_seconds=progress.total_time_spent_seconds + time_spent_seconds,
        next_review_at=now + timedelta(days=interval),
        last_reviewed_at=now,
    )
