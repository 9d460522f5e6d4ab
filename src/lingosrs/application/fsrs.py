"""
FSRS updater for per-item memory state.

Pure computation, no I/O. Given the previous state of a memory item, a grade
and the current time, returns the next state:

1. Failing grades shrink stability, raise difficulty and count a lapse
2. The first pass of a new item seeds stability from the weight vector
3. Later passes grow stability by the retrievability-weighted FSRS gain
4. The next due date is `stability` days out rounded half up, at least one
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta

from lingosrs.domain.constants import (
    DECAY_FACTOR,
    EASY_BONUS,
    FSRS_WEIGHTS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_STABILITY,
)
from lingosrs.domain.errors import InvalidInput
from lingosrs.domain.models import Grade, ItemState, MemoryItem

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
VALID_GRADES = frozenset(int(g) for g in Grade)


def validate_grade(grade: int) -> Grade:
    """Coerce a raw grade into the three-value scale or fail fast."""
    if isinstance(grade, bool) or grade not in VALID_GRADES:
        raise InvalidInput(f"grade must be one of {sorted(VALID_GRADES)}, got {grade!r}")
    return Grade(grade)


def elapsed_days(since: datetime, now: datetime) -> float:
    """Days between two timestamps, never negative."""
    return max(0.0, (now - since).total_seconds() / SECONDS_PER_DAY)


def retrievability(stability: float, days: float) -> float:
    """
    Estimated probability of recall after `days` days.

    R = (1 + t / (9 * S))^-1
    """
    return 1.0 / (1.0 + days / (DECAY_FACTOR * stability))


def interval_days(stability: float) -> int:
    # Half days round up
    return max(1, math.floor(stability + 0.5))


def current_retrievability(item: MemoryItem, now: datetime) -> float:
    return retrievability(item.stability, elapsed_days(item.last_review_at, now))


def update(
    item: MemoryItem,
    grade: int,
    now: datetime,
    weights: tuple[float, ...] = FSRS_WEIGHTS,
) -> MemoryItem:
    """
    Apply one grade to a memory item.

    Args:
        item: Previous state. Not mutated.
        grade: 1 (again), 3 (good) or 4 (easy).
        now: Time the grade was given.
        weights: FSRS weight vector w[0..16].

    Returns:
        A new MemoryItem with stability, difficulty, state, counters and
        due date updated.

    Raises:
        InvalidInput: if grade is not on the scale.
    """
    g = validate_grade(grade)
    w = weights

    stability = item.stability
    difficulty = item.difficulty
    state = item.state
    lapses = item.lapses

    if g < Grade.GOOD:
        lapses += 1
        state = ItemState.RELEARNING
        stability = max(stability * w[11], MIN_STABILITY)
        difficulty = min(difficulty + w[6], MAX_DIFFICULTY)
    elif state == ItemState.NEW:
        state = ItemState.LEARNING
        stability = w[int(g) - 3]
    else:
        r = retrievability(stability, elapsed_days(item.last_review_at, now))
        difficulty = min(MAX_DIFFICULTY, max(MIN_DIFFICULTY, difficulty + w[7] * (int(g) - 3)))
        stability = stability * (
            1
            + math.exp(w[8])
            * (11 - difficulty)
            * math.pow(stability, -w[9])
            * (math.exp((1 - r) * w[10]) - 1)
        )
        if g == Grade.EASY:
            stability *= EASY_BONUS
        state = ItemState.REVIEW

    days = interval_days(stability)
    logger.debug(
        f"fsrs unit={item.unit_id} grade={int(g)} {item.state.value}->{state.value} "
        f"S={item.stability:.3f}->{stability:.3f} interval={days}d"
    )

    return replace(
        item,
        stability=stability,
        difficulty=difficulty,
        state=state,
        reps=item.reps + 1,
        lapses=lapses,
        last_review_at=now,
        due_at=now + timedelta(days=days),
    )


def record_response_time(item: MemoryItem, response_time_ms: int) -> MemoryItem:
    """Fold one response time into the item's running average."""
    count = item.review_count + 1
    average = (item.average_response_time * (count - 1) + response_time_ms) / count
    return replace(item, review_count=count, average_response_time=average)
