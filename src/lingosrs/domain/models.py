"""
Domain models for the scheduling core.

These are pure data structures with no I/O or external dependencies.
All timestamps are timezone-aware UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum

from .constants import (
    DEFAULT_DAILY_NEW_CAP,
    DEFAULT_DAILY_REVIEW_CAP,
    DEFAULT_DIFFICULTY,
    DEFAULT_LESSON_INTERVAL_DAYS,
    DEFAULT_LEVEL,
    DEFAULT_RESPONSE_TIME_MS,
    DEFAULT_STABILITY,
    MASTERY_MIN_REPS,
)


class Grade(IntEnum):
    """Recall outcome submitted for a memory item.

    The scale is exactly three values; there is no separate "hard" grade.
    """

    AGAIN = 1
    GOOD = 3
    EASY = 4


class ItemState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class Urgency(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DifficultyTrend(str, Enum):
    MAINTAIN = "maintain"
    INCREASE = "increase"


@dataclass
class MemoryItem:
    """
    FSRS memory state for one learnable unit of one learner.

    Attributes:
        stability: Days-scale decay constant. Always > 0, never capped.
        difficulty: Recall hardness, kept within [0.1, 10].
        reps: Number of grades ever applied.
        lapses: Number of failing grades ever applied.
        level: Optional CEFR tag, used only for analytics bucketing.
    """

    unit_id: str
    learner_id: str
    last_review_at: datetime
    due_at: datetime
    stability: float = DEFAULT_STABILITY
    difficulty: float = DEFAULT_DIFFICULTY
    state: ItemState = ItemState.NEW
    reps: int = 0
    lapses: int = 0
    review_count: int = 0
    average_response_time: float = float(DEFAULT_RESPONSE_TIME_MS)
    level: str | None = None
    created_at: datetime | None = None

    @classmethod
    def first_seen(
        cls,
        unit_id: str,
        learner_id: str,
        now: datetime,
        response_time_ms: int | None = None,
        level: str | None = None,
    ) -> "MemoryItem":
        """Default record for a unit graded for the first time."""
        return cls(
            unit_id=unit_id,
            learner_id=learner_id,
            last_review_at=now,
            due_at=now,
            average_response_time=float(response_time_ms or DEFAULT_RESPONSE_TIME_MS),
            level=level,
            created_at=now,
        )

    @property
    def is_mastered(self) -> bool:
        return self.state == ItemState.REVIEW and self.reps >= MASTERY_MIN_REPS


@dataclass
class LessonProgress:
    """Heuristic review track for one lesson of one learner."""

    lesson_id: str
    last_score: int = 0
    review_interval_days: int = DEFAULT_LESSON_INTERVAL_DAYS
    times_reviewed: int = 0
    total_time_spent_seconds: float = 0.0
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    A single graded review, written once and never mutated.

    Attributes:
        reviewed_at: When the grade was applied.
        response_time_ms: Time the learner took to answer.
        stability_before: Stability prior to this grade.
        stability_after: Stability after this grade.
    """

    learner_id: str
    unit_id: str
    grade: int
    reviewed_at: datetime
    response_time_ms: int
    stability_before: float
    stability_after: float


@dataclass
class LearnerProfile:
    """Per-learner streak counters, mastery summary and daily caps."""

    learner_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_at: datetime | None = None
    lessons_completed_this_period: int = 0
    total_mastered_count: int = 0
    current_level: str = DEFAULT_LEVEL
    daily_new_cap: int = DEFAULT_DAILY_NEW_CAP
    daily_review_cap: int = DEFAULT_DAILY_REVIEW_CAP


@dataclass(frozen=True)
class ItemGrade:
    """One graded unit inside a completion event."""

    unit_id: str
    grade: int
    response_time_ms: int | None = None
    level: str | None = None


@dataclass(frozen=True)
class CompletionEvent:
    """A finished lesson with its batch of per-item grades."""

    lesson_id: str
    score: int
    time_spent_seconds: float
    item_grades: list[ItemGrade] = field(default_factory=list)
    completion_id: str | None = None


@dataclass
class CompletionResult:
    """Outcome of a processed completion event."""

    completion_id: str
    progress: LessonProgress
    current_streak: int
    longest_streak: int
    mastered_count: int
    items_updated: int
    completed_at: datetime | None = None
    replayed: bool = False
