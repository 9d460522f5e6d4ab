"""
Domain models for learner progress statistics.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import date, datetime

from ..models import DifficultyTrend, MemoryItem


@dataclass(frozen=True)
class DayActivity:
    """
    Activity on one calendar day (UTC).

    Attributes:
        lessons: Completion events on this day, repeats of a lesson included.
        reviews: Graded items logged on this day.
    """

    day: date
    lessons: int
    reviews: int


@dataclass(frozen=True)
class ItemCounts:
    total: int
    mastered: int
    learning: int
    new: int
    due: int
    lapse_rate: float


@dataclass
class ProgressSnapshot:
    """
    Learner-facing statistics derived from stored review history.

    This is the rich domain object returned by the progress aggregator.
    """

    learner_id: str
    generated_at: datetime

    current_streak: int
    longest_streak: int
    last_activity_at: datetime | None
    lessons_completed_this_period: int
    total_mastered_count: int
    current_level: str

    items: ItemCounts
    level_distribution: dict[str, int]
    weekly_activity: list[DayActivity]

    daily_new_cap: int
    daily_review_cap: int

    # Raw records, capped, for diagnostics
    item_sample: list[MemoryItem] = field(default_factory=list)


@dataclass(frozen=True)
class StudyRecommendations:
    """
    Study plan derived from the learner's weak and strong items.

    Attributes:
        focus_areas: Weak unit ids, weakest first.
        review_first: Units to drill before anything else today.
        skip_today: Well-retained units that can wait.
        suggested_minutes: Session length for working through the focus areas.
        difficulty: Whether lesson difficulty should go up.
        next_level_target: Level tag to aim for after the current one.
        new_words_limit: New units to introduce today.
    """

    learner_id: str
    focus_areas: list[str]
    review_first: list[str]
    skip_today: list[str]
    suggested_minutes: int
    difficulty: DifficultyTrend
    next_level_target: str
    new_words_limit: int
