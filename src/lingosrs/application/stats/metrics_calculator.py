"""
Metrics calculator for streaks and progress analytics.

This is a pure computation module with no I/O.
"""

import math
from dataclasses import replace
from datetime import date, datetime, timedelta

from lingosrs.domain.constants import (
    FOCUS_AREA_LIMIT,
    INCREASE_DIFFICULTY_STREAK,
    LEVELS,
    MAX_STUDY_MINUTES,
    MIN_STUDY_MINUTES,
    MINUTES_PER_FOCUS_AREA,
    NEW_WORDS_LIMIT,
    NEW_WORDS_LIMIT_ON_STREAK,
    NEW_WORDS_STREAK,
    PROGRESS_SAMPLE_SIZE,
    REVIEW_FIRST_LIMIT,
    SKIP_TODAY_LIMIT,
    STRONG_ITEM_MIN_STABILITY,
    WEAK_ITEM_MIN_LAPSES,
    WEAK_ITEM_RESPONSE_MS,
    WEEKLY_WINDOW_DAYS,
)
from lingosrs.domain.models import (
    CompletionResult,
    DifficultyTrend,
    ItemState,
    LearnerProfile,
    MemoryItem,
    ReviewLogEntry,
)
from lingosrs.domain.stats.models import (
    DayActivity,
    ItemCounts,
    ProgressSnapshot,
    StudyRecommendations,
)

SECONDS_PER_DAY = 86400


def days_since(last: datetime, now: datetime) -> int:
    return math.floor((now - last).total_seconds() / SECONDS_PER_DAY)


def apply_streak(profile: LearnerProfile, now: datetime) -> LearnerProfile:
    """
    Advance the streak for one completion event at `now`.

    Measured against the activity recorded *before* this event:
    - same day (< 24h): unchanged, so repeat completions never double count
    - next day (24h..48h): +1
    - any longer gap, or no prior activity: restart at 1
    """
    if profile.last_activity_at is None:
        streak = 1
    else:
        gap = days_since(profile.last_activity_at, now)
        if gap <= 1:
            streak = profile.current_streak + (1 if gap == 1 else 0)
        else:
            streak = 1

    return replace(
        profile,
        current_streak=streak,
        longest_streak=max(profile.longest_streak, streak),
        last_activity_at=now,
    )


def next_level(level: str) -> str:
    """The level after `level`. The top level stays put and an unknown tag maps to the first level."""
    if level not in LEVELS:
        return LEVELS[0]
    return LEVELS[min(LEVELS.index(level) + 1, len(LEVELS) - 1)]


class MetricsCalculator:
    """
    Computes progress analytics from raw learner records.

    Stateless and side-effect free.
    """

    def __init__(self, sample_size: int = PROGRESS_SAMPLE_SIZE):
        self.sample_size = sample_size

    def mastered_count(self, items: list[MemoryItem]) -> int:
        return sum(1 for item in items if item.is_mastered)

    def item_counts(self, items: list[MemoryItem], now: datetime) -> ItemCounts:
        total = len(items)
        lapse_rate = sum(item.lapses for item in items) / total if total else 0.0
        return ItemCounts(
            total=total,
            mastered=self.mastered_count(items),
            learning=sum(1 for item in items if item.state == ItemState.LEARNING),
            new=sum(1 for item in items if item.state == ItemState.NEW),
            due=sum(1 for item in items if item.due_at <= now),
            # Two decimals, halves rounded up
            lapse_rate=math.floor(lapse_rate * 100 + 0.5) / 100,
        )

    def level_distribution(self, items: list[MemoryItem]) -> dict[str, int]:
        """Mastered items per level tag; every known level is present."""
        buckets = {level: 0 for level in LEVELS}
        for item in items:
            if item.is_mastered and item.level:
                buckets[item.level] = buckets.get(item.level, 0) + 1
        return buckets

    def weak_items(self, items: list[MemoryItem]) -> list[MemoryItem]:
        """Items lapsing often or answered slowly, weakest first."""
        weak = [
            item
            for item in items
            if item.lapses > WEAK_ITEM_MIN_LAPSES
            or item.average_response_time > WEAK_ITEM_RESPONSE_MS
        ]
        weak.sort(key=lambda item: item.lapses + item.average_response_time / 1000, reverse=True)
        return weak[:FOCUS_AREA_LIMIT]

    def strong_items(self, items: list[MemoryItem]) -> list[MemoryItem]:
        return [
            item
            for item in items
            if item.state == ItemState.REVIEW
            and item.stability > STRONG_ITEM_MIN_STABILITY
            and item.lapses == 0
        ]

    def recommendations(
        self, profile: LearnerProfile, items: list[MemoryItem]
    ) -> StudyRecommendations:
        weak = [item.unit_id for item in self.weak_items(items)]
        strong = [item.unit_id for item in self.strong_items(items)]
        streak = profile.current_streak
        return StudyRecommendations(
            learner_id=profile.learner_id,
            focus_areas=weak,
            review_first=weak[:REVIEW_FIRST_LIMIT],
            skip_today=strong[:SKIP_TODAY_LIMIT],
            suggested_minutes=min(
                MAX_STUDY_MINUTES, max(MIN_STUDY_MINUTES, len(weak) * MINUTES_PER_FOCUS_AREA)
            ),
            difficulty=(
                DifficultyTrend.INCREASE
                if streak > INCREASE_DIFFICULTY_STREAK
                else DifficultyTrend.MAINTAIN
            ),
            next_level_target=next_level(profile.current_level),
            new_words_limit=NEW_WORDS_LIMIT_ON_STREAK if streak > NEW_WORDS_STREAK else NEW_WORDS_LIMIT,
        )

    def weekly_activity(
        self,
        completions: list[CompletionResult],
        reviews: list[ReviewLogEntry],
        now: datetime,
    ) -> list[DayActivity]:
        """Trailing seven calendar days, oldest first, today last."""
        today = now.date()
        days = [today - timedelta(days=i) for i in range(WEEKLY_WINDOW_DAYS - 1, -1, -1)]
        lesson_days: dict[date, int] = {d: 0 for d in days}
        review_days: dict[date, int] = {d: 0 for d in days}

        for completion in completions:
            if completion.completed_at is not None:
                d = completion.completed_at.date()
                if d in lesson_days:
                    lesson_days[d] += 1

        for entry in reviews:
            d = entry.reviewed_at.date()
            if d in review_days:
                review_days[d] += 1

        return [DayActivity(day=d, lessons=lesson_days[d], reviews=review_days[d]) for d in days]

    def snapshot(
        self,
        profile: LearnerProfile,
        items: list[MemoryItem],
        completions: list[CompletionResult],
        reviews: list[ReviewLogEntry],
        now: datetime,
    ) -> ProgressSnapshot:
        return ProgressSnapshot(
            learner_id=profile.learner_id,
            generated_at=now,
            current_streak=profile.current_streak,
            longest_streak=profile.longest_streak,
            last_activity_at=profile.last_activity_at,
            lessons_completed_this_period=profile.lessons_completed_this_period,
            total_mastered_count=profile.total_mastered_count,
            current_level=profile.current_level,
            items=self.item_counts(items, now),
            level_distribution=self.level_distribution(items),
            weekly_activity=self.weekly_activity(completions, reviews, now),
            daily_new_cap=profile.daily_new_cap,
            daily_review_cap=profile.daily_review_cap,
            item_sample=items[: self.sample_size],
        )
