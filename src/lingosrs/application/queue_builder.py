"""
Queue builder for daily study plans.

Builds the plan by:
1. Wrapping memory items and lesson progress records as schedulables
2. Keeping whatever is due at `now`
3. Ordering due lessons (high priority first, then soonest due)
4. Computing advisory caps, time estimate and urgency tier

The caps are reported, not enforced: callers decide how much work to pull.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from lingosrs.domain.constants import (
    HIGH_DUE_ITEMS,
    ITEM_REVIEW_SECONDS,
    LESSON_REVIEW_SECONDS,
    URGENT_DUE_ITEMS,
)
from lingosrs.domain.models import (
    ItemState,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    Priority,
    Urgency,
)
from lingosrs.domain.ports import LessonProgressStore, MemoryItemStore, ProfileStore
from lingosrs.domain.schedulable import ItemSchedule, LessonSchedule, Schedulable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueLesson:
    lesson_id: str
    next_review_at: datetime
    last_score: int
    priority: Priority


@dataclass
class SchedulePlan:
    """Result of queue building."""

    due_lessons: list[DueLesson]  # High priority first, then soonest due
    due_item_ids: list[str]  # No guaranteed order
    new_cards_today: int  # min(daily_new_cap, items in state new)
    reviews_due_today: int  # min(daily_review_cap, due items)
    estimated_minutes: int
    urgency: Urgency
    daily_new_cap: int
    daily_review_cap: int
    new_item_count: int = 0
    generated_at: datetime | None = None
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def due_item_count(self) -> int:
        return len(self.due_item_ids)


def as_schedulables(
    items: list[MemoryItem], lessons: list[LessonProgress]
) -> list[Schedulable]:
    schedulables: list[Schedulable] = [ItemSchedule(item) for item in items]
    schedulables.extend(LessonSchedule(progress) for progress in lessons)
    return schedulables


def urgency_for(due_items: int) -> Urgency:
    if due_items > URGENT_DUE_ITEMS:
        return Urgency.URGENT
    if due_items > HIGH_DUE_ITEMS:
        return Urgency.HIGH
    return Urgency.NORMAL


def estimate_minutes(due_items: int, due_lessons: int) -> int:
    seconds = due_items * ITEM_REVIEW_SECONDS + due_lessons * LESSON_REVIEW_SECONDS
    return math.ceil(seconds / 60)


def build_plan(
    schedulables: list[Schedulable],
    profile: LearnerProfile,
    now: datetime,
) -> SchedulePlan:
    """
    Merge both scheduling tracks into one plan.

    Args:
        schedulables: Items and lessons, in any order.
        profile: Supplies the daily caps.
        now: Anything due at or before this instant is included.

    Returns:
        SchedulePlan with due lessons sorted and advisory counts.
    """
    due = [s for s in schedulables if s.is_due(now)]

    due_items = [s for s in due if isinstance(s, ItemSchedule)]
    due_lessons = [s for s in due if isinstance(s, LessonSchedule)]

    due_lessons.sort(
        key=lambda s: (s.priority != Priority.HIGH, s.due_at, s.key)
    )

    new_items = sum(
        1
        for s in schedulables
        if isinstance(s, ItemSchedule) and s.item.state == ItemState.NEW
    )

    plan = SchedulePlan(
        due_lessons=[
            DueLesson(
                lesson_id=s.key,
                next_review_at=s.due_at,
                last_score=s.progress.last_score,
                priority=s.priority,
            )
            for s in due_lessons
        ],
        due_item_ids=[s.key for s in due_items],
        new_cards_today=min(profile.daily_new_cap, new_items),
        reviews_due_today=min(profile.daily_review_cap, len(due_items)),
        estimated_minutes=estimate_minutes(len(due_items), len(due_lessons)),
        urgency=urgency_for(len(due_items)),
        daily_new_cap=profile.daily_new_cap,
        daily_review_cap=profile.daily_review_cap,
        new_item_count=new_items,
        generated_at=now,
        summary={
            "total_due": len(due_items) + len(due_lessons),
            "lessons": len(due_lessons),
            "items": len(due_items),
            "new_items": new_items,
        },
    )

    logger.debug(
        f"Plan for {profile.learner_id}: items={len(due_items)} lessons={len(due_lessons)} "
        f"urgency={plan.urgency.value}"
    )
    return plan


class DueQueueBuilder:
    """
    Reads current store state and builds the learner's plan on demand.

    Nothing is pre-materialized; every call recomputes from stored records.
    A learner without a profile gets the configured default caps.
    """

    def __init__(
        self,
        items: MemoryItemStore,
        lessons: LessonProgressStore,
        profiles: ProfileStore,
        default_new_cap: int,
        default_review_cap: int,
    ):
        self._items = items
        self._lessons = lessons
        self._profiles = profiles
        self._default_new_cap = default_new_cap
        self._default_review_cap = default_review_cap

    async def build(self, learner_id: str, now: datetime) -> SchedulePlan:
        profile = await self._profiles.get_profile(learner_id)
        if profile is None:
            profile = LearnerProfile(
                learner_id=learner_id,
                daily_new_cap=self._default_new_cap,
                daily_review_cap=self._default_review_cap,
            )
        items = await self._items.load_items(learner_id)
        lessons = await self._lessons.list_progress(learner_id)
        return build_plan(as_schedulables(list(items.values()), lessons), profile, now)
