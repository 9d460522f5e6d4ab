"""
Scheduling Service: application layer orchestrator.

Wires the pure algorithms to the learner store for the operations the
surrounding application drives: completions, the due schedule, progress,
study recommendations, daily caps and erasure.
"""

import asyncio
import logging
import weakref
from dataclasses import replace
from datetime import datetime, timezone

from ulid import ULID

from lingosrs.application import fsrs, lesson_scheduler
from lingosrs.application.queue_builder import DueQueueBuilder, SchedulePlan
from lingosrs.application.stats.metrics_calculator import MetricsCalculator
from lingosrs.application.stats.service import ProgressAggregator
from lingosrs.domain.constants import (
    DEFAULT_DAILY_NEW_CAP,
    DEFAULT_DAILY_REVIEW_CAP,
    DEFAULT_RESPONSE_TIME_MS,
    PROGRESS_SAMPLE_SIZE,
)
from lingosrs.domain.errors import InvalidInput
from lingosrs.domain.models import (
    CompletionEvent,
    CompletionResult,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    ReviewLogEntry,
)
from lingosrs.domain.ports import LearnerDataStore
from lingosrs.domain.stats.models import ProgressSnapshot, StudyRecommendations

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(now: datetime | None) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def validate_event(event: CompletionEvent) -> None:
    """Reject a completion event before anything is read or written."""
    if not event.lesson_id:
        raise InvalidInput("lesson_id is required")
    lesson_scheduler.validate_score(event.score)
    if event.time_spent_seconds < 0:
        raise InvalidInput(f"time spent must be >= 0, got {event.time_spent_seconds}")

    seen: set[str] = set()
    for graded in event.item_grades:
        if not graded.unit_id:
            raise InvalidInput("unit_id is required for every graded item")
        if graded.unit_id in seen:
            raise InvalidInput(f"unit {graded.unit_id!r} graded more than once")
        seen.add(graded.unit_id)
        fsrs.validate_grade(graded.grade)
        if graded.response_time_ms is not None and graded.response_time_ms < 0:
            raise InvalidInput(f"response time must be >= 0 for unit {graded.unit_id!r}")


class SchedulingService:
    """
    Entry point for the scheduling core.

    Completion events for the same learner are serialized with a per-learner
    lock; all updates of one event are computed in memory and committed as a
    single batch, so a storage failure leaves nothing half-written.
    """

    def __init__(
        self,
        store: LearnerDataStore,
        default_new_cap: int = DEFAULT_DAILY_NEW_CAP,
        default_review_cap: int = DEFAULT_DAILY_REVIEW_CAP,
        sample_size: int = PROGRESS_SAMPLE_SIZE,
    ):
        self.store = store
        self.default_new_cap = default_new_cap
        self.default_review_cap = default_review_cap
        self.queue_builder = DueQueueBuilder(
            store, store, store, default_new_cap, default_review_cap
        )
        self.aggregator = ProgressAggregator(
            store, store, store, MetricsCalculator(sample_size=sample_size)
        )
        # Entries vanish once no task holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, learner_id: str) -> asyncio.Lock:
        lock = self._locks.get(learner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[learner_id] = lock
        return lock

    def default_profile(self, learner_id: str) -> LearnerProfile:
        return LearnerProfile(
            learner_id=learner_id,
            daily_new_cap=self.default_new_cap,
            daily_review_cap=self.default_review_cap,
        )

    async def submit_completion(
        self,
        learner_id: str,
        event: CompletionEvent,
        now: datetime | None = None,
    ) -> CompletionResult:
        """
        Apply a finished lesson and its item grades.

        Returns the stored result unchanged when `event.completion_id` was
        already processed, so a client may safely resubmit after a failure.

        Raises:
            InvalidInput: on any out-of-contract value; nothing is read or written.
            StorageUnavailable: if the store fails; nothing is persisted.
        """
        validate_event(event)
        now = _aware(now)

        async with self._lock(learner_id):
            if event.completion_id:
                previous = await self.store.get_completion(learner_id, event.completion_id)
                if previous is not None:
                    logger.info(
                        f"Completion {event.completion_id} for {learner_id} already recorded"
                    )
                    return replace(previous, replayed=True)

            items = await self.store.load_items(learner_id)
            progress = await self.store.get_progress(learner_id, event.lesson_id)
            profile = await self.store.get_profile(learner_id)

            reviews: list[ReviewLogEntry] = []
            for graded in event.item_grades:
                response_time = (
                    graded.response_time_ms
                    if graded.response_time_ms is not None
                    else DEFAULT_RESPONSE_TIME_MS
                )
                item = items.get(graded.unit_id)
                if item is None:
                    item = MemoryItem.first_seen(
                        graded.unit_id, learner_id, now, response_time, graded.level
                    )
                elif graded.level and not item.level:
                    item = replace(item, level=graded.level)

                updated = fsrs.update(item, graded.grade, now)
                updated = fsrs.record_response_time(updated, response_time)
                items[graded.unit_id] = updated

                reviews.append(
                    ReviewLogEntry(
                        learner_id=learner_id,
                        unit_id=graded.unit_id,
                        grade=int(graded.grade),
                        reviewed_at=now,
                        response_time_ms=response_time,
                        stability_before=item.stability,
                        stability_after=updated.stability,
                    )
                )

            progress = lesson_scheduler.update(
                progress or LessonProgress(lesson_id=event.lesson_id),
                event.score,
                event.time_spent_seconds,
                now,
            )
            profile = self.aggregator.record_completion(
                profile or self.default_profile(learner_id), list(items.values()), now
            )

            result = CompletionResult(
                completion_id=event.completion_id or str(ULID()),
                progress=progress,
                current_streak=profile.current_streak,
                longest_streak=profile.longest_streak,
                mastered_count=profile.total_mastered_count,
                items_updated=len(event.item_grades),
                completed_at=now,
            )
            await self.store.commit_completion(
                learner_id, items, reviews, progress, profile, result
            )

        logger.info(
            f"Completion {result.completion_id} learner={learner_id} lesson={event.lesson_id} "
            f"score={event.score} items={result.items_updated} streak={result.current_streak}"
        )
        return result

    async def get_due_schedule(
        self, learner_id: str, now: datetime | None = None
    ) -> SchedulePlan:
        return await self.queue_builder.build(learner_id, _aware(now))

    async def get_progress(
        self, learner_id: str, now: datetime | None = None
    ) -> ProgressSnapshot:
        return await self.aggregator.aggregate(
            learner_id, _aware(now), default_profile=self.default_profile(learner_id)
        )

    async def get_recommendations(self, learner_id: str) -> StudyRecommendations:
        return await self.aggregator.recommend(
            learner_id, default_profile=self.default_profile(learner_id)
        )

    async def set_daily_caps(
        self,
        learner_id: str,
        daily_new_cap: int | None = None,
        daily_review_cap: int | None = None,
    ) -> LearnerProfile:
        """Change the learner's advisory daily caps; unspecified caps are kept."""
        for name, value in (("daily_new_cap", daily_new_cap), ("daily_review_cap", daily_review_cap)):
            if value is not None and value < 0:
                raise InvalidInput(f"{name} must be >= 0, got {value}")

        async with self._lock(learner_id):
            profile = await self.store.get_profile(learner_id) or self.default_profile(learner_id)
            if daily_new_cap is not None:
                profile = replace(profile, daily_new_cap=daily_new_cap)
            if daily_review_cap is not None:
                profile = replace(profile, daily_review_cap=daily_review_cap)
            await self.store.save_profile(profile)
        return profile

    async def erase_learner(self, learner_id: str) -> int:
        async with self._lock(learner_id):
            return await self.store.erase_learner(learner_id)
