"""
Progress aggregator: application layer orchestrator.

Coordinates reading learner records from the stores and deriving the
progress snapshot with the metrics calculator.
"""

import logging
from dataclasses import replace
from datetime import datetime

from lingosrs.domain.models import LearnerProfile, MemoryItem
from lingosrs.domain.ports import LessonProgressStore, MemoryItemStore, ProfileStore
from lingosrs.domain.stats.models import ProgressSnapshot, StudyRecommendations

from .metrics_calculator import MetricsCalculator, apply_streak

logger = logging.getLogger(__name__)


class ProgressAggregator:
    """
    Application service for streaks and summary analytics.

    Follows Dependency Inversion: depends on the store ports,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        items: MemoryItemStore,
        lessons: LessonProgressStore,
        profiles: ProfileStore,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            items: Port for memory items and the review log.
            lessons: Port for lesson progress and completion events.
            profiles: Port for learner profiles.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._items = items
        self._lessons = lessons
        self._profiles = profiles
        self._calc = calculator or MetricsCalculator()

    def record_completion(
        self,
        profile: LearnerProfile,
        items: list[MemoryItem],
        now: datetime,
    ) -> LearnerProfile:
        """
        Profile after one completion event: streak, period counter, mastery.

        Pure; the caller persists the result together with the rest of the batch.
        """
        updated = apply_streak(profile, now)
        return replace(
            updated,
            lessons_completed_this_period=profile.lessons_completed_this_period + 1,
            total_mastered_count=self._calc.mastered_count(items),
        )

    async def aggregate(
        self,
        learner_id: str,
        now: datetime,
        default_profile: LearnerProfile | None = None,
    ) -> ProgressSnapshot:
        """
        Build the learner's progress snapshot from current stored state.

        Args:
            learner_id: Opaque learner id.
            now: Reference time for due counts and the weekly window.
            default_profile: Used when the learner has no stored profile yet.
        """
        profile = await self._profiles.get_profile(learner_id)
        if profile is None:
            profile = default_profile or LearnerProfile(learner_id=learner_id)

        items = list((await self._items.load_items(learner_id)).values())
        completions = await self._lessons.list_completions(learner_id)
        reviews = await self._items.list_reviews(learner_id)

        logger.debug(
            f"Aggregating {learner_id}: items={len(items)} completions={len(completions)} "
            f"reviews={len(reviews)}"
        )
        return self._calc.snapshot(profile, items, completions, reviews, now)

    async def recommend(
        self, learner_id: str, default_profile: LearnerProfile | None = None
    ) -> StudyRecommendations:
        """Study plan from the learner's stored items and streak."""
        profile = await self._profiles.get_profile(learner_id)
        if profile is None:
            profile = default_profile or LearnerProfile(learner_id=learner_id)

        items = list((await self._items.load_items(learner_id)).values())
        plan = self._calc.recommendations(profile, items)
        logger.debug(
            f"Recommendations for {learner_id}: focus={len(plan.focus_areas)} "
            f"skip={len(plan.skip_today)}"
        )
        return plan
