from dataclasses import replace
from datetime import date, timedelta

import pytest

from lingosrs.application.stats.metrics_calculator import (
    MetricsCalculator,
    apply_streak,
    days_since,
    next_level,
)
from lingosrs.application.stats.service import ProgressAggregator
from lingosrs.domain.models import (
    CompletionResult,
    DifficultyTrend,
    ItemState,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    ReviewLogEntry,
)
from lingosrs.infrastructure import records
from lingosrs.infrastructure.learner_store import (
    completion_key,
    items_key,
    profile_key,
    review_key,
)


@pytest.fixture
def calculator():
    return MetricsCalculator()


def item(unit_id, now, state=ItemState.REVIEW, reps=0, lapses=0, level=None, due=None):
    return MemoryItem(
        unit_id, "u1", now, due or now + timedelta(days=1),
        state=state, reps=reps, lapses=lapses, level=level,
    )


def review(unit_id, at):
    return ReviewLogEntry("u1", unit_id, 3, at, 2000, 0.4, 1.2)


def completion(completion_id, at):
    return CompletionResult(completion_id, LessonProgress("l1"), 1, 1, 0, 1, completed_at=at)


class TestStreak:
    def test_gap_of_three_days_resets(self, now):
        profile = LearnerProfile(
            "u1", current_streak=9, longest_streak=9, last_activity_at=now - timedelta(days=3)
        )
        updated = apply_streak(profile, now)

        assert updated.current_streak == 1
        assert updated.longest_streak == 9
        assert updated.last_activity_at == now

    def test_next_day_extends(self, now):
        profile = LearnerProfile(
            "u1", current_streak=4, longest_streak=4, last_activity_at=now - timedelta(hours=30)
        )
        updated = apply_streak(profile, now)

        assert updated.current_streak == 5
        assert updated.longest_streak == 5

    def test_same_day_does_not_double_count(self, now):
        profile = LearnerProfile("u1", current_streak=4, longest_streak=6, last_activity_at=now)
        once = apply_streak(profile, now + timedelta(hours=1))
        twice = apply_streak(once, now + timedelta(hours=2))

        assert once.current_streak == 4
        assert twice.current_streak == 4
        assert twice.longest_streak == 6

    def test_first_activity_starts_at_one(self, now):
        updated = apply_streak(LearnerProfile("u1"), now)
        assert updated.current_streak == 1
        assert updated.longest_streak == 1

    def test_days_since_floors(self, now):
        assert days_since(now - timedelta(hours=47), now) == 1
        assert days_since(now - timedelta(hours=48), now) == 2
        assert days_since(now - timedelta(minutes=1), now) == 0


class TestItemAnalytics:
    def test_item_counts(self, calculator, now):
        items = [
            item("a", now, reps=5, lapses=1),
            item("b", now, reps=2, lapses=2, due=now - timedelta(hours=1)),
            item("c", now, state=ItemState.LEARNING, reps=1),
            item("d", now, state=ItemState.NEW, due=now),
        ]
        counts = calculator.item_counts(items, now)

        assert counts.total == 4
        assert counts.mastered == 1
        assert counts.learning == 1
        assert counts.new == 1
        assert counts.due == 2
        assert counts.lapse_rate == 0.75

    def test_lapse_rate_rounds_half_up(self, calculator, now):
        items = [item("a", now, lapses=1)] + [item(f"x{i}", now) for i in range(7)]
        assert calculator.item_counts(items, now).lapse_rate == 0.13

    def test_item_counts_empty(self, calculator, now):
        counts = calculator.item_counts([], now)
        assert counts.total == 0
        assert counts.lapse_rate == 0.0

    def test_level_distribution_counts_mastered_only(self, calculator, now):
        items = [
            item("a", now, reps=6, level="A1"),
            item("b", now, reps=6, level="A1"),
            item("c", now, reps=6, level="B2"),
            item("d", now, reps=1, level="B2"),
            item("e", now, reps=8),
        ]
        dist = calculator.level_distribution(items)

        assert dist == {"A1": 2, "A2": 0, "B1": 0, "B2": 1, "C1": 0, "C2": 0}

    def test_weekly_activity_window(self, calculator, now):
        completions = [
            completion("c1", now),
            completion("c2", now - timedelta(hours=1)),
            completion("c3", now - timedelta(days=2)),
            completion("c4", now - timedelta(days=30)),
            completion("c5", None),
        ]
        reviews = [
            review("a", now),
            review("b", now),
            review("a", now - timedelta(days=6)),
            review("a", now - timedelta(days=7)),
        ]

        week = calculator.weekly_activity(completions, reviews, now)

        assert len(week) == 7
        assert week[0].day == now.date() - timedelta(days=6)
        assert week[-1].day == now.date()
        # Repeat completions of the same lesson count separately
        assert (week[-1].lessons, week[-1].reviews) == (2, 2)
        assert week[4].lessons == 1
        assert week[0].reviews == 1
        assert sum(d.reviews for d in week) == 3

    def test_snapshot_samples_items(self, now):
        calc = MetricsCalculator(sample_size=2)
        items = [item(str(i), now) for i in range(5)]
        snap = calc.snapshot(LearnerProfile("u1", current_streak=3), items, [], [], now)

        assert len(snap.item_sample) == 2
        assert snap.current_streak == 3
        assert snap.generated_at == now
        assert snap.weekly_activity[-1].day == date(2024, 3, 4)


class TestRecommendations:
    def test_weak_items_ranked_by_lapses_and_slowness(self, calculator, now):
        items = [
            item("ok", now, lapses=1),
            replace(item("slow", now), average_response_time=8000),
            item("lapsing", now, lapses=3),
            replace(item("both", now, lapses=4), average_response_time=6000),
        ]

        # both: 4 + 6, slow: 0 + 8, lapsing: 3 + 3
        assert [i.unit_id for i in calculator.weak_items(items)] == ["both", "slow", "lapsing"]

    def test_focus_areas_capped_at_five(self, calculator, now):
        items = [item(f"w{i}", now, lapses=3 + i) for i in range(7)]
        plan = calculator.recommendations(LearnerProfile("u1"), items)

        assert plan.focus_areas == ["w6", "w5", "w4", "w3", "w2"]
        assert plan.review_first == ["w6", "w5", "w4"]
        assert plan.suggested_minutes == 10

    def test_strong_items_skipped_today(self, calculator, now):
        strong = [replace(item(f"s{i}", now), stability=12.0) for i in range(3)]
        lapsed = replace(item("lapsed", now, lapses=1), stability=30.0)
        learning = replace(item("learning", now, state=ItemState.LEARNING), stability=30.0)

        plan = calculator.recommendations(LearnerProfile("u1"), [lapsed, learning, *strong])

        assert plan.skip_today == ["s0", "s1"]
        assert plan.focus_areas == []
        assert plan.suggested_minutes == 5

    @pytest.mark.parametrize(
        "streak, difficulty, new_words",
        [
            (0, DifficultyTrend.MAINTAIN, 15),
            (5, DifficultyTrend.MAINTAIN, 15),
            (6, DifficultyTrend.MAINTAIN, 25),
            (8, DifficultyTrend.INCREASE, 25),
        ],
    )
    def test_streak_drives_difficulty_and_new_words(self, calculator, streak, difficulty, new_words):
        plan = calculator.recommendations(LearnerProfile("u1", current_streak=streak), [])

        assert plan.difficulty == difficulty
        assert plan.new_words_limit == new_words

    @pytest.mark.parametrize(
        "level, target", [("A1", "A2"), ("A2", "B1"), ("B2", "C1"), ("C2", "C2"), ("X9", "A1")]
    )
    def test_next_level(self, level, target):
        assert next_level(level) == target


class TestProgressAggregator:
    def test_record_completion_updates_profile(self, store, now):
        agg = ProgressAggregator(store, store, store)
        profile = LearnerProfile(
            "u1", current_streak=2, longest_streak=2,
            last_activity_at=now - timedelta(days=1), lessons_completed_this_period=4,
        )
        items = [item("a", now, reps=5), item("b", now, reps=1)]

        updated = agg.record_completion(profile, items, now)

        assert updated.current_streak == 3
        assert updated.lessons_completed_this_period == 5
        assert updated.total_mastered_count == 1
        # Input untouched
        assert profile.current_streak == 2

    @pytest.mark.asyncio
    async def test_aggregate_reads_store(self, store, now):
        agg = ProgressAggregator(store, store, store)
        stored_review = review("a", now - timedelta(days=1))
        await store.kv.mset(
            {
                profile_key("u1"): records.encode_profile(
                    LearnerProfile("u1", current_streak=5, total_mastered_count=1)
                ),
                items_key("u1"): records.encode_items([item("a", now, reps=5, level="A2")]),
                review_key("u1", stored_review): records.encode_review(stored_review),
                completion_key("u1", "c1"): records.encode_completion(
                    completion("c1", now - timedelta(days=3))
                ),
            }
        )

        snap = await agg.aggregate("u1", now)

        assert snap.current_streak == 5
        assert snap.items.total == 1
        assert snap.level_distribution["A2"] == 1
        assert snap.weekly_activity[-2].reviews == 1
        assert snap.weekly_activity[-4].lessons == 1

    @pytest.mark.asyncio
    async def test_aggregate_unknown_learner_uses_default(self, store, now):
        agg = ProgressAggregator(store, store, store)
        snap = await agg.aggregate(
            "ghost", now, default_profile=LearnerProfile("ghost", daily_new_cap=3)
        )

        assert snap.current_streak == 0
        assert snap.items.total == 0
        assert snap.daily_new_cap == 3
        assert [d.lessons for d in snap.weekly_activity] == [0] * 7

    @pytest.mark.asyncio
    async def test_recommend_reads_items_and_streak(self, store, now):
        agg = ProgressAggregator(store, store, store)
        await store.kv.mset(
            {
                profile_key("u1"): records.encode_profile(
                    LearnerProfile("u1", current_streak=9, current_level="A2")
                ),
                items_key("u1"): records.encode_items(
                    [item("hard", now, lapses=3), replace(item("easy", now), stability=20.0)]
                ),
            }
        )

        plan = await agg.recommend("u1")

        assert plan.focus_areas == ["hard"]
        assert plan.skip_today == ["easy"]
        assert plan.difficulty == DifficultyTrend.INCREASE
        assert plan.next_level_target == "B1"
