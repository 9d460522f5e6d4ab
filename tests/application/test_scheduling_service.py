import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from lingosrs.application.scheduling_service import SchedulingService, validate_event
from lingosrs.domain.errors import InvalidInput, StorageUnavailable
from lingosrs.domain.models import CompletionEvent, ItemGrade, ItemState


def event(lesson_id="greetings-1", score=85, grades=(), completion_id=None, time_spent=120):
    return CompletionEvent(
        lesson_id=lesson_id,
        score=score,
        time_spent_seconds=time_spent,
        item_grades=[ItemGrade(*g) if isinstance(g, tuple) else g for g in grades],
        completion_id=completion_id,
    )


class TestSubmitCompletion:
    @pytest.mark.asyncio
    async def test_first_completion_creates_records(self, service, store, now):
        result = await service.submit_completion(
            "u1", event(grades=[("hola", 3), ("adios", 1)]), now
        )

        assert result.items_updated == 2
        assert result.current_streak == 1
        assert result.progress.review_interval_days == 3
        assert result.progress.next_review_at == now + timedelta(days=3)
        assert not result.replayed
        assert result.completion_id

        items = await store.load_items("u1")
        assert items["hola"].state == ItemState.LEARNING
        assert items["adios"].state == ItemState.RELEARNING
        assert items["adios"].lapses == 1

        reviews = await store.list_reviews("u1")
        assert {r.unit_id for r in reviews} == {"hola", "adios"}
        assert all(r.stability_before == pytest.approx(0.4) for r in reviews)

        profile = await store.get_profile("u1")
        assert profile.lessons_completed_this_period == 1
        assert profile.last_activity_at == now

    @pytest.mark.asyncio
    async def test_response_time_and_level_recorded(self, service, store, now):
        await service.submit_completion(
            "u1", event(grades=[ItemGrade("hola", 3, response_time_ms=1200, level="A1")]), now
        )
        item = (await store.load_items("u1"))["hola"]

        assert item.review_count == 1
        assert item.average_response_time == pytest.approx(1200)
        assert item.level == "A1"

    @pytest.mark.asyncio
    async def test_same_day_completions_keep_streak(self, service, store, now):
        await service.submit_completion("u1", event(), now)
        result = await service.submit_completion("u1", event(), now + timedelta(hours=2))

        assert result.current_streak == 1
        assert (await store.get_profile("u1")).lessons_completed_this_period == 2

    @pytest.mark.asyncio
    async def test_streak_grows_on_consecutive_days(self, service, now):
        for day in range(3):
            result = await service.submit_completion("u1", event(), now + timedelta(days=day))
        assert result.current_streak == 3
        assert result.longest_streak == 3

    @pytest.mark.asyncio
    async def test_other_items_untouched(self, service, store, now):
        await service.submit_completion("u1", event(grades=[("a", 3), ("b", 3)]), now)
        before = (await store.load_items("u1"))["b"]

        await service.submit_completion("u1", event(grades=[("a", 4)]), now + timedelta(days=1))
        after = await store.load_items("u1")

        assert after["b"] == before
        assert after["a"].reps == 2

    @pytest.mark.asyncio
    async def test_learners_isolated(self, service, store, now):
        await service.submit_completion("u1", event(grades=[("a", 3)]), now)
        await service.submit_completion("u2", event(grades=[("a", 1)]), now)

        assert (await store.load_items("u1"))["a"].lapses == 0
        assert (await store.load_items("u2"))["a"].lapses == 1


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_resubmission_is_replayed(self, service, store, now):
        first = await service.submit_completion(
            "u1", event(grades=[("a", 3)], completion_id="c-1"), now
        )
        second = await service.submit_completion(
            "u1", event(grades=[("a", 3)], completion_id="c-1"), now + timedelta(minutes=5)
        )

        assert second.replayed
        assert second.completion_id == "c-1"
        assert second.progress == first.progress
        items = await store.load_items("u1")
        assert items["a"].reps == 1
        assert len(await store.list_reviews("u1")) == 1
        assert (await store.get_profile("u1")).lessons_completed_this_period == 1

    @pytest.mark.asyncio
    async def test_generated_ids_are_distinct(self, service, now):
        a = await service.submit_completion("u1", event(), now)
        b = await service.submit_completion("u1", event(), now)
        assert a.completion_id != b.completion_id


class TestFailures:
    @pytest.mark.asyncio
    async def test_invalid_grade_writes_nothing(self, service, kv, now):
        with pytest.raises(InvalidInput):
            await service.submit_completion("u1", event(grades=[("a", 3), ("b", 2)]), now)
        assert kv.data == {}

    @pytest.mark.asyncio
    async def test_storage_failure_leaves_no_partial_state(self, service, kv, now):
        await service.submit_completion("u1", event(grades=[("a", 3)]), now)
        snapshot = dict(kv.data)

        kv.mset = AsyncMock(side_effect=StorageUnavailable("disk gone"))
        with pytest.raises(StorageUnavailable):
            await service.submit_completion(
                "u1", event(grades=[("a", 1), ("b", 3)]), now + timedelta(days=1)
            )

        assert kv.data == snapshot

    @pytest.mark.asyncio
    async def test_invalid_learner_id(self, service, now):
        with pytest.raises(InvalidInput):
            await service.submit_completion("bad:id", event(), now)

    @pytest.mark.parametrize(
        "bad",
        [
            event(score=101),
            event(score=-1),
            event(lesson_id=""),
            event(time_spent=-1),
            event(grades=[("a", 3), ("a", 4)]),
            event(grades=[("", 3)]),
            event(grades=[ItemGrade("a", 3, response_time_ms=-10)]),
            event(grades=[("a", 0)]),
        ],
    )
    def test_validate_event_rejects(self, bad):
        with pytest.raises(InvalidInput):
            validate_event(bad)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_completions_serialized(self, service, store, now):
        await asyncio.gather(
            *(
                service.submit_completion("u1", event(grades=[(f"w{i}", 3)]), now)
                for i in range(10)
            )
        )

        items = await store.load_items("u1")
        assert len(items) == 10
        profile = await store.get_profile("u1")
        assert profile.lessons_completed_this_period == 10

    @pytest.mark.asyncio
    async def test_completions_queued_behind_erase_stay_serialized(self, service, store, kv, now):
        await service.submit_completion("u1", event(grades=[("a", 3)]), now)
        get, mdel = kv.get, kv.mdel

        async def slow_get(key):
            await asyncio.sleep(0.01)
            return await get(key)

        async def slow_mdel(keys):
            await asyncio.sleep(0.01)
            return await mdel(keys)

        kv.get = slow_get
        kv.mdel = slow_mdel

        erase = asyncio.create_task(service.erase_learner("u1"))
        await asyncio.sleep(0)
        queued = asyncio.create_task(service.submit_completion("u1", event(grades=[("b", 3)]), now))
        await erase
        # Starts after the erase returned while "b" is still waiting on the lock
        late = asyncio.create_task(service.submit_completion("u1", event(grades=[("c", 3)]), now))
        await asyncio.gather(queued, late)

        assert sorted(await store.load_items("u1")) == ["b", "c"]

    @pytest.mark.asyncio
    async def test_idle_locks_are_released(self, service, now):
        await service.submit_completion("u1", event(grades=[("a", 3)]), now)
        await service.erase_learner("u1")

        assert "u1" not in service._locks


class TestQueries:
    @pytest.mark.asyncio
    async def test_due_schedule_after_completion(self, service, now):
        await service.submit_completion("u1", event(score=50, grades=[("a", 3)]), now)

        today = await service.get_due_schedule("u1", now)
        assert today.due_lessons == []
        assert today.due_item_count == 0

        later = await service.get_due_schedule("u1", now + timedelta(days=2))
        assert [d.lesson_id for d in later.due_lessons] == ["greetings-1"]
        assert later.due_lessons[0].last_score == 50
        assert later.due_item_ids == ["a"]

    @pytest.mark.asyncio
    async def test_progress_snapshot(self, service, now):
        await service.submit_completion("u1", event(grades=[("a", 3), ("b", 1)]), now)
        snap = await service.get_progress("u1", now)

        assert snap.current_streak == 1
        assert snap.items.total == 2
        assert snap.items.learning == 1
        assert snap.items.lapse_rate == 0.5
        assert snap.weekly_activity[-1].lessons == 1
        assert snap.weekly_activity[-1].reviews == 2

    @pytest.mark.asyncio
    async def test_recommendations_after_repeated_fails(self, service, now):
        for day in range(3):
            await service.submit_completion(
                "u1", event(grades=[("a", 1), ("b", 3)]), now + timedelta(days=day)
            )

        plan = await service.get_recommendations("u1")

        assert plan.focus_areas == ["a"]
        assert plan.review_first == ["a"]
        assert plan.new_words_limit == 15

    @pytest.mark.asyncio
    async def test_recommendations_for_new_learner(self, service):
        plan = await service.get_recommendations("nobody")

        assert plan.focus_areas == []
        assert plan.next_level_target == "A2"

    @pytest.mark.asyncio
    async def test_progress_for_new_learner_uses_configured_caps(self, store, now):
        service = SchedulingService(store, default_new_cap=5, default_review_cap=50)
        snap = await service.get_progress("fresh", now)

        assert snap.current_streak == 0
        assert snap.daily_new_cap == 5
        assert snap.daily_review_cap == 50

    @pytest.mark.asyncio
    async def test_naive_now_treated_as_utc(self, service, now):
        result = await service.submit_completion("u1", event(), now.replace(tzinfo=None))
        assert result.progress.last_reviewed_at == now


class TestCapsAndErase:
    @pytest.mark.asyncio
    async def test_set_daily_caps(self, service, now):
        profile = await service.set_daily_caps("u1", daily_new_cap=5)
        assert profile.daily_new_cap == 5
        assert profile.daily_review_cap == 200

        plan = await service.get_due_schedule("u1", now)
        assert plan.daily_new_cap == 5

    @pytest.mark.asyncio
    async def test_negative_caps_rejected(self, service):
        with pytest.raises(InvalidInput):
            await service.set_daily_caps("u1", daily_review_cap=-1)

    @pytest.mark.asyncio
    async def test_erase_removes_only_that_learner(self, service, store, kv, now):
        await service.submit_completion("u1", event(grades=[("a", 3)]), now)
        await service.submit_completion("u2", event(grades=[("a", 3)]), now)

        removed = await service.erase_learner("u1")

        assert removed == 5
        assert await store.load_items("u1") == {}
        assert await store.get_profile("u1") is None
        assert all(not key.startswith("user:u1:") for key in kv.data)
        assert (await store.load_items("u2"))["a"].reps == 1

    @pytest.mark.asyncio
    async def test_erase_unknown_learner(self, service):
        assert await service.erase_learner("nobody") == 0
