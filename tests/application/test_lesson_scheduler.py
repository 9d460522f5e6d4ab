from datetime import timedelta

import pytest

from lingosrs.application import lesson_scheduler
from lingosrs.domain.errors import InvalidInput
from lingosrs.domain.models import LessonProgress


def test_score_85_multiplies_by_two_and_a_half(now):
    progress = LessonProgress("greetings-1", review_interval_days=1)

    updated = lesson_scheduler.update(progress, 85, 240, now)

    assert updated.review_interval_days == 3
    assert updated.next_review_at == now + timedelta(days=3)
    assert updated.last_reviewed_at == now
    assert updated.last_score == 85
    assert updated.times_reviewed == 1
    assert updated.total_time_spent_seconds == 240


@pytest.mark.parametrize(
    "score, multiplier",
    [(100, 2.8), (90, 2.8), (89, 2.5), (80, 2.5), (79, 2.0), (70, 2.0), (69, 1.5), (60, 1.5), (59, 1.2), (0, 1.2)],
)
def test_multiplier_bands(score, multiplier):
    assert lesson_scheduler.multiplier_for(score) == multiplier


def test_interval_grows_even_on_poor_score(now):
    progress = LessonProgress("l1", review_interval_days=10)
    updated = lesson_scheduler.update(progress, 10, 0, now)
    # ceil(10 * 1.2)
    assert updated.review_interval_days == 12


def test_repeated_completions_accumulate(now):
    progress = LessonProgress("l1")
    for i, score in enumerate([95, 95, 95]):
        progress = lesson_scheduler.update(progress, score, 60, now + timedelta(days=i))

    # 1 -> 3 -> 9 -> 26
    assert progress.review_interval_days == 26
    assert progress.times_reviewed == 3
    assert progress.total_time_spent_seconds == 180


@pytest.mark.parametrize("score", [-1, 101, True, "80", None])
def test_invalid_score_rejected(now, score):
    with pytest.raises(InvalidInput):
        lesson_scheduler.update(LessonProgress("l1"), score, 0, now)


def test_negative_time_rejected(now):
    with pytest.raises(InvalidInput):
        lesson_scheduler.update(LessonProgress("l1"), 80, -5, now)
