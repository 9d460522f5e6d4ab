"""
Versioned record codec for the key-value store.

Every value is written as a JSON envelope:

    {"kind": "memory-items", "version": 1, "data": ...}

On read, the stored version is migrated step by step to the current one.
Bare JSON without an envelope is the legacy layout (version 0), whose field
names came from the first release of the lesson app. The learner store reads
it both at the current keys and at that release's key layout.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from lingosrs.domain.constants import (
    DEFAULT_DAILY_NEW_CAP,
    DEFAULT_DAILY_REVIEW_CAP,
    DEFAULT_DIFFICULTY,
    DEFAULT_LEVEL,
    DEFAULT_RESPONSE_TIME_MS,
    DEFAULT_STABILITY,
)
from lingosrs.domain.errors import RecordCorrupt
from lingosrs.domain.models import (
    CompletionResult,
    ItemState,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    ReviewLogEntry,
)

logger = logging.getLogger(__name__)

ITEMS = "memory-items"
LESSON = "lesson-progress"
PROFILE = "profile"
REVIEW = "review-log"
COMPLETION = "completion"

CURRENT_VERSION: dict[str, int] = {
    ITEMS: 1,
    LESSON: 1,
    PROFILE: 1,
    REVIEW: 1,
    COMPLETION: 1,
}

Migration = Callable[[Any], Any]
_MIGRATIONS: dict[tuple[str, int], Migration] = {}


def migration(kind: str, from_version: int) -> Callable[[Migration], Migration]:
    """Register a function upgrading `kind` data from `from_version` to the next."""

    def decorator(fn: Migration) -> Migration:
        _MIGRATIONS[(kind, from_version)] = fn
        return fn

    return decorator


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    # Legacy records use a trailing Z
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def encode(kind: str, data: Any) -> str:
    return json.dumps(
        {"kind": kind, "version": CURRENT_VERSION[kind], "data": data},
        separators=(",", ":"),
    )


def decode(kind: str, raw: str, key: str = "") -> Any:
    """
    Parse and migrate a stored value.

    Raises:
        RecordCorrupt: on malformed JSON, a kind mismatch, or a missing migration.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise RecordCorrupt(f"Undecodable record at {key!r}: {e}") from e

    if isinstance(payload, dict) and {"kind", "version", "data"} <= payload.keys():
        if payload["kind"] != kind:
            raise RecordCorrupt(f"Expected {kind!r} at {key!r}, found {payload['kind']!r}")
        version = payload["version"]
        data = payload["data"]
    else:
        version = 0
        data = payload

    target = CURRENT_VERSION[kind]
    if not isinstance(version, int) or version > target:
        raise RecordCorrupt(f"Unsupported {kind} version {version!r} at {key!r}")

    while version < target:
        step = _MIGRATIONS.get((kind, version))
        if step is None:
            raise RecordCorrupt(f"No migration for {kind} v{version} at {key!r}")
        try:
            data = step(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RecordCorrupt(f"Migration of {kind} v{version} failed at {key!r}: {e}") from e
        logger.debug(f"Migrated {kind} at {key!r} v{version}->v{version + 1}")
        version += 1

    return data


def _convert(kind: str, key: str, fn: Callable[[Any], Any], data: Any) -> Any:
    try:
        return fn(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise RecordCorrupt(f"Malformed {kind} at {key!r}: {e}") from e


# ---------------------------------------------------------------------------
# Legacy (v0) migrations
# ---------------------------------------------------------------------------


@migration(ITEMS, 0)
def _items_v0(data: list[dict]) -> list[dict]:
    migrated = []
    for card in data:
        migrated.append(
            {
                "unit_id": card["vocab_id"],
                "learner_id": card.get("user_id", ""),
                "stability": card.get("stability", DEFAULT_STABILITY),
                "difficulty": card.get("difficulty", DEFAULT_DIFFICULTY),
                "state": card.get("state", ItemState.NEW.value),
                "last_review_at": card["last_review"],
                "due_at": card["due_date"],
                "reps": card.get("reps", 0),
                "lapses": card.get("lapses", 0),
                "review_count": card.get("review_count", 0),
                "average_response_time": card.get(
                    "average_response_time", DEFAULT_RESPONSE_TIME_MS
                ),
                "level": card.get("cefr_level"),
                "created_at": card.get("created_at"),
            }
        )
    return migrated


@migration(LESSON, 0)
def _lesson_v0(data: dict) -> dict:
    return {
        "lesson_id": data.get("lessonId"),
        "last_score": data.get("lastScore", 0),
        "review_interval_days": data.get("reviewInterval", 1),
        "times_reviewed": data.get("timesReviewed", 0),
        "total_time_spent_seconds": data.get("totalTimeSpent", 0),
        "next_review_at": data.get("nextReviewDate"),
        "last_reviewed_at": data.get("lastReviewedDate"),
    }


@migration(PROFILE, 0)
def _profile_v0(data: dict) -> dict:
    return {
        "learner_id": data.get("user_id"),
        "current_streak": data.get("current_streak", 0),
        "longest_streak": data.get("longest_streak", 0),
        "last_activity_at": data.get("last_activity_date"),
        "lessons_completed_this_period": data.get("lessons_completed_this_month", 0),
        "total_mastered_count": data.get("total_words_learned", 0),
        "current_level": data.get("cefr_level", DEFAULT_LEVEL),
        "daily_new_cap": DEFAULT_DAILY_NEW_CAP,
        "daily_review_cap": DEFAULT_DAILY_REVIEW_CAP,
    }


@migration(REVIEW, 0)
def _review_v0(data: dict) -> dict:
    return {
        "learner_id": data["user_id"],
        "unit_id": data["vocab_id"],
        "grade": data["rating"],
        "reviewed_at": data["reviewed_at"],
        "response_time_ms": data.get("response_time", DEFAULT_RESPONSE_TIME_MS),
        "stability_before": data.get("previous_stability"),
        "stability_after": data.get("new_stability"),
    }


# ---------------------------------------------------------------------------
# Memory items
# ---------------------------------------------------------------------------


def item_to_dict(item: MemoryItem) -> dict[str, Any]:
    return {
        "unit_id": item.unit_id,
        "learner_id": item.learner_id,
        "stability": item.stability,
        "difficulty": item.difficulty,
        "state": item.state.value,
        "last_review_at": _ts(item.last_review_at),
        "due_at": _ts(item.due_at),
        "reps": item.reps,
        "lapses": item.lapses,
        "review_count": item.review_count,
        "average_response_time": item.average_response_time,
        "level": item.level,
        "created_at": _ts(item.created_at),
    }


def item_from_dict(data: dict[str, Any]) -> MemoryItem:
    return MemoryItem(
        unit_id=data["unit_id"],
        learner_id=data["learner_id"],
        stability=float(data["stability"]),
        difficulty=float(data["difficulty"]),
        state=ItemState(data["state"]),
        last_review_at=_parse_ts(data["last_review_at"]),
        due_at=_parse_ts(data["due_at"]),
        reps=int(data["reps"]),
        lapses=int(data["lapses"]),
        review_count=int(data.get("review_count", 0)),
        average_response_time=float(
            data.get("average_response_time", DEFAULT_RESPONSE_TIME_MS)
        ),
        level=data.get("level"),
        created_at=_parse_ts(data.get("created_at")),
    )


def encode_items(items: list[MemoryItem]) -> str:
    return encode(ITEMS, [item_to_dict(item) for item in items])


def decode_items(raw: str, key: str = "") -> list[MemoryItem]:
    data = decode(ITEMS, raw, key)
    return _convert(ITEMS, key, lambda d: [item_from_dict(x) for x in d], data)


# ---------------------------------------------------------------------------
# Lesson progress
# ---------------------------------------------------------------------------


def progress_to_dict(progress: LessonProgress) -> dict[str, Any]:
    return {
        "lesson_id": progress.lesson_id,
        "last_score": progress.last_score,
        "review_interval_days": progress.review_interval_days,
        "times_reviewed": progress.times_reviewed,
        "total_time_spent_seconds": progress.total_time_spent_seconds,
        "next_review_at": _ts(progress.next_review_at),
        "last_reviewed_at": _ts(progress.last_reviewed_at),
    }


def progress_from_dict(data: dict[str, Any]) -> LessonProgress:
    return LessonProgress(
        lesson_id=data["lesson_id"],
        last_score=data.get("last_score", 0),
        review_interval_days=int(data.get("review_interval_days", 1)),
        times_reviewed=int(data.get("times_reviewed", 0)),
        total_time_spent_seconds=float(data.get("total_time_spent_seconds", 0)),
        next_review_at=_parse_ts(data.get("next_review_at")),
        last_reviewed_at=_parse_ts(data.get("last_reviewed_at")),
    )


def encode_progress(progress: LessonProgress) -> str:
    return encode(LESSON, progress_to_dict(progress))


def decode_progress(raw: str, key: str = "", lesson_id: str | None = None) -> LessonProgress:
    """Legacy lesson records carry no id; the caller supplies it from the key."""
    data = decode(LESSON, raw, key)
    if lesson_id is not None and isinstance(data, dict) and not data.get("lesson_id"):
        data = {**data, "lesson_id": lesson_id}
    return _convert(LESSON, key, progress_from_dict, data)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def profile_to_dict(profile: LearnerProfile) -> dict[str, Any]:
    return {
        "learner_id": profile.learner_id,
        "current_streak": profile.current_streak,
        "longest_streak": profile.longest_streak,
        "last_activity_at": _ts(profile.last_activity_at),
        "lessons_completed_this_period": profile.lessons_completed_this_period,
        "total_mastered_count": profile.total_mastered_count,
        "current_level": profile.current_level,
        "daily_new_cap": profile.daily_new_cap,
        "daily_review_cap": profile.daily_review_cap,
    }


def profile_from_dict(data: dict[str, Any]) -> LearnerProfile:
    return LearnerProfile(
        learner_id=data["learner_id"],
        current_streak=int(data.get("current_streak", 0)),
        longest_streak=int(data.get("longest_streak", 0)),
        last_activity_at=_parse_ts(data.get("last_activity_at")),
        lessons_completed_this_period=int(data.get("lessons_completed_this_period", 0)),
        total_mastered_count=int(data.get("total_mastered_count", 0)),
        current_level=data.get("current_level") or DEFAULT_LEVEL,
        daily_new_cap=int(data.get("daily_new_cap", DEFAULT_DAILY_NEW_CAP)),
        daily_review_cap=int(data.get("daily_review_cap", DEFAULT_DAILY_REVIEW_CAP)),
    )


def encode_profile(profile: LearnerProfile) -> str:
    return encode(PROFILE, profile_to_dict(profile))


def decode_profile(raw: str, key: str = "", learner_id: str | None = None) -> LearnerProfile:
    data = decode(PROFILE, raw, key)
    if learner_id is not None and isinstance(data, dict) and not data.get("learner_id"):
        data = {**data, "learner_id": learner_id}
    return _convert(PROFILE, key, profile_from_dict, data)


# ---------------------------------------------------------------------------
# Review log
# ---------------------------------------------------------------------------


def review_to_dict(entry: ReviewLogEntry) -> dict[str, Any]:
    return {
        "learner_id": entry.learner_id,
        "unit_id": entry.unit_id,
        "grade": entry.grade,
        "reviewed_at": _ts(entry.reviewed_at),
        "response_time_ms": entry.response_time_ms,
        "stability_before": entry.stability_before,
        "stability_after": entry.stability_after,
    }


def review_from_dict(data: dict[str, Any]) -> ReviewLogEntry:
    return ReviewLogEntry(
        learner_id=data["learner_id"],
        unit_id=data["unit_id"],
        grade=int(data["grade"]),
        reviewed_at=_parse_ts(data["reviewed_at"]),
        response_time_ms=int(data["response_time_ms"]),
        stability_before=data["stability_before"],
        stability_after=data["stability_after"],
    )


def encode_review(entry: ReviewLogEntry) -> str:
    return encode(REVIEW, review_to_dict(entry))


def decode_review(raw: str, key: str = "") -> ReviewLogEntry:
    return _convert(REVIEW, key, review_from_dict, decode(REVIEW, raw, key))


# ---------------------------------------------------------------------------
# Completion results
# ---------------------------------------------------------------------------


def encode_completion(result: CompletionResult) -> str:
    return encode(
        COMPLETION,
        {
            "completion_id": result.completion_id,
            "progress": progress_to_dict(result.progress),
            "current_streak": result.current_streak,
            "longest_streak": result.longest_streak,
            "mastered_count": result.mastered_count,
            "items_updated": result.items_updated,
            "completed_at": _ts(result.completed_at),
        },
    )


def decode_completion(raw: str, key: str = "") -> CompletionResult:
    def build(data: dict[str, Any]) -> CompletionResult:
        return CompletionResult(
            completion_id=data["completion_id"],
            progress=progress_from_dict(data["progress"]),
            current_streak=int(data["current_streak"]),
            longest_streak=int(data["longest_streak"]),
            mastered_count=int(data["mastered_count"]),
            items_updated=int(data["items_updated"]),
            completed_at=_parse_ts(data.get("completed_at")),
        )

    return _convert(COMPLETION, key, build, decode(COMPLETION, raw, key))
