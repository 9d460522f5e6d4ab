"""
Key-value backed learner store.

Implements every learner-facing store port on top of a KeyValueStore.
Key layout, all scoped under the learner's prefix:

    user:<learner>:profile
    user:<learner>:items
    user:<learner>:lesson-progress:<lesson_id>
    user:<learner>:review-log:<unit_id>:<timestamp_ms>
    user:<learner>:completion:<completion_id>

Keys written by the first release of the lesson app are still read when the
current key is absent, and are erased with the learner:

    user:<learner>:flashcards
    user:<learner>:lesson:<lesson_id>
    review:<learner>:<unit_id>:<timestamp_ms>

Their bare JSON values are legacy (v0) records and migrate on read. The next
commit writes the current keys, which shadow the legacy ones from then on.
"""

import logging
from datetime import datetime

from lingosrs.domain.errors import InvalidInput
from lingosrs.domain.models import (
    CompletionResult,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    ReviewLogEntry,
)
from lingosrs.domain.ports import KeyValueStore, LearnerDataStore
from lingosrs.infrastructure import records

logger = logging.getLogger(__name__)


def learner_prefix(learner_id: str) -> str:
    if not learner_id or ":" in learner_id:
        raise InvalidInput(f"Invalid learner id {learner_id!r}")
    return f"user:{learner_id}:"


def profile_key(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}profile"


def items_key(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}items"


def lesson_prefix(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}lesson-progress:"


def lesson_key(learner_id: str, lesson_id: str) -> str:
    return f"{lesson_prefix(learner_id)}{lesson_id}"


def review_prefix(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}review-log:"


def review_key(learner_id: str, entry: ReviewLogEntry) -> str:
    timestamp_ms = int(entry.reviewed_at.timestamp() * 1000)
    return f"{review_prefix(learner_id)}{entry.unit_id}:{timestamp_ms}"


def completion_prefix(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}completion:"


def completion_key(learner_id: str, completion_id: str) -> str:
    return f"{completion_prefix(learner_id)}{completion_id}"


def legacy_items_key(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}flashcards"


def legacy_lesson_prefix(learner_id: str) -> str:
    return f"{learner_prefix(learner_id)}lesson:"


def legacy_review_prefix(learner_id: str) -> str:
    return "review:" + learner_prefix(learner_id).removeprefix("user:")


class KeyValueLearnerStore(LearnerDataStore):
    """
    Learner records over a key-value backend.

    The item collection is one blob per learner; it is exposed as a map keyed
    by unit id and written back whole by `commit_completion`.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def load_items(self, learner_id: str) -> dict[str, MemoryItem]:
        key = items_key(learner_id)
        raw = await self.kv.get(key)
        if raw is None:
            key = legacy_items_key(learner_id)
            raw = await self.kv.get(key)
        if raw is None:
            return {}
        items: dict[str, MemoryItem] = {}
        for item in records.decode_items(raw, key):
            if not item.learner_id:
                item.learner_id = learner_id
            items[item.unit_id] = item
        return items

    async def list_reviews(self, learner_id: str) -> list[ReviewLogEntry]:
        stored = await self.kv.get_by_prefix(review_prefix(learner_id))
        stored.update(await self.kv.get_by_prefix(legacy_review_prefix(learner_id)))
        entries = [records.decode_review(raw, key) for key, raw in stored.items()]
        entries.sort(key=lambda e: e.reviewed_at)
        return entries

    async def get_progress(self, learner_id: str, lesson_id: str) -> LessonProgress | None:
        key = lesson_key(learner_id, lesson_id)
        raw = await self.kv.get(key)
        if raw is None:
            key = f"{legacy_lesson_prefix(learner_id)}{lesson_id}"
            raw = await self.kv.get(key)
        if raw is None:
            return None
        return records.decode_progress(raw, key, lesson_id=lesson_id)

    async def list_progress(self, learner_id: str) -> list[LessonProgress]:
        by_lesson: dict[str, tuple[str, str]] = {}
        # Current records override legacy ones for the same lesson
        for prefix in (legacy_lesson_prefix(learner_id), lesson_prefix(learner_id)):
            for key, raw in (await self.kv.get_by_prefix(prefix)).items():
                by_lesson[key[len(prefix):]] = (key, raw)
        return [
            records.decode_progress(raw, key, lesson_id=lesson_id)
            for lesson_id, (key, raw) in sorted(by_lesson.items())
        ]

    async def list_completions(self, learner_id: str) -> list[CompletionResult]:
        stored = await self.kv.get_by_prefix(completion_prefix(learner_id))
        results = [records.decode_completion(raw, key) for key, raw in stored.items()]
        results.sort(key=lambda r: (r.completed_at is not None, r.completed_at or datetime.min))
        return results

    async def get_profile(self, learner_id: str) -> LearnerProfile | None:
        key = profile_key(learner_id)
        raw = await self.kv.get(key)
        if raw is None:
            return None
        return records.decode_profile(raw, key, learner_id=learner_id)

    async def save_profile(self, profile: LearnerProfile) -> None:
        await self.kv.set(profile_key(profile.learner_id), records.encode_profile(profile))

    async def get_completion(self, learner_id: str, completion_id: str) -> CompletionResult | None:
        key = completion_key(learner_id, completion_id)
        raw = await self.kv.get(key)
        if raw is None:
            return None
        return records.decode_completion(raw, key)

    async def commit_completion(
        self,
        learner_id: str,
        items: dict[str, MemoryItem],
        reviews: list[ReviewLogEntry],
        progress: LessonProgress,
        profile: LearnerProfile,
        result: CompletionResult,
    ) -> None:
        entries: dict[str, str] = {
            items_key(learner_id): records.encode_items(list(items.values())),
            lesson_key(learner_id, progress.lesson_id): records.encode_progress(progress),
            profile_key(learner_id): records.encode_profile(profile),
            completion_key(learner_id, result.completion_id): records.encode_completion(result),
        }
        for entry in reviews:
            entries[review_key(learner_id, entry)] = records.encode_review(entry)

        await self.kv.mset(entries)
        logger.debug(f"Committed completion {result.completion_id} for {learner_id}: {len(entries)} keys")

    async def erase_learner(self, learner_id: str) -> int:
        keys = list((await self.kv.get_by_prefix(learner_prefix(learner_id))).keys())
        keys += (await self.kv.get_by_prefix(legacy_review_prefix(learner_id))).keys()
        removed = await self.kv.mdel(keys)
        logger.info(f"Erased {removed} records for learner {learner_id}")
        return removed
