"""
Uniform view over the two scheduling tracks.

Memory items (FSRS) and lessons (heuristic interval) are stored and updated
independently. The due-queue builder only sees them through this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from .constants import HIGH_PRIORITY_SCORE_THRESHOLD
from .models import LessonProgress, MemoryItem, Priority


class Schedulable(ABC):
    """Something with a due time that can be placed in a study plan."""

    kind: Literal["item", "lesson"]

    @property
    @abstractmethod
    def key(self) -> str:
        pass

    @property
    @abstractmethod
    def due_at(self) -> datetime | None:
        pass

    @property
    def priority(self) -> Priority:
        return Priority.NORMAL

    def is_due(self, now: datetime) -> bool:
        due = self.due_at
        return due is not None and due <= now


@dataclass(frozen=True)
class ItemSchedule(Schedulable):
    item: MemoryItem
    kind: Literal["item", "lesson"] = "item"

    @property
    def key(self) -> str:
        return self.item.unit_id

    @property
    def due_at(self) -> datetime | None:
        return self.item.due_at


@dataclass(frozen=True)
class LessonSchedule(Schedulable):
    progress: LessonProgress
    kind: Literal["item", "lesson"] = "lesson"

    @property
    def key(self) -> str:
        return self.progress.lesson_id

    @property
    def due_at(self) -> datetime | None:
        return self.progress.next_review_at

    @property
    def priority(self) -> Priority:
        if self.progress.last_score < HIGH_PRIORITY_SCORE_THRESHOLD:
            return Priority.HIGH
        return Priority.NORMAL
