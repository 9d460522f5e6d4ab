"""
Ports (interfaces) for storage and identity.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import (
    CompletionResult,
    LearnerProfile,
    LessonProgress,
    MemoryItem,
    ReviewLogEntry,
)


class KeyValueStore(ABC):
    """
    Port for the durable key-value store.

    Values are opaque text blobs. Implementations:
        - InMemoryKeyValueStore: process-local dict, used for tests and demos.
        - SqliteKeyValueStore: single-table SQLite database.

    Every method raises StorageUnavailable when the backend fails.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def mset(self, entries: dict[str, str]) -> None:
        """Write all entries atomically: either every key is written or none."""
        pass

    @abstractmethod
    async def get_by_prefix(self, prefix: str) -> dict[str, str]:
        """Return every key/value pair whose key starts with `prefix`."""
        pass

    @abstractmethod
    async def mdel(self, keys: list[str]) -> int:
        """Delete the given keys. Returns how many existed."""
        pass

    async def set(self, key: str, value: str) -> None:
        await self.mset({key: value})


class MemoryItemStore(ABC):
    """Per-learner memory item collection and append-only review log."""

    @abstractmethod
    async def load_items(self, learner_id: str) -> dict[str, MemoryItem]:
        """Load the learner's whole item collection, keyed by unit id."""
        pass

    @abstractmethod
    async def list_reviews(self, learner_id: str) -> list[ReviewLogEntry]:
        """Return the review log sorted by reviewed_at ascending."""
        pass


class LessonProgressStore(ABC):
    """One progress record per (learner, lesson), plus the completion events that produced them."""

    @abstractmethod
    async def get_progress(self, learner_id: str, lesson_id: str) -> LessonProgress | None:
        pass

    @abstractmethod
    async def list_progress(self, learner_id: str) -> list[LessonProgress]:
        pass

    @abstractmethod
    async def list_completions(self, learner_id: str) -> list[CompletionResult]:
        """Every recorded completion event of the learner, oldest first."""
        pass


class ProfileStore(ABC):
    @abstractmethod
    async def get_profile(self, learner_id: str) -> LearnerProfile | None:
        pass


class LearnerDataStore(MemoryItemStore, LessonProgressStore, ProfileStore):
    """
    All records of a learner behind one store.

    Writes go through `commit_completion` so a completion event is persisted
    as a single atomic batch.
    """

    @abstractmethod
    async def commit_completion(
        self,
        learner_id: str,
        items: dict[str, MemoryItem],
        reviews: list[ReviewLogEntry],
        progress: LessonProgress,
        profile: LearnerProfile,
        result: CompletionResult,
    ) -> None:
        pass

    @abstractmethod
    async def get_completion(self, learner_id: str, completion_id: str) -> CompletionResult | None:
        pass

    @abstractmethod
    async def save_profile(self, profile: LearnerProfile) -> None:
        pass

    @abstractmethod
    async def erase_learner(self, learner_id: str) -> int:
        """Delete every record of the learner. Returns the number of keys removed."""
        pass


class IdentityVerifier(ABC):
    """Port for the external identity provider."""

    @abstractmethod
    async def verify(self, token: str | None) -> str:
        """
        Resolve a bearer token to an opaque learner id.

        Raises:
            Unauthorized: if the token is missing or not recognised.
        """
        pass
