"""
In-Memory Key-Value Store: process-local adapter.

Implements KeyValueStore with a plain dict. Used by tests, the `memory`
backend and demos; nothing survives a restart.
"""

from lingosrs.domain.ports import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def mset(self, entries: dict[str, str]) -> None:
        self.data.update(entries)

    async def get_by_prefix(self, prefix: str) -> dict[str, str]:
        return {k: v for k, v in self.data.items() if k.startswith(prefix)}

    async def mdel(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed
