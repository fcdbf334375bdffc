"""Time-boxed cache for near-static reference collections."""
from __future__ import annotations

import time
from typing import Any, Callable

DEFAULT_TTL_SECONDS = 5 * 60


class ReferenceCache:
    """Hold reference collections (categories, users) under one shared timestamp.

    Storing any collection refreshes the timestamp for all of them, so the
    collections expire together.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: dict[str, list[Any]] = {}
        self._stored_at: float | None = None

    def is_fresh(self) -> bool:
        if self._stored_at is None:
            return False
        return (self._clock() - self._stored_at) < self.ttl

    def get(self, key: str) -> list[Any] | None:
        """Return the cached collection when present and unexpired."""

        if key not in self._entries or not self.is_fresh():
            return None
        return list(self._entries[key])

    def peek(self, key: str) -> list[Any] | None:
        """Return the last stored collection regardless of its age."""

        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def store(self, key: str, value: list[Any] | None) -> list[Any]:
        collection = list(value or [])
        self._entries[key] = collection
        self._stored_at = self._clock()
        return list(collection)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
            self._stored_at = None
            return
        self._entries.pop(key, None)
        if not self._entries:
            self._stored_at = None
