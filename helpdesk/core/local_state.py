"""Persistent key/value state shared by the auth SDK and user preferences."""
from __future__ import annotations

import asyncio
import json
from functools import lru_cache
from pathlib import Path
from typing import Callable

import aiofiles
from supabase_auth import AsyncSupportedStorage

from helpdesk.core.config import get_settings
from helpdesk.core.logging import log_warning

THEME_KEY = "theme"
SESSION_KEY_MARKERS: tuple[str, ...] = ("supabase",)
SESSION_KEY_PREFIXES: tuple[str, ...] = ("sb-",)


def is_session_key(key: str) -> bool:
    """Return ``True`` when *key* belongs to the backend SDK's session namespace."""

    if not isinstance(key, str):
        return False
    return any(marker in key for marker in SESSION_KEY_MARKERS) or key.startswith(
        SESSION_KEY_PREFIXES
    )


class LocalStore(AsyncSupportedStorage):
    """JSON file backed storage with the interface the auth SDK expects.

    Values are strings, mirroring browser local storage. The file is read
    lazily on first access and rewritten after every mutation.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._items: dict[str, str] | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def _load(self) -> dict[str, str]:
        if self._items is not None:
            return self._items
        try:
            async with aiofiles.open(self._path, "r", encoding="utf-8") as handle:
                raw = await handle.read()
        except FileNotFoundError:
            self._items = {}
            return self._items
        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            log_warning("Local state file is corrupt, starting empty", path=str(self._path), error=str(exc))
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}
        self._items = {str(key): str(value) for key, value in parsed.items()}
        return self._items

    async def _flush(self) -> None:
        items = self._items or {}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self._path, "w", encoding="utf-8") as handle:
            await handle.write(json.dumps(items, indent=2, sort_keys=True))

    async def get_item(self, key: str) -> str | None:
        async with self._lock:
            items = await self._load()
            return items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            items = await self._load()
            items[key] = str(value)
            await self._flush()

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            items = await self._load()
            if key in items:
                del items[key]
                await self._flush()

    async def keys(self) -> list[str]:
        async with self._lock:
            items = await self._load()
            return sorted(items)

    async def purge(self, predicate: Callable[[str], bool] = is_session_key) -> list[str]:
        """Remove every key matching *predicate* and return the removed keys."""

        async with self._lock:
            items = await self._load()
            removed = [key for key in list(items) if predicate(key)]
            for key in removed:
                del items[key]
            if removed:
                await self._flush()
            return removed


@lru_cache
def get_local_store() -> LocalStore:
    return LocalStore(get_settings().local_state_path.expanduser())
