from __future__ import annotations

from helpdesk.core.local_state import THEME_KEY, LocalStore, get_local_store
from helpdesk.core.logging import log_info, log_warning

THEMES: tuple[str, ...] = ("light", "dark")
DEFAULT_THEME = "light"


class PreferenceError(ValueError):
    pass


async def get_theme(store: LocalStore | None = None) -> str:
    store = store or get_local_store()
    theme = await store.get_item(THEME_KEY)
    if theme is None:
        return DEFAULT_THEME
    if theme not in THEMES:
        log_warning("Ignoring unknown stored theme", theme=theme)
        return DEFAULT_THEME
    return theme


async def set_theme(theme: str, store: LocalStore | None = None) -> str:
    value = (theme or "").strip().lower()
    if value not in THEMES:
        raise PreferenceError(f"Unknown theme '{theme}'")
    store = store or get_local_store()
    await store.set_item(THEME_KEY, value)
    log_info("Theme preference saved", theme=value)
    return value
