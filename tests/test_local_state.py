import json

import pytest

from helpdesk.core.local_state import THEME_KEY, LocalStore, is_session_key
from helpdesk.services import preferences


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.parametrize(
    "key, expected",
    [
        ("sb-abcdefgh-auth-token", True),
        ("helpdesk-supabase-auth", True),
        ("supabase.auth.token", True),
        ("theme", False),
        ("my-sb-key", False),
    ],
)
def test_is_session_key(key, expected):
    assert is_session_key(key) is expected


@pytest.mark.anyio
async def test_values_persist_across_instances(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = LocalStore(path)
    await store.set_item("sb-token", "abc")
    await store.set_item(THEME_KEY, "dark")

    reopened = LocalStore(path)

    assert await reopened.get_item("sb-token") == "abc"
    assert await reopened.get_item(THEME_KEY) == "dark"
    assert json.loads(path.read_text(encoding="utf-8")) == {"sb-token": "abc", "theme": "dark"}


@pytest.mark.anyio
async def test_remove_item(local_store):
    await local_store.set_item("a", "1")
    await local_store.remove_item("a")
    await local_store.remove_item("missing")

    assert await local_store.get_item("a") is None


@pytest.mark.anyio
async def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    store = LocalStore(path)

    assert await store.keys() == []
    await store.set_item("theme", "light")
    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "light"}


@pytest.mark.anyio
async def test_purge_with_custom_predicate(local_store):
    await local_store.set_item("keep", "1")
    await local_store.set_item("drop-me", "2")

    removed = await local_store.purge(lambda key: key.startswith("drop"))

    assert removed == ["drop-me"]
    assert await local_store.keys() == ["keep"]


@pytest.mark.anyio
async def test_theme_defaults_to_light(local_store):
    assert await preferences.get_theme(local_store) == "light"


@pytest.mark.anyio
async def test_theme_round_trip(local_store):
    assert await preferences.set_theme("DARK", local_store) == "dark"
    assert await preferences.get_theme(local_store) == "dark"


@pytest.mark.anyio
async def test_unknown_theme_rejected(local_store):
    with pytest.raises(preferences.PreferenceError):
        await preferences.set_theme("sepia", local_store)


@pytest.mark.anyio
async def test_unknown_stored_theme_ignored(local_store):
    await local_store.set_item(THEME_KEY, "neon")
    assert await preferences.get_theme(local_store) == "light"
