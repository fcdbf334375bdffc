from __future__ import annotations

from typing import Any, Mapping

from helpdesk.core.backend import NOT_FOUND_CODE, BackendError
from helpdesk.core.logging import log_info

PROFILE_COLUMNS = "id, email, full_name, role, avatar_url"

ProfileRecord = dict[str, Any]


def _normalise_profile(row: Mapping[str, Any]) -> ProfileRecord:
    record = dict(row)
    record["role"] = str(record.get("role") or "user").strip().lower() or "user"
    for key in ("email", "full_name"):
        value = record.get(key)
        record[key] = str(value).strip() if value is not None else None
    return record


async def list_profiles(client: Any) -> list[ProfileRecord]:
    response = await (
        client.table("profiles").select(PROFILE_COLUMNS).order("full_name").execute()
    )
    return [_normalise_profile(row) for row in response.data or []]


async def get_profile(client: Any, user_id: str) -> ProfileRecord:
    response = await (
        client.table("profiles").select("*").eq("id", user_id).single().execute()
    )
    return _normalise_profile(response.data)


async def create_profile(
    client: Any,
    *,
    user_id: str,
    email: str,
    full_name: str,
    role: str = "user",
    created_at: str | None = None,
) -> None:
    log_info("Creating profile", user_id=user_id, role=role)
    payload: dict[str, Any] = {
        "id": user_id,
        "email": email,
        "full_name": full_name,
        "role": role,
    }
    if created_at:
        payload["created_at"] = created_at
    await client.table("profiles").insert(payload).execute()


async def update_profile(
    client: Any, user_id: str, updates: Mapping[str, Any]
) -> ProfileRecord:
    response = await (
        client.table("profiles").update(dict(updates)).eq("id", user_id).execute()
    )
    rows = response.data or []
    if not rows:
        raise BackendError("No profile row was updated", code=NOT_FOUND_CODE)
    return _normalise_profile(rows[0])


async def count_profiles(client: Any) -> int:
    response = await (
        client.table("profiles").select("id", count="exact", head=True).execute()
    )
    return int(response.count or 0)
