from __future__ import annotations

from typing import Any


async def list_categories(client: Any) -> list[dict[str, Any]]:
    response = await client.table("categories").select("*").order("name").execute()
    return [dict(row) for row in response.data or []]
