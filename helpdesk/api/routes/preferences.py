from __future__ import annotations

from fastapi import APIRouter

from helpdesk.schemas.auth import ThemePreference
from helpdesk.services import preferences as preferences_service

router = APIRouter(prefix="/api/preferences", tags=["Preferences"])


@router.get("/theme", response_model=ThemePreference)
async def get_theme() -> ThemePreference:
    return ThemePreference(theme=await preferences_service.get_theme())


@router.put("/theme", response_model=ThemePreference)
async def set_theme(payload: ThemePreference) -> ThemePreference:
    return ThemePreference(theme=await preferences_service.set_theme(payload.theme))
