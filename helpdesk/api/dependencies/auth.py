from __future__ import annotations

from fastapi import Depends, HTTPException, status

from helpdesk.services.auth import AuthSessionManager, auth_manager


def get_auth_manager() -> AuthSessionManager:
    return auth_manager


async def require_authenticated(
    manager: AuthSessionManager = Depends(get_auth_manager),
) -> AuthSessionManager:
    if not manager.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return manager


async def require_agent(
    manager: AuthSessionManager = Depends(require_authenticated),
) -> AuthSessionManager:
    if not manager.is_agent:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Agent or admin privileges required",
        )
    return manager
