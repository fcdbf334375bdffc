from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from helpdesk.api.dependencies.auth import get_auth_manager, require_authenticated
from helpdesk.api.errors import raise_for_result
from helpdesk.schemas.auth import (
    AuthActionResponse,
    LoginRequest,
    ProfileResponse,
    ProfileUpdate,
    RegistrationRequest,
    SessionResponse,
)
from helpdesk.services.auth import AuthErrorType, AuthResult, AuthSessionManager

router = APIRouter(prefix="/api/auth", tags=["Auth"])

_FAILURE_STATUS: dict[AuthErrorType, int] = {
    AuthErrorType.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorType.EMAIL_NOT_CONFIRMED: status.HTTP_403_FORBIDDEN,
    AuthErrorType.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    AuthErrorType.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
}


def session_snapshot(manager: AuthSessionManager) -> SessionResponse:
    profile = ProfileResponse(**manager.profile) if manager.profile else None
    return SessionResponse(
        state=manager.state.value,
        user_id=manager.user_id,
        email=manager.user_email,
        user_name=manager.user_name,
        role=manager.user_role,
        is_admin=manager.is_admin,
        is_agent=manager.is_agent,
        profile=profile,
        error=manager.error,
    )


def _action_response(
    result: AuthResult,
    manager: AuthSessionManager,
    response: Response,
    *,
    failure_status: int = status.HTTP_400_BAD_REQUEST,
) -> AuthActionResponse:
    if not result.success:
        response.status_code = _FAILURE_STATUS.get(result.error_type, failure_status)
    return AuthActionResponse(
        success=result.success,
        message=result.message,
        error=result.error,
        error_type=result.error_type.value if result.error_type else None,
        requires_confirmation=result.requires_confirmation,
        session=session_snapshot(manager),
        details=result.details,
    )


@router.post("/register", response_model=AuthActionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegistrationRequest,
    response: Response,
    manager: AuthSessionManager = Depends(get_auth_manager),
) -> AuthActionResponse:
    result = await manager.sign_up(payload.email, payload.password, payload.full_name)
    return _action_response(result, manager, response)


@router.post("/login", response_model=AuthActionResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    manager: AuthSessionManager = Depends(get_auth_manager),
) -> AuthActionResponse:
    result = await manager.sign_in(payload.email, payload.password)
    return _action_response(result, manager, response, failure_status=status.HTTP_401_UNAUTHORIZED)


@router.post("/logout", response_model=AuthActionResponse)
async def logout(
    response: Response,
    manager: AuthSessionManager = Depends(get_auth_manager),
) -> AuthActionResponse:
    result = await manager.sign_out()
    return _action_response(result, manager, response, failure_status=status.HTTP_502_BAD_GATEWAY)


@router.get("/session", response_model=SessionResponse)
async def get_session(
    manager: AuthSessionManager = Depends(get_auth_manager),
) -> SessionResponse:
    return session_snapshot(manager)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    manager: AuthSessionManager = Depends(require_authenticated),
) -> ProfileResponse:
    profile = manager.profile or await manager.load_profile()
    if not profile:
        return ProfileResponse(id=manager.user_id, email=manager.user_email, full_name=manager.user_name)
    return ProfileResponse(**profile)


@router.patch("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdate,
    manager: AuthSessionManager = Depends(require_authenticated),
) -> ProfileResponse:
    result = await manager.update_profile(payload)
    raise_for_result(result)
    return ProfileResponse(**(result.data or {"id": manager.user_id}))
