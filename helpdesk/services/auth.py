from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

from helpdesk.core.backend import BACKEND_ERRORS, Backend, backend as default_backend
from helpdesk.core.backend import describe_error, is_not_found
from helpdesk.core.config import get_settings
from helpdesk.core.local_state import LocalStore, get_local_store
from helpdesk.core.logging import log_audit_event, log_error, log_info, log_warning
from helpdesk.core.results import ErrorKind, ServiceResult
from helpdesk.repositories import profiles as profiles_repo


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class AuthErrorType(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    RATE_LIMITED = "rate_limited"
    ALREADY_REGISTERED = "already_registered"
    GENERAL = "general_error"


_ERROR_MARKERS: tuple[tuple[str, AuthErrorType], ...] = (
    ("invalid login credentials", AuthErrorType.INVALID_CREDENTIALS),
    ("email not confirmed", AuthErrorType.EMAIL_NOT_CONFIRMED),
    ("rate limit", AuthErrorType.RATE_LIMITED),
    ("user already registered", AuthErrorType.ALREADY_REGISTERED),
)

FRIENDLY_MESSAGES: dict[AuthErrorType, str] = {
    AuthErrorType.INVALID_CREDENTIALS: "Incorrect email or password.",
    AuthErrorType.EMAIL_NOT_CONFIRMED: "Please confirm your email address before signing in.",
    AuthErrorType.RATE_LIMITED: "Too many attempts. Please wait a moment and try again.",
    AuthErrorType.ALREADY_REGISTERED: "An account with this email already exists.",
}

CONFIRMATION_MESSAGE = "Please check your email to confirm your account."
REGISTERED_MESSAGE = "Registration successful."


def classify_auth_error(message: str | None) -> AuthErrorType:
    """Map a backend auth error message onto a known error type."""

    text = (message or "").lower()
    for marker, error_type in _ERROR_MARKERS:
        if marker in text:
            return error_type
    return AuthErrorType.GENERAL


def friendly_auth_message(message: str | None) -> str:
    error_type = classify_auth_error(message)
    return FRIENDLY_MESSAGES.get(error_type) or (message or "Authentication failed.")


@dataclass(slots=True)
class AuthResult:
    success: bool
    message: str | None = None
    error: str | None = None
    error_type: AuthErrorType | None = None
    requires_confirmation: bool = False
    details: dict[str, Any] = field(default_factory=dict)


class AuthSessionManager:
    """Mirror of the backend auth session held in process memory.

    The manager moves between ``anonymous``, ``authenticating`` and
    ``authenticated``. A profile row is provisioned the first time an
    authenticated user has none.
    """

    def __init__(
        self,
        backend: Backend | None = None,
        store: LocalStore | None = None,
    ) -> None:
        self._backend = default_backend if backend is None else backend
        self._store = store
        self.state = AuthState.ANONYMOUS
        self.session: Any = None
        self.user: Any = None
        self.profile: dict[str, Any] | None = None
        self.error: str | None = None
        self._subscription: Any = None
        self._pending: set[asyncio.Task] = set()
        self._profile_lock = asyncio.Lock()

    def _local_store(self) -> LocalStore:
        return self._store if self._store is not None else get_local_store()

    # identity helpers

    @property
    def user_id(self) -> str | None:
        return getattr(self.user, "id", None)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_role(self) -> str:
        if self.profile and self.profile.get("role"):
            return str(self.profile["role"])
        return "user"

    @property
    def is_admin(self) -> bool:
        return self.profile is not None and self.user_role == "admin"

    @property
    def is_agent(self) -> bool:
        return self.profile is not None and self.user_role in {"agent", "admin"}

    @property
    def user_email(self) -> str | None:
        email = getattr(self.user, "email", None)
        if email:
            return email
        return (self.profile or {}).get("email")

    @property
    def user_name(self) -> str | None:
        if self.profile and self.profile.get("full_name"):
            return self.profile["full_name"]
        metadata = getattr(self.user, "user_metadata", None) or {}
        if metadata.get("full_name"):
            return metadata["full_name"]
        email = getattr(self.user, "email", None)
        return email.split("@")[0] if email else None

    # session lifecycle

    def _clear(self) -> None:
        self.session = None
        self.user = None
        self.profile = None
        self.error = None
        self.state = AuthState.ANONYMOUS

    async def _apply_session(self, session: Any) -> None:
        user = getattr(session, "user", None) if session is not None else None
        if user is None:
            self.session = None
            self.user = None
            self.profile = None
            self.state = AuthState.ANONYMOUS
            return
        self.session = session
        self.user = user
        await self.load_profile(user.id)
        self.state = AuthState.AUTHENTICATED

    async def restore(self) -> AuthState:
        """Pick up a persisted session and subscribe to auth state changes."""

        try:
            auth = self._backend.auth
            session = await auth.get_session()
        except BACKEND_ERRORS as exc:
            self._clear()
            self.error = describe_error(exc)
            log_error("Unable to restore auth session", error=self.error)
            return self.state
        if self._subscription is None:
            self._subscription = auth.on_auth_state_change(self._on_auth_change)
        await self._apply_session(session)
        log_info(
            "Auth session restored",
            state=self.state.value,
            user_id=self.user_id or "anonymous",
        )
        return self.state

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

    def _on_auth_change(self, event: Any, session: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log_warning("Auth event received outside the event loop", event=str(event))
            return
        task = loop.create_task(self.handle_auth_event(event, session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def handle_auth_event(self, event: Any, session: Any) -> None:
        event_name = str(getattr(event, "value", event))
        user = getattr(session, "user", None) if session is not None else None
        log_info(
            "Auth state changed",
            event=event_name,
            email=getattr(user, "email", None) or "none",
        )
        if event_name == "SIGNED_OUT" or user is None:
            self._clear()
            return
        if self.user_id == user.id and self.profile is not None:
            self.session = session
            self.user = user
            return
        await self._apply_session(session)

    # profiles

    async def _provision_profile(
        self,
        user_id: str,
        *,
        email: str | None = None,
        full_name: str | None = None,
    ) -> bool:
        user = self.user if self.user_id == user_id else None
        if user is None:
            try:
                response = await self._backend.auth.get_user()
                user = getattr(response, "user", None)
            except BACKEND_ERRORS as exc:
                log_warning("Unable to read auth user for profile", error=describe_error(exc))
        metadata = getattr(user, "user_metadata", None) or {}
        try:
            await profiles_repo.create_profile(
                self._backend.client,
                user_id=user_id,
                email=email or getattr(user, "email", None) or "",
                full_name=full_name or metadata.get("full_name") or "",
                role="user",
            )
        except BACKEND_ERRORS as exc:
            log_error("Unable to create profile", user_id=user_id, error=describe_error(exc))
            return False
        return True

    async def load_profile(self, user_id: str | None = None) -> dict[str, Any] | None:
        """Load the profile row, creating it once when it does not exist.

        Concurrent loads are serialised; a load that waited on another one for
        the same user reuses its profile.
        """

        user_id = user_id or self.user_id
        if not user_id:
            return None
        async with self._profile_lock:
            if self.profile is not None and self.profile.get("id") == user_id:
                return self.profile
            provisioned = False
            while True:
                try:
                    profile = await profiles_repo.get_profile(self._backend.client, user_id)
                except BACKEND_ERRORS as exc:
                    if is_not_found(exc) and not provisioned:
                        log_info("Profile not found, provisioning", user_id=user_id)
                        provisioned = True
                        if await self._provision_profile(user_id):
                            continue
                        return None
                    log_error(
                        "Unable to load profile", user_id=user_id, error=describe_error(exc)
                    )
                    return None
                self.profile = profile
                return profile

    async def update_profile(
        self, updates: BaseModel | Mapping[str, Any]
    ) -> ServiceResult[dict[str, Any]]:
        user_id = self.user_id
        if not user_id:
            return ServiceResult.failure(
                "User is not authenticated", kind=ErrorKind.VALIDATION
            )
        if isinstance(updates, BaseModel):
            changes = updates.model_dump(exclude_unset=True)
        else:
            changes = dict(updates)
        if not changes:
            return ServiceResult.failure(
                "No profile changes supplied", kind=ErrorKind.VALIDATION
            )
        try:
            profile = await profiles_repo.update_profile(
                self._backend.client, user_id, changes
            )
        except BACKEND_ERRORS as exc:
            message = describe_error(exc)
            log_error("Unable to update profile", user_id=user_id, error=message)
            return ServiceResult.failure(message, code=getattr(exc, "code", None))
        self.profile = profile
        log_info("Profile updated", user_id=user_id, fields=",".join(sorted(changes)))
        return ServiceResult.success(self.profile)

    # sign-up / sign-in / sign-out

    def _auth_failure(self, action: str, exc: BaseException) -> AuthResult:
        raw = describe_error(exc)
        error_type = classify_auth_error(raw)
        friendly = FRIENDLY_MESSAGES.get(error_type, raw)
        self.session = None
        self.user = None
        self.profile = None
        self.state = AuthState.ANONYMOUS
        self.error = friendly
        log_warning(f"{action} failed", error=raw, error_type=error_type.value)
        return AuthResult(
            success=False,
            error=friendly,
            error_type=error_type,
            requires_confirmation="confirm" in raw.lower(),
            details={"message": raw},
        )

    async def sign_up(
        self, email: str, password: str, full_name: str | None = None
    ) -> AuthResult:
        self.error = None
        self.state = AuthState.AUTHENTICATING
        options: dict[str, Any] = {"data": {"full_name": full_name or ""}}
        redirect = get_settings().auth_redirect_url
        if redirect:
            options["email_redirect_to"] = str(redirect)
        log_info("Registering user", email=email)
        try:
            response = await self._backend.auth.sign_up(
                {"email": email, "password": password, "options": options}
            )
        except BACKEND_ERRORS as exc:
            return self._auth_failure("Sign-up", exc)

        user = getattr(response, "user", None)
        session = getattr(response, "session", None)
        identities = getattr(user, "identities", None)
        needs_confirmation = session is None or identities == []
        await self._apply_session(session)
        log_audit_event(
            "AUTH",
            "register",
            user_id=getattr(user, "id", None),
            entity_type="user",
            entity_id=getattr(user, "id", None),
            confirmation_required=needs_confirmation,
        )
        return AuthResult(
            success=True,
            message=CONFIRMATION_MESSAGE if needs_confirmation else REGISTERED_MESSAGE,
            requires_confirmation=needs_confirmation,
        )

    async def sign_in(self, email: str, password: str) -> AuthResult:
        self.error = None
        self.state = AuthState.AUTHENTICATING
        log_info("Signing in", email=email)
        try:
            response = await self._backend.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except BACKEND_ERRORS as exc:
            return self._auth_failure("Sign-in", exc)

        await self._apply_session(getattr(response, "session", None))
        if self.state is not AuthState.AUTHENTICATED:
            self.error = "Sign-in did not return a session."
            log_warning("Sign-in returned no session", email=email)
            return AuthResult(
                success=False, error=self.error, error_type=AuthErrorType.GENERAL
            )
        log_audit_event(
            "AUTH", "login", user_id=self.user_id, entity_type="user", entity_id=self.user_id
        )
        return AuthResult(success=True, message="Signed in.")

    async def sign_out(self) -> AuthResult:
        """Drop the session locally, revoke it remotely, then purge stored tokens.

        The purge runs whatever the remote outcome.
        """

        user_id = self.user_id
        self._clear()

        remote_error: str | None = None
        try:
            await self._backend.auth.sign_out()
        except BACKEND_ERRORS as exc:
            remote_error = describe_error(exc)
            log_error("Remote sign-out failed", user_id=user_id, error=remote_error)

        try:
            removed = await self._local_store().purge()
        except OSError as exc:
            log_error("Unable to purge local session state", error=str(exc))
        else:
            log_info("Local session state purged", keys=len(removed))

        log_audit_event(
            "AUTH", "logout", user_id=user_id, entity_type="user", entity_id=user_id
        )
        if remote_error:
            return AuthResult(success=False, error=remote_error)
        return AuthResult(success=True, message="Signed out.")


auth_manager = AuthSessionManager()
