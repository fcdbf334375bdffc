from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from supabase import AsyncClient, AuthError, PostgrestAPIError, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from .config import get_settings
from .local_state import LocalStore, get_local_store
from .logging import log_error
from .results import ServiceResult

NOT_FOUND_CODE = "PGRST116"


class BackendError(RuntimeError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class BackendNotConfiguredError(BackendError):
    pass


def is_not_found(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is the PostgREST "no rows" error."""

    return getattr(exc, "code", None) == NOT_FOUND_CODE


def describe_error(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    text = str(exc).strip()
    return text or exc.__class__.__name__


# Errors that a backend round-trip may raise. Anything else is a programming
# error and is left to propagate.
BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    PostgrestAPIError,
    AuthError,
    BackendError,
    httpx.HTTPError,
)


class Backend:
    """Owns the Supabase client used for table queries and auth calls."""

    def __init__(self, storage: LocalStore | None = None) -> None:
        self._client: AsyncClient | None = None
        self._settings = get_settings()
        self._storage = storage

    def is_configured(self) -> bool:
        return self._settings.backend_configured

    async def connect(self) -> None:
        if self._client is not None:
            return
        if not self.is_configured():
            log_error(
                "Backend configuration missing; set SUPABASE_URL and SUPABASE_ANON_KEY",
                url=str(self._settings.supabase_url or "UNDEFINED"),
                key="PRESENT" if self._settings.supabase_anon_key else "UNDEFINED",
            )
            return
        storage = self._storage or get_local_store()
        logger.info("Connecting to backend at {url}", url=str(self._settings.supabase_url))
        self._client = await acreate_client(
            str(self._settings.supabase_url),
            self._settings.supabase_anon_key,
            options=AsyncClientOptions(
                auto_refresh_token=True,
                persist_session=True,
                storage=storage,
                headers={"X-Client-Info": self._settings.client_info},
                postgrest_client_timeout=self._settings.backend_timeout,
            ),
        )

    async def disconnect(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        logger.info("Disconnecting from backend")
        try:
            await client.postgrest.aclose()
        except httpx.HTTPError as exc:  # pragma: no cover - transport teardown
            logger.warning("Backend client did not close cleanly: {error}", error=str(exc))

    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            if not self.is_configured():
                raise BackendNotConfiguredError("Backend is not configured")
            raise BackendError("Backend client not initialised")
        return self._client

    def table(self, name: str) -> Any:
        return self.client.table(name)

    @property
    def auth(self) -> Any:
        return self.client.auth

    async def test_connection(self) -> ServiceResult[dict[str, Any]]:
        """Check that both the auth subsystem and the database answer."""

        try:
            session = await self.auth.get_session()
            response = await self.table("profiles").select("id").limit(1).execute()
        except BACKEND_ERRORS as exc:
            message = describe_error(exc)
            log_error("Backend connection test failed", error=message)
            return ServiceResult.failure(message)
        logger.info("Backend connection established")
        return ServiceResult.success(
            {
                "authenticated": session is not None,
                "profiles_visible": len(response.data or []),
            }
        )


backend = Backend()
