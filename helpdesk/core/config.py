from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    The backend variables accept the ``VITE_`` prefixed names used by the
    single-page front end so both halves can share one ``.env`` file.
    """

    app_name: str = "HelpDesk Pro"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    supabase_url: AnyHttpUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    supabase_anon_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
    )
    client_info: str = Field(
        default="helpdesk-system@1.0.0", validation_alias="HELPDESK_CLIENT_INFO"
    )
    auth_redirect_url: AnyHttpUrl | None = Field(
        default=None, validation_alias="AUTH_REDIRECT_URL"
    )
    local_state_path: Path = Field(
        default=_PROJECT_ROOT / ".helpdesk" / "local_state.json",
        validation_alias="HELPDESK_STATE_PATH",
    )
    reference_cache_ttl: float = Field(
        default=300.0, gt=0, validation_alias="REFERENCE_CACHE_TTL"
    )
    backend_timeout: int = Field(default=20, ge=1, validation_alias="BACKEND_TIMEOUT")
    log_path: Path | None = Field(default=None, validation_alias="HELPDESK_LOG_PATH")
    allowed_origins: Annotated[list[AnyHttpUrl], NoDecode] = Field(
        default_factory=list,
        validation_alias="ALLOWED_ORIGINS",
    )

    @field_validator(
        "supabase_url",
        "supabase_anon_key",
        "auth_redirect_url",
        "log_path",
        mode="before",
    )
    @classmethod
    def _empty_string_to_none(cls, value):  # type: ignore[override]
        """Coerce blank environment variables to ``None`` so optional values stay optional."""

        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def backend_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    model_config = SettingsConfigDict(
        env_file=(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
