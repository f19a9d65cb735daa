"""
Centralized configuration for the BeProductive session client.

All settings are loaded from environment variables with sensible defaults.
Backend-specific settings are namespaced (e.g., SUPABASE_*, LOCAL_*).

The coordinator never reads settings directly: ``Settings.auth_config()``
produces an explicit ``AuthConfig`` that is handed to its constructor.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendKind(str, Enum):
    """Identity backend the client talks to."""

    CLOUD = "cloud"
    LOCAL = "local"


class TimeoutSettings(BaseModel):
    """Deadlines (seconds) used by the session coordinator."""

    model_config = {"frozen": True}

    initialization: float = Field(default=20.0, gt=0, description="Global init deadline")
    session_check: float = Field(default=18.0, gt=0, description="Initial session query")
    profile_fetch: float = Field(default=8.0, gt=0, description="Profile+role fetch")


class AuthConfig(BaseModel):
    """
    Explicit configuration struct for a SessionCoordinator.

    Built once at startup (usually via ``Settings.auth_config()``) and
    passed into the coordinator constructor.
    """

    model_config = {"frozen": True}

    backend_kind: BackendKind = BackendKind.CLOUD
    guest_mode_enabled: bool = False
    dev_auto_auth: bool = False
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)
    site_url: str = "http://localhost:8080"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "BeProductive"
    environment: str = "development"

    # Backend selection
    backend_kind: BackendKind = BackendKind.CLOUD

    # Feature Flags
    enable_guest_mode: bool = False
    skip_login: bool = False

    # Supabase (cloud backend)
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Self-hosted stack (local backend)
    local_auth_url: str = "http://localhost:9999"
    local_rest_url: str = "http://localhost:8000"

    # Redirect base for OAuth, sign-up confirmation and password reset
    site_url: str = "http://localhost:8080"

    # Durable client storage
    storage_path: Path = Path.home() / ".beproductive" / "client_state.json"

    # Timeouts (seconds) and retry policy
    auth_init_timeout: float = 20.0
    session_check_timeout: float = 18.0
    profile_fetch_timeout: float = 8.0
    auth_max_retries: int = 2
    auth_retry_delay: float = 1.0
    diagnostics_probe_timeout: float = 3.0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def backend_url(self) -> str:
        """Base URL of the identity service for the selected backend."""
        if self.backend_kind == BackendKind.LOCAL:
            return self.local_auth_url
        return self.supabase_url

    def auth_config(self) -> AuthConfig:
        """
        Build the coordinator configuration struct.

        The login bypass is only honoured outside production.
        """
        return AuthConfig(
            backend_kind=self.backend_kind,
            guest_mode_enabled=self.enable_guest_mode,
            dev_auto_auth=self.skip_login and not self.is_production,
            timeouts=TimeoutSettings(
                initialization=self.auth_init_timeout,
                session_check=self.session_check_timeout,
                profile_fetch=self.profile_fetch_timeout,
            ),
            max_retries=self.auth_max_retries,
            retry_delay=self.auth_retry_delay,
            site_url=self.site_url,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
