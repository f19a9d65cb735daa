"""
Authentication module data models.

These models are the normalized shapes every backend adapter returns,
so the session coordinator never sees SDK- or HTTP-specific payloads.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class AuthEvent(str, Enum):
    """Auth-state change notifications pushed by a backend."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class IdentityUser(BaseModel):
    """
    A user as issued by an identity backend.

    Immutable: re-authentication replaces the whole object.
    """

    id: str = Field(..., description="Opaque user ID")
    email: Optional[str] = Field(None, description="User's email address")
    created_at: Optional[datetime] = Field(None, description="Account creation time")
    email_confirmed_at: Optional[datetime] = Field(None, description="Email confirmation time")
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }

    @field_validator("user_metadata", "app_metadata", mode="before")
    @classmethod
    def _null_metadata_is_empty(cls, value: Any) -> Any:
        return value or {}

    @property
    def email_verified(self) -> bool:
        return self.email_confirmed_at is not None

    @property
    def display_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name")


class Session(BaseModel):
    """
    An authenticated session.

    Never mutated in place; a refresh produces a new Session.
    """

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: int = Field(default=3600, description="Lifetime in seconds")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")
    user: IdentityUser

    model_config = {"frozen": True}

    @classmethod
    def issue(
        cls,
        user: IdentityUser,
        access_token: str,
        refresh_token: str = "",
        expires_in: int = 3600,
        token_type: str = "bearer",
        issued_at: Optional[datetime] = None,
    ) -> "Session":
        """Build a session whose expiry is issue time + lifetime."""
        issued_at = issued_at or datetime.now(timezone.utc)
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=token_type,
            expires_in=expires_in,
            expires_at=issued_at + timedelta(seconds=expires_in),
            user=user,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


class Profile(BaseModel):
    """
    Application profile joined with the user's role.

    Returned by the ``get_user_profile_with_role`` procedure on both backends.
    """

    id: str = Field(..., description="User ID the profile belongs to")
    email: Optional[str] = Field(None, description="Email address")
    full_name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = Field(None, description="Avatar URL")
    role: str = Field(default="user", description="Application role")
    subscription_tier: str = Field(default="free", description="Subscription tier")
    preferences: dict[str, Any] = Field(default_factory=dict)
    onboarding_completed: bool = Field(default=False)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}


class ProfileUpdate(BaseModel):
    """Patch for the mutable profile fields."""

    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    onboarding_completed: Optional[bool] = None
    preferences: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        """Only fields the caller actually set are sent to the backend."""
        return self.model_dump(exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.to_payload()
