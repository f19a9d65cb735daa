"""
Session coordinator data models.

``AuthSnapshot`` is the read-only view handed to UI code; ``AuthResult`` is
what every mutation returns instead of raising.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from modules.auth.exceptions import AuthErrorCode, AuthModuleError
from modules.auth.models import IdentityUser, Profile, Session
from modules.guest.models import GuestPersona


class AuthState(str, Enum):
    """Coordinator lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    GUEST = "guest"
    ERROR = "error"


class AuthSnapshot(BaseModel):
    """Immutable view of the coordinator state at one point in time."""

    model_config = {"frozen": True}

    state: AuthState
    user: Optional[IdentityUser] = None
    session: Optional[Session] = None
    profile: Optional[Profile] = None
    loading: bool = False
    error: Optional[str] = None
    error_code: Optional[AuthErrorCode] = None
    is_guest: bool = False
    guest_type: Optional[GuestPersona] = None
    diagnostics_hint: Optional[str] = None
    can_continue_as_guest: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.session is not None


class AuthResult(BaseModel):
    """
    Outcome of a mutation (sign-in, sign-up, reset, ...).

    Inspect ``success``; on failure ``error_code`` and ``error_message``
    describe what went wrong.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    redirect_url: Optional[str] = Field(None, description="OAuth provider URL to open")

    @classmethod
    def ok(cls, user_id: Optional[str] = None, redirect_url: Optional[str] = None) -> "AuthResult":
        return cls(success=True, user_id=user_id, redirect_url=redirect_url)

    @classmethod
    def failure(cls, error: AuthModuleError) -> "AuthResult":
        return cls(
            success=False,
            error_code=error.error_code,
            error_message=error.message,
        )
