"""
Authentication module.

Identity models, the error taxonomy, and the two interchangeable
identity backends (hosted Supabase and the self-hosted stack).

Public API:
- IAuthBackend: Interface every backend adapter satisfies
- SupabaseAuthBackend / LocalAuthBackend: Concrete adapters
- create_backend: Picks the adapter from settings
- IdentityUser, Session, Profile, ProfileUpdate, AuthEvent: Models
- Auth exceptions: ClientNotReadyError, InvalidCredentialsError, etc.
"""

from .interfaces import IAuthBackend, Subscription, AuthStateCallback
from .models import AuthEvent, IdentityUser, Session, Profile, ProfileUpdate
from .exceptions import (
    AuthErrorCode,
    AuthModuleError,
    ClientNotReadyError,
    ServiceUnavailableError,
    AuthTimeoutError,
    InvalidCredentialsError,
    BackendError,
    NetworkError,
    ProfileFetchError,
    GuestModeError,
    ProviderNotSupportedError,
    NotAuthenticatedError,
)
from .cloud import SupabaseAuthBackend
from .local import LocalAuthBackend
from .factory import create_backend

__all__ = [
    # Interface
    "IAuthBackend",
    "Subscription",
    "AuthStateCallback",
    # Models
    "AuthEvent",
    "IdentityUser",
    "Session",
    "Profile",
    "ProfileUpdate",
    # Exceptions
    "AuthErrorCode",
    "AuthModuleError",
    "ClientNotReadyError",
    "ServiceUnavailableError",
    "AuthTimeoutError",
    "InvalidCredentialsError",
    "BackendError",
    "NetworkError",
    "ProfileFetchError",
    "GuestModeError",
    "ProviderNotSupportedError",
    "NotAuthenticatedError",
    # Backends
    "SupabaseAuthBackend",
    "LocalAuthBackend",
    "create_backend",
]
