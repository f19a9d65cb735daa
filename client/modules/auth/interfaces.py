"""
Authentication module interface.

The session coordinator depends on IAuthBackend, not on a concrete backend.
Cloud (Supabase) and local (self-hosted) adapters both satisfy it, which
keeps everything above this layer backend-agnostic and easy to fake in tests.
"""

from typing import Callable, Optional, Protocol, runtime_checkable

from shared.config import BackendKind

from .models import AuthEvent, IdentityUser, Profile, ProfileUpdate, Session


AuthStateCallback = Callable[[AuthEvent, Optional[Session]], None]


@runtime_checkable
class Subscription(Protocol):
    """Disposable handle returned by ``on_auth_state_change``."""

    def unsubscribe(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        ...


@runtime_checkable
class IAuthBackend(Protocol):
    """
    Interface for an identity backend.

    Every method raises module exceptions (``ClientNotReadyError``,
    ``InvalidCredentialsError``, ``NetworkError``, ``BackendError``...)
    rather than SDK- or transport-specific ones.
    """

    @property
    def kind(self) -> BackendKind:
        """Which backend this adapter talks to."""
        ...

    @property
    def service_url(self) -> str:
        """Base URL used for reachability diagnostics."""
        ...

    async def check_ready(self) -> bool:
        """
        Check (and if needed, finish) client construction.

        Returns:
            True once the adapter can serve requests
        """
        ...

    async def get_session(self) -> Optional[Session]:
        """
        Get the currently persisted session, if any.

        Raises:
            ClientNotReadyError: If the client is not constructed yet
        """
        ...

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        ...

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[IdentityUser]:
        """
        Register a new account.

        Returns:
            The created user, or None when the backend withholds it
            (e.g. pending email confirmation)
        """
        ...

    async def sign_out(self) -> None:
        """End the current session on the backend and locally."""
        ...

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        """
        Start an OAuth sign-in.

        Returns:
            URL the UI must redirect to

        Raises:
            ProviderNotSupportedError: If this backend has no OAuth support
        """
        ...

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        """Send a password-reset email."""
        ...

    async def fetch_profile(self, user_id: str, session: Optional[Session]) -> Profile:
        """
        Fetch the combined profile+role record in one round trip.

        Raises:
            ProfileFetchError: If the record is missing or the call fails
        """
        ...

    async def update_profile(
        self,
        user_id: str,
        patch: ProfileUpdate,
        session: Optional[Session],
    ) -> None:
        """Apply a profile patch."""
        ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        """Register for auth-state notifications."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
