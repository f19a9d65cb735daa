"""
Cloud backend adapter.

Delegates credential operations to the hosted Supabase SDK and fetches the
profile+role record through a single remote procedure call.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx
from supabase import AsyncClient, AuthApiError, AuthError, AuthRetryableError

from shared.config import BackendKind, Settings, get_settings
from shared.database import create_supabase_client
from shared.exceptions import ConfigurationError

from .exceptions import (
    BackendError,
    ClientNotReadyError,
    NetworkError,
    ProfileFetchError,
    error_for_response,
)
from .interfaces import AuthStateCallback, Subscription
from .models import AuthEvent, IdentityUser, Profile, ProfileUpdate, Session

logger = logging.getLogger(__name__)


PROFILE_RPC = "get_user_profile_with_role"


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def user_from_sdk(user: Any) -> IdentityUser:
    """Normalize a Supabase SDK user object."""
    return IdentityUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        created_at=_to_datetime(getattr(user, "created_at", None)),
        email_confirmed_at=_to_datetime(getattr(user, "email_confirmed_at", None)),
        user_metadata=dict(getattr(user, "user_metadata", None) or {}),
        app_metadata=dict(getattr(user, "app_metadata", None) or {}),
    )


def session_from_sdk(session: Any) -> Session:
    """Normalize a Supabase SDK session object."""
    user = user_from_sdk(session.user)
    expires_in = int(getattr(session, "expires_in", None) or 3600)
    expires_at = getattr(session, "expires_at", None)
    if expires_at is not None:
        return Session(
            access_token=session.access_token,
            refresh_token=session.refresh_token or "",
            token_type=getattr(session, "token_type", None) or "bearer",
            expires_in=expires_in,
            expires_at=datetime.fromtimestamp(int(expires_at), tz=timezone.utc),
            user=user,
        )
    return Session.issue(
        user,
        access_token=session.access_token,
        refresh_token=session.refresh_token or "",
        expires_in=expires_in,
        token_type=getattr(session, "token_type", None) or "bearer",
    )


def classify_auth_error(error: AuthError) -> Exception:
    """Map a Supabase auth error onto the module's error taxonomy."""
    message = getattr(error, "message", None) or str(error)
    if isinstance(error, AuthRetryableError):
        return NetworkError("supabase", message)

    status = getattr(error, "status", None) if isinstance(error, AuthApiError) else None
    return error_for_response(getattr(error, "code", None), message, status)


class _SupabaseSubscription:
    """Wraps the SDK subscription so callers only see ``unsubscribe``."""

    def __init__(self, inner: Any):
        self._inner = inner
        self._active = True

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._inner.unsubscribe()


class SupabaseAuthBackend:
    """
    Backend adapter for the hosted Supabase project.

    The SDK client is created lazily on the first readiness check, so the
    adapter can be constructed synchronously at startup.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], Awaitable[AsyncClient]]] = None,
    ):
        """
        Initialize the cloud backend.

        Args:
            settings: Optional settings override
            client_factory: Optional coroutine factory returning an SDK client.
                            Defaults to ``create_supabase_client``.
        """
        self._settings = settings or get_settings()
        self._client_factory = client_factory or (
            lambda: create_supabase_client(self._settings)
        )
        self._client: Optional[AsyncClient] = None

    @property
    def kind(self) -> BackendKind:
        return BackendKind.CLOUD

    @property
    def service_url(self) -> str:
        return self._settings.supabase_url

    def _require_client(self) -> AsyncClient:
        if self._client is None:
            raise ClientNotReadyError(self.kind.value)
        return self._client

    async def check_ready(self) -> bool:
        if self._client is not None:
            return True
        try:
            self._client = await self._client_factory()
        except ConfigurationError as e:
            logger.warning(f"Supabase client not configured: {e.message}")
            return False
        except Exception as e:
            logger.warning(f"Supabase client construction failed: {e}")
            return False
        logger.debug("Supabase client ready")
        return True

    async def get_session(self) -> Optional[Session]:
        client = self._require_client()
        try:
            session = await client.auth.get_session()
        except AuthError as e:
            raise classify_auth_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e
        return session_from_sdk(session) if session and session.user else None

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        client = self._require_client()
        try:
            response = await client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except AuthError as e:
            raise classify_auth_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e
        if response.session is None:
            raise BackendError("Sign-in did not return a session. Confirm your email first.")
        return session_from_sdk(response.session)

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[IdentityUser]:
        client = self._require_client()
        options: dict[str, Any] = {"data": {"full_name": display_name}}
        if redirect_to:
            options["email_redirect_to"] = redirect_to
        try:
            response = await client.auth.sign_up(
                {"email": email, "password": password, "options": options}
            )
        except AuthError as e:
            raise classify_auth_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e
        return user_from_sdk(response.user) if response.user else None

    async def sign_out(self) -> None:
        client = self._require_client()
        try:
            await client.auth.sign_out()
        except AuthError as e:
            raise classify_auth_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        client = self._require_client()
        try:
            response = await client.auth.sign_in_with_oauth(
                {"provider": provider, "options": {"redirect_to": redirect_to}}
            )
        except AuthError as e:
            raise classify_auth_error(e) from e
        return response.url

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        client = self._require_client()
        try:
            await client.auth.reset_password_for_email(email, {"redirect_to": redirect_to})
        except AuthError as e:
            raise classify_auth_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e

    async def fetch_profile(self, user_id: str, session: Optional[Session]) -> Profile:
        """Fetch profile and role in one RPC round trip."""
        client = self._require_client()
        try:
            response = await client.rpc(PROFILE_RPC, {"p_user_id": user_id}).execute()
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e
        except Exception as e:
            raise ProfileFetchError(user_id, str(e)) from e

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise ProfileFetchError(user_id, "profile not found")
        return Profile.model_validate(data)

    async def update_profile(
        self,
        user_id: str,
        patch: ProfileUpdate,
        session: Optional[Session],
    ) -> None:
        client = self._require_client()
        try:
            await client.table("profiles").update(patch.to_payload()).eq("id", user_id).execute()
        except httpx.TransportError as e:
            raise NetworkError("supabase", str(e)) from e
        except Exception as e:
            raise BackendError(f"Failed to update profile: {e}") from e

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        client = self._require_client()

        def _forward(event: str, session: Any) -> None:
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug(f"Ignoring unknown auth event {event!r}")
                return
            normalized = session_from_sdk(session) if session and session.user else None
            callback(auth_event, normalized)

        return _SupabaseSubscription(client.auth.on_auth_state_change(_forward))

    async def aclose(self) -> None:
        self._client = None
