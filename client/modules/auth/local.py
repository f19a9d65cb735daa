"""
Local backend adapter.

Talks to a self-hosted GoTrue-compatible auth server for credential
operations and to PostgREST for profile data. The session is persisted in
durable client storage so it survives restarts, and auth-state changes are
broadcast to subscribers the same way the hosted SDK does.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import jwt

from shared.config import BackendKind, Settings, get_settings
from shared.exceptions import StorageError
from shared.storage import ClientStorage

from .exceptions import (
    BackendError,
    ClientNotReadyError,
    NetworkError,
    ProfileFetchError,
    ProviderNotSupportedError,
    error_for_response,
)
from .interfaces import AuthStateCallback, Subscription
from .models import AuthEvent, IdentityUser, Profile, ProfileUpdate, Session

logger = logging.getLogger(__name__)


SESSION_STORAGE_KEY = "local_auth_session"
PROFILE_RPC_PATH = "/rpc/get_user_profile_with_role"
PGRST_OBJECT = "application/vnd.pgrst.object+json"


def user_from_payload(payload: dict[str, Any]) -> IdentityUser:
    """Normalize a GoTrue user JSON object."""
    return IdentityUser.model_validate(payload)


def session_from_payload(payload: dict[str, Any]) -> Session:
    """
    Build a Session from a GoTrue token response or a stored session.

    ``expires_at`` may be an epoch, an ISO string, or missing, in which
    case the JWT ``exp`` claim is used, falling back to now + ``expires_in``.
    """
    user = user_from_payload(payload["user"])
    access_token = payload["access_token"]
    expires_in = int(payload.get("expires_in") or 3600)

    expires_at = payload.get("expires_at")
    if expires_at is None:
        expires_at = token_expiry(access_token)

    if expires_at is None:
        return Session.issue(
            user,
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or "",
            expires_in=expires_in,
            token_type=payload.get("token_type") or "bearer",
        )

    if isinstance(expires_at, (int, float)):
        expires_at = datetime.fromtimestamp(expires_at, tz=timezone.utc)
    return Session(
        access_token=access_token,
        refresh_token=payload.get("refresh_token") or "",
        token_type=payload.get("token_type") or "bearer",
        expires_in=expires_in,
        expires_at=expires_at,
        user=user,
    )


def token_expiry(access_token: str) -> Optional[int]:
    """Read the ``exp`` claim without verifying the signature."""
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return int(exp) if exp is not None else None


class _ListenerHandle:
    """Subscription handle for the local listener registry."""

    def __init__(self, listeners: list[AuthStateCallback], callback: AuthStateCallback):
        self._listeners = listeners
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class LocalAuthBackend:
    """
    Backend adapter for the self-hosted stack.

    Args:
        storage: Durable storage for the persisted session
        settings: Optional settings override
        http_client: Optional pre-built httpx client (tests inject a
                     ``MockTransport``-backed client here)
    """

    def __init__(
        self,
        storage: ClientStorage,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._storage = storage
        self._http: Optional[httpx.AsyncClient] = http_client
        self._owns_http = http_client is None
        self._listeners: list[AuthStateCallback] = []
        self._auth_url = self._settings.local_auth_url.rstrip("/")
        self._rest_url = self._settings.local_rest_url.rstrip("/")

    @property
    def kind(self) -> BackendKind:
        return BackendKind.LOCAL

    @property
    def service_url(self) -> str:
        return self._auth_url

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _require_client(self) -> httpx.AsyncClient:
        if self._http is None:
            raise ClientNotReadyError(self.kind.value)
        return self._http

    async def check_ready(self) -> bool:
        if not self._auth_url or not self._rest_url:
            logger.warning("Local auth URLs not configured")
            return False
        if self._http is None:
            self._http = httpx.AsyncClient()
            self._owns_http = True
        return True

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        client = self._require_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError("local auth", str(e)) from e

    @staticmethod
    def _raise_for_auth_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = body.get("error_code") or body.get("error")
        message = (
            body.get("msg")
            or body.get("error_description")
            or body.get("message")
            or f"HTTP {response.status_code}: {response.reason_phrase}"
        )
        raise error_for_response(code, message, response.status_code)

    def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception:
                logger.exception(f"Auth state listener failed on {event.value}")

    def _store_session(self, session: Session) -> None:
        try:
            self._storage.set(
                SESSION_STORAGE_KEY,
                {
                    "access_token": session.access_token,
                    "refresh_token": session.refresh_token,
                    "token_type": session.token_type,
                    "expires_in": session.expires_in,
                    "expires_at": int(session.expires_at.timestamp()),
                    "user": session.user.model_dump(mode="json"),
                },
            )
        except StorageError as e:
            logger.warning(f"Could not persist local session: {e.message}")

    def _forget_session(self) -> None:
        try:
            self._storage.remove(SESSION_STORAGE_KEY)
        except StorageError as e:
            logger.warning(f"Could not clear local session: {e.message}")

    def _stored_session(self) -> Optional[Session]:
        raw = self._storage.get(SESSION_STORAGE_KEY)
        if not raw:
            return None
        try:
            session = session_from_payload(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable local session")
            self._forget_session()
            return None
        if session.is_expired():
            logger.info("Stored local session expired, discarding")
            self._forget_session()
            return None
        return session

    @staticmethod
    def _bearer(session: Optional[Session]) -> dict[str, str]:
        if session and session.access_token:
            return {"Authorization": f"Bearer {session.access_token}"}
        return {}

    # ------------------------------------------------------------------
    # IAuthBackend
    # ------------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        self._require_client()
        return self._stored_session()

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._request(
            "POST",
            f"{self._auth_url}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._raise_for_auth_error(response)
        session = session_from_payload(response.json())
        self._store_session(session)
        logger.info(f"Local sign-in succeeded for user {session.user.id}")
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[IdentityUser]:
        response = await self._request(
            "POST",
            f"{self._auth_url}/signup",
            json={
                "email": email,
                "password": password,
                "data": {"full_name": display_name},
            },
        )
        self._raise_for_auth_error(response)
        body = response.json()

        # Auto-confirming servers answer with a full session
        if "access_token" in body:
            session = session_from_payload(body)
            self._store_session(session)
            self._emit(AuthEvent.SIGNED_IN, session)
            return session.user
        if "id" in body:
            return user_from_payload(body)
        return None

    async def sign_out(self) -> None:
        session = self._stored_session()
        self._forget_session()
        try:
            if session is not None:
                response = await self._request(
                    "POST",
                    f"{self._auth_url}/logout",
                    headers=self._bearer(session),
                )
                # An already-revoked token is as good as signed out
                if response.status_code not in (401, 404):
                    self._raise_for_auth_error(response)
        finally:
            self._emit(AuthEvent.SIGNED_OUT, None)

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        raise ProviderNotSupportedError(provider, self.kind.value)

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        response = await self._request(
            "POST",
            f"{self._auth_url}/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )
        self._raise_for_auth_error(response)

    async def fetch_profile(self, user_id: str, session: Optional[Session]) -> Profile:
        """Call the profile+role procedure directly on PostgREST."""
        headers = {
            "Accept": PGRST_OBJECT,
            "Content-Type": "application/json",
            **self._bearer(session),
        }
        response = await self._request(
            "POST",
            f"{self._rest_url}{PROFILE_RPC_PATH}",
            headers=headers,
            json={"p_user_id": user_id},
        )
        if not response.is_success:
            raise ProfileFetchError(
                user_id, f"HTTP {response.status_code}: {response.reason_phrase}"
            )

        data = response.json()
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
        response = await self._request(
            "PATCH",
            f"{self._rest_url}/profiles",
            params={"id": f"eq.{user_id}"},
            headers={
                "Content-Type": "application/json",
                "Prefer": "return=minimal",
                **self._bearer(session),
            },
            json=patch.to_payload(),
        )
        if not response.is_success:
            raise BackendError(
                f"Failed to update profile: HTTP {response.status_code}",
                status=response.status_code,
            )

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        self._listeners.append(callback)
        return _ListenerHandle(self._listeners, callback)

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
        self._http = None
        self._listeners.clear()
