import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from supabase import AuthApiError, AuthRetryableError

from modules.auth.cloud import (
    PROFILE_RPC,
    SupabaseAuthBackend,
    classify_auth_error,
    session_from_sdk,
)
from modules.auth.exceptions import (
    AuthErrorCode,
    BackendError,
    ClientNotReadyError,
    InvalidCredentialsError,
    NetworkError,
    ProfileFetchError,
)
from modules.auth.models import AuthEvent, ProfileUpdate
from shared.config import Settings
from shared.exceptions import ConfigurationError


def _sdk_user(user_id: str = "test-user-123"):
    return SimpleNamespace(
        id=user_id,
        email="test@example.com",
        created_at="2024-03-01T00:00:00Z",
        email_confirmed_at=None,
        user_metadata={"full_name": "Test User"},
        app_metadata={"provider": "email"},
    )


def _sdk_session(token: str = "access-1", expires_at: int | None = 1893456000):
    return SimpleNamespace(
        access_token=token,
        refresh_token="refresh-1",
        token_type="bearer",
        expires_in=3600,
        expires_at=expires_at,
        user=_sdk_user(),
    )


def _mock_client() -> MagicMock:
    client = MagicMock()
    client.auth.get_session = AsyncMock(return_value=_sdk_session())
    client.auth.sign_in_with_password = AsyncMock(
        return_value=SimpleNamespace(session=_sdk_session(), user=_sdk_user())
    )
    client.auth.sign_up = AsyncMock(return_value=SimpleNamespace(session=None, user=_sdk_user("new-user")))
    client.auth.sign_out = AsyncMock()
    client.auth.sign_in_with_oauth = AsyncMock(
        return_value=SimpleNamespace(provider="google", url="https://accounts.google.com/o/oauth2")
    )
    client.auth.reset_password_for_email = AsyncMock()
    rpc_builder = MagicMock()
    rpc_builder.execute = AsyncMock(
        return_value=SimpleNamespace(data={"id": "test-user-123", "role": "admin"})
    )
    client.rpc.return_value = rpc_builder
    return client


@pytest.fixture
def sdk_client() -> MagicMock:
    return _mock_client()


async def _ready_backend(sdk_client) -> SupabaseAuthBackend:
    backend = SupabaseAuthBackend(
        settings=Settings(supabase_url="https://project.supabase.co", supabase_anon_key="anon"),
        client_factory=AsyncMock(return_value=sdk_client),
    )
    assert await backend.check_ready() is True
    return backend


class TestSdkNormalization:
    def test_session_with_epoch_expiry(self):
        """SDK expires_at epochs are converted to aware datetimes."""
        session = session_from_sdk(_sdk_session())
        assert session.expires_at.year == 2030
        assert session.user.email == "test@example.com"
        assert session.user.email_verified is False
        assert session.user.app_metadata == {"provider": "email"}

    def test_session_without_expiry(self):
        """Missing expires_at falls back to the lifetime."""
        session = session_from_sdk(_sdk_session(expires_at=None))
        assert session.expires_in == 3600
        assert not session.is_expired()


class TestClassifyAuthError:
    def test_invalid_credentials(self):
        """invalid_credentials maps to InvalidCredentialsError."""
        error = AuthApiError("Invalid login credentials", 400, "invalid_credentials")
        assert isinstance(classify_auth_error(error), InvalidCredentialsError)

    def test_already_registered(self):
        """user_already_exists maps to email_already_exists."""
        error = AuthApiError("User already registered", 422, "user_already_exists")
        classified = classify_auth_error(error)
        assert classified.error_code == AuthErrorCode.EMAIL_ALREADY_EXISTS

    def test_retryable_is_network(self):
        """Retryable SDK errors are network failures."""
        error = AuthRetryableError("Failed to fetch", 0)
        assert isinstance(classify_auth_error(error), NetworkError)

    def test_unknown_code(self):
        """Anything else is a generic backend error keeping the message."""
        error = AuthApiError("Signups not allowed", 403, "signup_disabled")
        classified = classify_auth_error(error)
        assert isinstance(classified, BackendError)
        assert classified.message == "Signups not allowed"
        assert classified.status == 403


class TestReadiness:
    @pytest.mark.asyncio
    async def test_unconfigured_is_not_ready(self):
        """Missing configuration means not ready, not an exception."""
        factory = AsyncMock(side_effect=ConfigurationError("missing", code="SUPABASE_NOT_CONFIGURED"))
        backend = SupabaseAuthBackend(settings=Settings(), client_factory=factory)
        assert await backend.check_ready() is False

    @pytest.mark.asyncio
    async def test_construction_failure_is_not_ready(self):
        """Any construction failure means not ready."""
        backend = SupabaseAuthBackend(
            settings=Settings(), client_factory=AsyncMock(side_effect=RuntimeError("boom"))
        )
        assert await backend.check_ready() is False

    @pytest.mark.asyncio
    async def test_operations_before_ready(self):
        """Operations before construction raise ClientNotReadyError."""
        backend = SupabaseAuthBackend(settings=Settings(), client_factory=AsyncMock())
        with pytest.raises(ClientNotReadyError):
            await backend.get_session()

    @pytest.mark.asyncio
    async def test_client_built_once(self, sdk_client):
        """The SDK client is created lazily and only once."""
        factory = AsyncMock(return_value=sdk_client)
        backend = SupabaseAuthBackend(settings=Settings(), client_factory=factory)
        await backend.check_ready()
        await backend.check_ready()
        assert factory.await_count == 1


class TestCredentials:
    @pytest.mark.asyncio
    async def test_get_session(self, sdk_client):
        """The persisted SDK session is normalized."""
        cloud_backend = await _ready_backend(sdk_client)
        session = await cloud_backend.get_session()
        assert session.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_get_session_none(self, sdk_client):
        """No SDK session means None."""
        cloud_backend = await _ready_backend(sdk_client)
        sdk_client.auth.get_session.return_value = None
        assert await cloud_backend.get_session() is None

    @pytest.mark.asyncio
    async def test_sign_in(self, sdk_client):
        """Credentials are forwarded to the SDK."""
        cloud_backend = await _ready_backend(sdk_client)
        session = await cloud_backend.sign_in_with_password("test@example.com", "pw")
        sdk_client.auth.sign_in_with_password.assert_awaited_once_with(
            {"email": "test@example.com", "password": "pw"}
        )
        assert session.user.id == "test-user-123"

    @pytest.mark.asyncio
    async def test_sign_in_rejected(self, sdk_client):
        """SDK rejections are classified."""
        cloud_backend = await _ready_backend(sdk_client)
        sdk_client.auth.sign_in_with_password.side_effect = AuthApiError(
            "Invalid login credentials", 400, "invalid_credentials"
        )
        with pytest.raises(InvalidCredentialsError):
            await cloud_backend.sign_in_with_password("test@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_sign_in_transport_error(self, sdk_client):
        """Transport failures become NetworkError."""
        cloud_backend = await _ready_backend(sdk_client)
        sdk_client.auth.sign_in_with_password.side_effect = httpx.ConnectError("refused")
        with pytest.raises(NetworkError):
            await cloud_backend.sign_in_with_password("test@example.com", "pw")

    @pytest.mark.asyncio
    async def test_sign_up_sends_display_name(self, sdk_client):
        """Sign-up passes the display name and redirect."""
        cloud_backend = await _ready_backend(sdk_client)
        user = await cloud_backend.sign_up(
            "new@example.com", "pw123456", "New Person", redirect_to="http://localhost:8080/"
        )
        payload = sdk_client.auth.sign_up.await_args.args[0]
        assert payload["options"] == {
            "data": {"full_name": "New Person"},
            "email_redirect_to": "http://localhost:8080/",
        }
        assert user.id == "new-user"

    @pytest.mark.asyncio
    async def test_oauth_url(self, sdk_client):
        """OAuth returns the provider URL."""
        cloud_backend = await _ready_backend(sdk_client)
        url = await cloud_backend.sign_in_with_oauth("google", "http://localhost:8080/")
        assert url == "https://accounts.google.com/o/oauth2"

    @pytest.mark.asyncio
    async def test_reset_password(self, sdk_client):
        """Password reset forwards the redirect."""
        cloud_backend = await _ready_backend(sdk_client)
        await cloud_backend.reset_password_for_email("test@example.com", "http://x/reset-password")
        sdk_client.auth.reset_password_for_email.assert_awaited_once_with(
            "test@example.com", {"redirect_to": "http://x/reset-password"}
        )


class TestProfiles:
    @pytest.mark.asyncio
    async def test_fetch_profile_single_rpc(self, sdk_client):
        """Profile and role come from one RPC."""
        cloud_backend = await _ready_backend(sdk_client)
        profile = await cloud_backend.fetch_profile("test-user-123", None)
        sdk_client.rpc.assert_called_once_with(PROFILE_RPC, {"p_user_id": "test-user-123"})
        assert profile.role == "admin"

    @pytest.mark.asyncio
    async def test_fetch_profile_empty(self, sdk_client):
        """An empty RPC result is a ProfileFetchError."""
        cloud_backend = await _ready_backend(sdk_client)
        sdk_client.rpc.return_value.execute.return_value = SimpleNamespace(data=[])
        with pytest.raises(ProfileFetchError):
            await cloud_backend.fetch_profile("test-user-123", None)

    @pytest.mark.asyncio
    async def test_fetch_profile_rpc_failure(self, sdk_client):
        """RPC failures are wrapped."""
        cloud_backend = await _ready_backend(sdk_client)
        sdk_client.rpc.return_value.execute.side_effect = RuntimeError("permission denied")
        with pytest.raises(ProfileFetchError) as exc_info:
            await cloud_backend.fetch_profile("test-user-123", None)
        assert "permission denied" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_update_profile(self, sdk_client):
        """Updates go through the profiles table."""
        cloud_backend = await _ready_backend(sdk_client)
        query = MagicMock()
        query.execute = AsyncMock()
        sdk_client.table.return_value.update.return_value.eq.return_value = query

        await cloud_backend.update_profile("test-user-123", ProfileUpdate(full_name="X"), None)

        sdk_client.table.assert_called_once_with("profiles")
        sdk_client.table.return_value.update.assert_called_once_with({"full_name": "X"})
        sdk_client.table.return_value.update.return_value.eq.assert_called_once_with(
            "id", "test-user-123"
        )


class TestAuthStateChanges:
    @pytest.mark.asyncio
    async def test_events_are_normalized(self, sdk_client):
        """SDK events reach the callback as AuthEvent + Session."""
        cloud_backend = await _ready_backend(sdk_client)
        received = []
        cloud_backend.on_auth_state_change(lambda event, session: received.append((event, session)))
        forward = sdk_client.auth.on_auth_state_change.call_args.args[0]

        forward("SIGNED_IN", _sdk_session())
        forward("SIGNED_OUT", None)
        forward("MFA_CHALLENGE_VERIFIED", None)

        assert [event for event, _ in received] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
        assert received[0][1].access_token == "access-1"
        assert received[1][1] is None

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, sdk_client):
        """Unsubscribing twice only unsubscribes the SDK once."""
        cloud_backend = await _ready_backend(sdk_client)
        handle = cloud_backend.on_auth_state_change(lambda event, session: None)
        handle.unsubscribe()
        handle.unsubscribe()
        sdk_client.auth.on_auth_state_change.return_value.unsubscribe.assert_called_once()
