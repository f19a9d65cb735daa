import pytest

from modules.auth.exceptions import (
    AuthErrorCode,
    AuthModuleError,
    AuthTimeoutError,
    BackendError,
    ClientNotReadyError,
    GuestModeError,
    InvalidCredentialsError,
    NetworkError,
    NotAuthenticatedError,
    ProfileFetchError,
    ProviderNotSupportedError,
    ServiceUnavailableError,
    error_for_response,
)
from shared.exceptions import AuthenticationError, BeProductiveError, ExternalServiceError


class TestAuthModuleErrors:
    def test_all_inherit_from_base(self):
        """Every auth error is a BeProductiveError."""
        errors = [
            ClientNotReadyError("cloud"),
            ServiceUnavailableError(2),
            AuthTimeoutError("Session check", 18),
            InvalidCredentialsError(),
            BackendError("nope"),
            NetworkError("supabase", "refused"),
            ProfileFetchError("user-1", "missing"),
            GuestModeError("bad persona"),
            ProviderNotSupportedError("google", "local"),
            NotAuthenticatedError(),
        ]
        for error in errors:
            assert isinstance(error, AuthModuleError)
            assert isinstance(error, BeProductiveError)
            assert error.code == error.error_code.value

    def test_only_client_not_ready_is_retryable(self):
        """Readiness is the one retryable category."""
        assert ClientNotReadyError("cloud").retryable is True
        assert ServiceUnavailableError(2).retryable is False
        assert NetworkError("supabase", "refused").retryable is False

    def test_timeout_message(self):
        """Timeout errors name the operation and deadline."""
        error = AuthTimeoutError("Profile fetch", 8.0)
        assert error.message == "Profile fetch timed out after 8s"
        assert error.details == {"operation": "Profile fetch", "deadline": 8.0}

    def test_invalid_credentials_is_authentication_error(self):
        """Credential failures are also shared AuthenticationErrors."""
        assert isinstance(InvalidCredentialsError(), AuthenticationError)

    def test_network_error_is_external_service_error(self):
        """Network failures carry the service name."""
        error = NetworkError("supabase", "connection refused")
        assert isinstance(error, ExternalServiceError)
        assert error.service == "supabase"
        assert error.error_code == AuthErrorCode.NETWORK_ERROR
        assert error.to_dict() == {
            "error": "network_error",
            "message": "Cannot reach supabase: connection refused",
            "details": {"service": "supabase"},
        }

    def test_profile_fetch_error(self):
        """Profile failures keep the user id."""
        error = ProfileFetchError("user-1", "HTTP 500: Internal Server Error")
        assert error.message == "Failed to load profile: HTTP 500: Internal Server Error"
        assert error.details == {"user_id": "user-1"}


class TestErrorForResponse:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("invalid_credentials", AuthErrorCode.INVALID_CREDENTIALS),
            ("invalid_grant", AuthErrorCode.INVALID_CREDENTIALS),
            ("user_already_exists", AuthErrorCode.EMAIL_ALREADY_EXISTS),
            ("email_exists", AuthErrorCode.EMAIL_ALREADY_EXISTS),
            ("over_request_rate_limit", AuthErrorCode.RATE_LIMITED),
            ("over_email_send_rate_limit", AuthErrorCode.RATE_LIMITED),
        ],
    )
    def test_known_codes(self, code, expected):
        """Known backend codes map onto the taxonomy."""
        assert error_for_response(code, "whatever", 400).error_code == expected

    def test_invalid_credentials_type(self):
        """Credential codes produce InvalidCredentialsError."""
        assert isinstance(error_for_response("invalid_grant", "x"), InvalidCredentialsError)

    def test_message_fallbacks(self):
        """Without a code, well-known messages are recognised."""
        assert isinstance(
            error_for_response(None, "Invalid login credentials"), InvalidCredentialsError
        )
        already = error_for_response(None, "User already registered", 422)
        assert already.error_code == AuthErrorCode.EMAIL_ALREADY_EXISTS

    def test_status_429(self):
        """HTTP 429 is rate limiting regardless of message."""
        assert error_for_response(None, "slow down", 429).error_code == AuthErrorCode.RATE_LIMITED

    def test_unknown(self):
        """Anything else is a BackendError with the original message."""
        error = error_for_response("weird", "Database error saving new user", 500)
        assert isinstance(error, BackendError)
        assert error.error_code == AuthErrorCode.BACKEND_ERROR
        assert error.message == "Database error saving new user"
        assert error.status == 500
