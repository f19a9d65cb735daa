"""
Authentication module exceptions.

Backend adapters raise these; the session coordinator catches them and
turns them into ``AuthResult`` failures or the shared ``error`` state.
"""

from enum import Enum
from typing import Any, Optional

from shared.exceptions import (
    AuthenticationError,
    BeProductiveError,
    ExternalServiceError,
)


class AuthErrorCode(str, Enum):
    """Structured error categories surfaced next to the error message."""

    CLIENT_NOT_READY = "client_not_ready"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    GUEST_MODE_ERROR = "guest_mode_error"
    PROVIDER_NOT_SUPPORTED = "provider_not_supported"
    NOT_AUTHENTICATED = "not_authenticated"
    BACKEND_ERROR = "backend_error"
    UNKNOWN_ERROR = "unknown_error"


class AuthModuleError(BeProductiveError):
    """Base exception for session and identity errors."""

    def __init__(
        self,
        message: str,
        code: AuthErrorCode = AuthErrorCode.UNKNOWN_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code=code.value, details=details)
        self.error_code = code


class ClientNotReadyError(AuthModuleError):
    """Raised when the backend client has not finished constructing yet."""

    retryable = True

    def __init__(self, backend: str, reason: str = "client not initialised"):
        super().__init__(
            f"Authentication client not ready: {reason}",
            code=AuthErrorCode.CLIENT_NOT_READY,
            details={"backend": backend},
        )


class ServiceUnavailableError(AuthModuleError):
    """Raised when readiness retries are exhausted."""

    def __init__(self, attempts: int):
        super().__init__(
            "Authentication service unavailable.",
            code=AuthErrorCode.SERVICE_UNAVAILABLE,
            details={"attempts": attempts},
        )


class AuthTimeoutError(AuthModuleError):
    """Raised by the timeout race when a deadline elapses first."""

    def __init__(self, operation: str, deadline: float):
        super().__init__(
            f"{operation} timed out after {deadline:g}s",
            code=AuthErrorCode.TIMEOUT,
            details={"operation": operation, "deadline": deadline},
        )


class InvalidCredentialsError(AuthModuleError, AuthenticationError):
    """Raised when the backend rejects the email/password pair."""

    def __init__(self, message: str = "Incorrect email or password."):
        super().__init__(message, code=AuthErrorCode.INVALID_CREDENTIALS)


class BackendError(AuthModuleError):
    """Raised when the backend rejects a request for a non-credential reason."""

    def __init__(
        self,
        message: str,
        code: AuthErrorCode = AuthErrorCode.BACKEND_ERROR,
        status: Optional[int] = None,
    ):
        details = {"status": status} if status is not None else None
        super().__init__(message, code=code, details=details)
        self.status = status


class NetworkError(AuthModuleError, ExternalServiceError):
    """Raised when the backend cannot be reached."""

    def __init__(self, service: str, message: str):
        ExternalServiceError.__init__(
            self,
            f"Cannot reach {service}: {message}",
            service=service,
            code=AuthErrorCode.NETWORK_ERROR.value,
        )
        self.error_code = AuthErrorCode.NETWORK_ERROR


class ProfileFetchError(AuthModuleError):
    """Raised when the user is authenticated but the profile cannot be loaded."""

    def __init__(self, user_id: str, reason: str):
        super().__init__(
            f"Failed to load profile: {reason}",
            code=AuthErrorCode.PROFILE_FETCH_FAILED,
            details={"user_id": user_id},
        )


class GuestModeError(AuthModuleError):
    """Raised when a guest identity cannot be built or persisted."""

    def __init__(self, message: str):
        super().__init__(message, code=AuthErrorCode.GUEST_MODE_ERROR)


class ProviderNotSupportedError(AuthModuleError):
    """Raised when an OAuth provider is not available on the active backend."""

    def __init__(self, provider: str, backend: str):
        super().__init__(
            f"{provider.capitalize()} sign-in is not available in {backend} mode",
            code=AuthErrorCode.PROVIDER_NOT_SUPPORTED,
            details={"provider": provider, "backend": backend},
        )


class NotAuthenticatedError(AuthModuleError):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, message: str = "No user logged in"):
        super().__init__(message, code=AuthErrorCode.NOT_AUTHENTICATED)


# Backend error codes (GoTrue / Supabase) -> (category, user-facing message)
AUTH_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_not_found": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "email_exists": (
        AuthErrorCode.EMAIL_ALREADY_EXISTS,
        "An account with this email already exists. Try signing in.",
    ),
    "over_request_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many attempts. Please wait a moment and try again.",
    ),
    "over_email_send_rate_limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many emails sent. Please wait a moment and try again.",
    ),
}


def error_for_response(
    code: Optional[str],
    message: str,
    status: Optional[int] = None,
) -> AuthModuleError:
    """
    Classify a backend rejection.

    Args:
        code: Machine-readable error code from the backend, if any
        message: Human-readable message from the backend
        status: HTTP status, if known

    Returns:
        The matching module exception (not raised)
    """
    if code and code in AUTH_ERROR_MAP:
        category, friendly = AUTH_ERROR_MAP[code]
        if category == AuthErrorCode.INVALID_CREDENTIALS:
            return InvalidCredentialsError(friendly)
        return BackendError(friendly, code=category, status=status)

    lowered = message.lower()
    if status == 429:
        return BackendError(
            AUTH_ERROR_MAP["over_request_rate_limit"][1],
            code=AuthErrorCode.RATE_LIMITED,
            status=status,
        )
    if "invalid login credentials" in lowered:
        return InvalidCredentialsError()
    if "already registered" in lowered:
        return BackendError(
            AUTH_ERROR_MAP["user_already_exists"][1],
            code=AuthErrorCode.EMAIL_ALREADY_EXISTS,
            status=status,
        )
    return BackendError(message, status=status)
