"""
Base exception classes for the BeProductive session client.

Modules raise subclasses of ``BeProductiveError``. The session coordinator
never lets these escape to the UI; it converts them into result objects or
its ``error`` state using ``code`` and ``message``.
"""

from typing import Optional, Any


class BeProductiveError(Exception):
    """
    Base exception for all BeProductive client errors.

    Attributes:
        message: Human-readable description, safe to show to a user
        code: Stable machine-readable category (defaults to the class name)
        details: Extra context for logs and diagnostics
        retryable: Whether repeating the same call may succeed
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Flatten for UI state or telemetry payloads."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BeProductiveError):
    """A backend was selected without the settings it needs."""


class AuthenticationError(BeProductiveError):
    """The identity service rejected the supplied credentials."""


class StorageError(BeProductiveError):
    """Durable client storage could not be read or written."""


class ExternalServiceError(BeProductiveError):
    """A remote service (identity, profile store) could not be reached."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service
