"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules.
"""

import pytest
from datetime import datetime, timezone, timedelta
from typing import Optional
import jwt  # PyJWT

from modules.guest import GuestModeManager
from modules.session import SessionCoordinator
from shared.config import AuthConfig, TimeoutSettings, get_settings
from shared.storage import MemoryStorage

from tests.fakes import FakeAuthBackend, make_profile, make_session, TEST_USER_ID


# Test JWT secret (tokens are decoded without verification by the client)
TEST_JWT_SECRET = "test-secret-key-for-testing-only"


def create_test_token(
    user_id: str = "test-user-123",
    email: str = "test@example.com",
    expired: bool = False,
    email_verified: bool = True,
) -> str:
    """
    Create a test JWT access token.

    Args:
        user_id: User ID to include in the token
        email: Email to include in the token
        expired: If True, creates an expired token
        email_verified: Whether the email should be marked as verified

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload = {
        "sub": user_id,
        "email": email,
        "email_confirmed_at": now.isoformat() if email_verified else None,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(exp.timestamp()),
        "iat": int(now.timestamp()),
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def make_config(
    guest_mode_enabled: bool = False,
    dev_auto_auth: bool = False,
    initialization: float = 2.0,
    session_check: float = 1.0,
    profile_fetch: float = 1.0,
    max_retries: int = 2,
) -> AuthConfig:
    """Coordinator config with short deadlines and no retry delay."""
    return AuthConfig(
        guest_mode_enabled=guest_mode_enabled,
        dev_auto_auth=dev_auto_auth,
        timeouts=TimeoutSettings(
            initialization=initialization,
            session_check=session_check,
            profile_fetch=profile_fetch,
        ),
        max_retries=max_retries,
        retry_delay=0,
    )


def build_coordinator(
    backend: FakeAuthBackend,
    config: Optional[AuthConfig] = None,
    storage: Optional[MemoryStorage] = None,
    diagnostics=None,
) -> SessionCoordinator:
    return SessionCoordinator(
        config=config or make_config(),
        backend=backend,
        guest_manager=GuestModeManager(storage if storage is not None else MemoryStorage()),
        diagnostics=diagnostics,
    )


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear the cached settings before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage() -> MemoryStorage:
    """Provide empty in-memory client storage."""
    return MemoryStorage()


@pytest.fixture
def backend() -> FakeAuthBackend:
    """Backend with a known account, a profile, and no current session."""
    return FakeAuthBackend(profiles={TEST_USER_ID: make_profile()})


@pytest.fixture
def signed_in_backend() -> FakeAuthBackend:
    """Backend that already holds a persisted session."""
    return FakeAuthBackend(
        session=make_session(),
        profiles={TEST_USER_ID: make_profile()},
    )


@pytest.fixture
def auth_token() -> str:
    """Create a valid access token for testing."""
    return create_test_token()
