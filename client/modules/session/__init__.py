"""
Session module.

Coordinates authentication state for the whole client: initial session
establishment, backend notifications, profile loading, guest mode and the
user-facing auth mutations.

Public API:
- SessionCoordinator: The coordinator itself
- create_coordinator: Wire a coordinator from Settings
- AuthSnapshot / AuthState / AuthResult: What callers observe
- RetryController / TimeoutRace: Retry and deadline primitives
"""

from .models import AuthResult, AuthSnapshot, AuthState
from .retry import RetryController, RetryState
from .timeouts import TimeoutRace
from .coordinator import (
    CancellationToken,
    SessionCoordinator,
    build_dev_identity,
)
from .builder import create_coordinator

__all__ = [
    # Coordinator
    "SessionCoordinator",
    "create_coordinator",
    "build_dev_identity",
    "CancellationToken",
    # Models
    "AuthResult",
    "AuthSnapshot",
    "AuthState",
    # Primitives
    "RetryController",
    "RetryState",
    "TimeoutRace",
]
