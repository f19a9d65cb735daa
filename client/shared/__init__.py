"""
Shared infrastructure for the BeProductive session client.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management and the coordinator config struct
- database: Supabase client factory
- exceptions: Base exception classes
- storage: Durable key/value client storage

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import AuthConfig, BackendKind, Settings, TimeoutSettings, get_settings
from .database import create_supabase_client
from .exceptions import (
    BeProductiveError,
    ConfigurationError,
    AuthenticationError,
    StorageError,
    ExternalServiceError,
)
from .storage import ClientStorage, JsonFileStorage, MemoryStorage

__all__ = [
    "AuthConfig",
    "BackendKind",
    "Settings",
    "TimeoutSettings",
    "get_settings",
    "create_supabase_client",
    "BeProductiveError",
    "ConfigurationError",
    "AuthenticationError",
    "StorageError",
    "ExternalServiceError",
    "ClientStorage",
    "JsonFileStorage",
    "MemoryStorage",
]
