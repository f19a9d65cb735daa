"""Wiring for a SessionCoordinator from application settings."""

import logging
from typing import Optional

from modules.auth.factory import create_backend
from modules.diagnostics import DiagnosticsReporter
from modules.guest import GuestModeManager
from shared.config import Settings, get_settings
from shared.storage import ClientStorage, JsonFileStorage

from .coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


def create_coordinator(
    settings: Optional[Settings] = None,
    storage: Optional[ClientStorage] = None,
) -> SessionCoordinator:
    """
    Build a coordinator with the configured backend, guest manager and
    diagnostics reporter.

    Args:
        settings: Optional settings override
        storage: Optional storage override (defaults to the JSON state file)

    Returns:
        A coordinator that has not been started yet
    """
    settings = settings or get_settings()
    storage = storage or JsonFileStorage(settings.storage_path)
    config = settings.auth_config()
    backend = create_backend(storage, settings=settings)

    diagnostics = DiagnosticsReporter(
        backend_kind=settings.backend_kind.value,
        service_url=backend.service_url,
        storage=storage,
        guest_mode_enabled=config.guest_mode_enabled,
        probe_timeout=settings.diagnostics_probe_timeout,
    )

    logger.debug(
        f"Session coordinator configured: backend={settings.backend_kind.value}, "
        f"guest_mode={config.guest_mode_enabled}, dev_auto_auth={config.dev_auto_auth}"
    )
    return SessionCoordinator(
        config=config,
        backend=backend,
        guest_manager=GuestModeManager(storage),
        diagnostics=diagnostics,
    )
