"""Factory for the configured identity backend."""

from typing import Optional

from shared.config import BackendKind, Settings, get_settings
from shared.storage import ClientStorage

from .cloud import SupabaseAuthBackend
from .interfaces import IAuthBackend
from .local import LocalAuthBackend


def create_backend(
    storage: ClientStorage,
    settings: Optional[Settings] = None,
) -> IAuthBackend:
    """Build the backend adapter selected by ``settings.backend_kind``.

    Args:
        storage: Durable storage (used by the local backend for its session)
        settings: Optional settings override

    Returns:
        A cloud or local backend adapter
    """
    settings = settings or get_settings()
    if settings.backend_kind == BackendKind.LOCAL:
        return LocalAuthBackend(storage, settings=settings)
    return SupabaseAuthBackend(settings=settings)
