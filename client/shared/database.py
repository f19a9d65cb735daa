"""
Supabase client factory.

The session client only ever talks to Supabase with the public anon key;
row level security is enforced by the user's own access token once signed in.
"""

from supabase import AsyncClient, acreate_client

from .config import Settings, get_settings
from .exceptions import ConfigurationError


async def create_supabase_client(settings: Settings | None = None) -> AsyncClient:
    """
    Create an async Supabase client for the configured project.

    Args:
        settings: Optional settings override (defaults to cached settings)

    Returns:
        Async Supabase client configured with the anon key

    Raises:
        ConfigurationError: If URL or anon key is missing
    """
    settings = settings or get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise ConfigurationError(
            "Supabase configuration missing. "
            "Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables.",
            code="SUPABASE_NOT_CONFIGURED",
        )

    return await acreate_client(
        settings.supabase_url,
        settings.supabase_anon_key,
    )
