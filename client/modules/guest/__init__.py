"""
Guest mode module.

No-network demo identities and the persisted persona selection.

Public API:
- GuestModeManager: Builds identities, persists/clears the selection
- GuestPersona: Available personas
- GuestIdentity: User/session/profile triple
"""

from .models import GuestPersona, GuestIdentity, PERSONAS
from .manager import (
    GuestModeManager,
    GUEST_SELECTION_KEY,
    guest_user_id,
    is_guest_user_id,
)

__all__ = [
    "GuestModeManager",
    "GuestPersona",
    "GuestIdentity",
    "PERSONAS",
    "GUEST_SELECTION_KEY",
    "guest_user_id",
    "is_guest_user_id",
]
