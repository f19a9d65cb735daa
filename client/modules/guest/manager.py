"""
Guest mode manager.

Builds guest identities without any network access and persists the chosen
persona in durable client storage so a reload lands back in the same persona.
Everything here is synchronous: restoring a persona must not await anything.
"""

import logging
from datetime import timedelta
from typing import Optional

from modules.auth.exceptions import GuestModeError
from modules.auth.models import IdentityUser, Profile, Session
from shared.exceptions import StorageError
from shared.storage import ClientStorage

from .models import GUEST_EPOCH, PERSONAS, GuestIdentity, GuestPersona

logger = logging.getLogger(__name__)


GUEST_SELECTION_KEY = "guest_mode_selection"

# Guest sessions are issued at GUEST_EPOCH; they never expire in practice
GUEST_SESSION_LIFETIME = timedelta(days=365 * 100)


def guest_user_id(persona: GuestPersona) -> str:
    return f"guest-{persona.value}-id"


def is_guest_user_id(user_id: Optional[str]) -> bool:
    return any(user_id == guest_user_id(persona) for persona in GuestPersona)


class GuestModeManager:
    """
    Owns the persisted guest selection and builds persona identities.

    Args:
        storage: Durable client storage holding the selection
    """

    def __init__(self, storage: ClientStorage):
        self._storage = storage

    def build_identity(self, persona: GuestPersona) -> GuestIdentity:
        """
        Construct the deterministic user/session/profile for ``persona``.

        Raises:
            GuestModeError: If the persona is unknown
        """
        try:
            persona = GuestPersona(persona)
            template = PERSONAS[persona]
        except (ValueError, KeyError) as e:
            raise GuestModeError(f"Unknown guest persona: {persona!r}") from e

        user_id = guest_user_id(persona)
        user = IdentityUser(
            id=user_id,
            email=template.email,
            created_at=GUEST_EPOCH,
            email_confirmed_at=GUEST_EPOCH,
            user_metadata={"full_name": template.full_name, "guest": True},
            app_metadata={"provider": "guest"},
        )
        session = Session.issue(
            user,
            access_token=f"guest-access-token-{persona.value}",
            refresh_token=f"guest-refresh-token-{persona.value}",
            expires_in=int(GUEST_SESSION_LIFETIME.total_seconds()),
            issued_at=GUEST_EPOCH,
        )
        profile = Profile(
            id=user_id,
            email=template.email,
            full_name=template.full_name,
            role=template.role,
            subscription_tier=template.subscription_tier,
            onboarding_completed=template.onboarding_completed,
            created_at=GUEST_EPOCH,
            updated_at=GUEST_EPOCH,
        )
        return GuestIdentity(persona=persona, user=user, session=session, profile=profile)

    def load_selection(self) -> Optional[GuestPersona]:
        """
        Read the persisted persona.

        Unknown values are cleared and reported as no selection.
        """
        try:
            raw = self._storage.get(GUEST_SELECTION_KEY)
        except StorageError as e:
            logger.warning(f"Could not read guest selection: {e.message}")
            return None
        if raw is None:
            return None
        try:
            return GuestPersona(raw)
        except ValueError:
            logger.warning(f"Discarding unknown guest selection {raw!r}")
            self._discard()
            return None

    def save_selection(self, persona: GuestPersona) -> None:
        """
        Persist the chosen persona.

        Raises:
            GuestModeError: If storage rejects the write
        """
        try:
            self._storage.set(GUEST_SELECTION_KEY, GuestPersona(persona).value)
        except StorageError as e:
            raise GuestModeError(f"Failed to save guest selection: {e.message}") from e

    def clear_selection(self) -> None:
        """
        Forget the persisted persona.

        Raises:
            GuestModeError: If storage rejects the delete
        """
        try:
            self._storage.remove(GUEST_SELECTION_KEY)
        except StorageError as e:
            raise GuestModeError(f"Failed to clear guest selection: {e.message}") from e

    def restore(self) -> Optional[GuestIdentity]:
        """Rebuild the identity for the persisted persona, if any."""
        persona = self.load_selection()
        if persona is None:
            return None
        return self.build_identity(persona)

    def _discard(self) -> None:
        try:
            self._storage.remove(GUEST_SELECTION_KEY)
        except StorageError as e:
            logger.warning(f"Could not clear guest selection: {e.message}")
