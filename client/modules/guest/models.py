"""
Guest mode data models.

Personas are demo identities that never touch a backend.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel

from modules.auth.models import IdentityUser, Profile, Session


class GuestPersona(str, Enum):
    """Guest personas a visitor can pick."""

    ADMIN = "admin"
    USER = "user"
    REVIEWER = "reviewer"


class PersonaTemplate(BaseModel):
    """Static description of a persona's identity and entitlements."""

    model_config = {"frozen": True}

    full_name: str
    email: str
    role: str
    subscription_tier: str
    onboarding_completed: bool = True


# Fixed creation time so every persona build is identical
GUEST_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)

PERSONAS: dict[GuestPersona, PersonaTemplate] = {
    GuestPersona.ADMIN: PersonaTemplate(
        full_name="Guest Admin",
        email="admin@guest.beproductive.local",
        role="admin",
        subscription_tier="enterprise",
    ),
    GuestPersona.USER: PersonaTemplate(
        full_name="Guest User",
        email="user@guest.beproductive.local",
        role="user",
        subscription_tier="free",
        onboarding_completed=False,
    ),
    GuestPersona.REVIEWER: PersonaTemplate(
        full_name="Guest Reviewer",
        email="reviewer@guest.beproductive.local",
        role="user",
        subscription_tier="premium",
    ),
}


class GuestIdentity(BaseModel):
    """The user/session/profile triple for a guest persona."""

    model_config = {"frozen": True}

    persona: GuestPersona
    user: IdentityUser
    session: Session
    profile: Profile
