from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from src.config.settings import settings
from src.domain.accounts.models import ADMIN_ROLES, Account, AccountRole, parse_role, role_rank

DEFAULT_DENIED_MESSAGE = "Access denied."

# The session-level role claim that predates profile rows
LEGACY_ADMIN_CLAIMS = frozenset({"admin", "administrator"})


class AccessDecision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"
    PENDING = "pending"


class Capability(StrEnum):
    EDIT_ACTIVITIES = "can_edit_activities"
    EDIT_LESSONS = "can_edit_lessons"
    MANAGE_YEAR_GROUPS = "can_manage_year_groups"
    MANAGE_USERS = "can_manage_users"


@dataclass(frozen=True)
class Viewer:
    """The caller as seen by the guard.

    Identity fields (id, email, session role claim) come from the identity
    provider's live session; everything else is read from the profile row.
    """

    id: str
    email: str | None = None
    role: str | None = None
    profile: Account | None = None

    @property
    def effective_role(self) -> AccountRole:
        if self.profile is not None:
            return self.profile.effective_role
        return parse_role(self.role)

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.effective_role.value,
            "profile": self.profile.to_public() if self.profile else None,
        }


def _is_super_admin_email(email: str | None) -> bool:
    configured = settings.SUPER_ADMIN_EMAIL
    if not configured or not email:
        return False
    return email.strip().lower() == configured.strip().lower()


def has_required_role(viewer: Viewer, required: AccountRole | str) -> bool:
    return role_rank(viewer.effective_role) >= role_rank(required)


def can_manage_users(viewer: Viewer) -> bool:
    """Any one condition grants user management; this is a disjunction, not a tier check."""
    profile = viewer.profile
    return (
        _is_super_admin_email(viewer.email)
        or (viewer.role or "").lower() in LEGACY_ADMIN_CLAIMS
        or (profile is not None and profile.effective_role in ADMIN_ROLES)
        or (profile is not None and profile.can_manage_users is True)
    )


def has_capability(viewer: Viewer, capability: Capability | str) -> bool:
    capability = Capability(capability)
    if capability is Capability.MANAGE_USERS:
        return can_manage_users(viewer)

    profile = viewer.profile
    if profile is None:
        return False
    return profile.effective_role in ADMIN_ROLES or bool(getattr(profile, capability.value))


def can_access_year_group(viewer: Viewer, year_group: str) -> bool:
    profile = viewer.profile
    if profile is None:
        return False
    if profile.effective_role in ADMIN_ROLES or profile.allowed_year_groups is None:
        return True
    return year_group in profile.allowed_year_groups


def check_access(
    viewer: Viewer | None,
    required_role: AccountRole | str | None = None,
    require_manage_users: bool = False,
) -> AccessDecision:
    """Decides whether the viewer may see protected content.

    Returns PENDING while the session is unresolved so callers render nothing
    instead of flashing a denial.
    """
    if viewer is None:
        return AccessDecision.PENDING

    if require_manage_users and not can_manage_users(viewer):
        return AccessDecision.DENY

    if required_role is not None and not has_required_role(viewer, required_role):
        return AccessDecision.DENY

    return AccessDecision.ALLOW
