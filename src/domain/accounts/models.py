from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class AccountRole(StrEnum):
    """Capability tiers, declared lowest to highest."""

    VIEWER = "viewer"
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    SUPERUSER = "superuser"


# Single source of truth for hierarchical comparisons
ROLE_HIERARCHY: tuple[AccountRole, ...] = tuple(AccountRole)

ADMIN_ROLES = frozenset({AccountRole.ADMIN, AccountRole.SUPERUSER})


class AccountStatus(StrEnum):
    ACTIVE = "active"
    INVITED = "invited"
    SUSPENDED = "suspended"


class SubscriptionStatus(StrEnum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    NONE = "None"


def parse_role(value: Any) -> AccountRole:
    """Resolves a stored or submitted role. Unknown and missing values fall to the lowest tier."""
    if isinstance(value, AccountRole):
        return value
    try:
        return AccountRole(str(value).strip().lower())
    except ValueError:
        return AccountRole.VIEWER


def parse_status(value: Any, default: AccountStatus) -> AccountStatus:
    if isinstance(value, AccountStatus):
        return value
    if value is None:
        return default
    try:
        return AccountStatus(str(value).strip().lower())
    except ValueError:
        return default


def role_rank(role: Any) -> int:
    return ROLE_HIERARCHY.index(parse_role(role))


class Account(SQLModel, table=True):
    """Local profile projection of an identity-provider user.

    `id` is the identity provider's user id and never changes. Role, status and
    capability flags are owned here; identity fields are refreshed from the
    provider's live session claims.
    """

    __tablename__ = "profiles"
    __table_args__ = {"extend_existing": True}

    id: str = Field(primary_key=True)
    email: str | None = Field(default=None, index=True)
    display_name: str | None = None
    role: AccountRole = Field(default=AccountRole.VIEWER)
    # NULL on rows created before statuses existed; read through effective_status
    status: AccountStatus | None = Field(default=AccountStatus.INVITED)

    can_edit_activities: bool = Field(default=False)
    can_edit_lessons: bool = Field(default=False)
    can_manage_year_groups: bool = Field(default=False)
    can_manage_users: bool = Field(default=False)
    # None means unrestricted
    allowed_year_groups: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))

    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def effective_status(self) -> AccountStatus:
        return self.status or AccountStatus.ACTIVE

    @property
    def effective_role(self) -> AccountRole:
        return parse_role(self.role)

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.effective_role.value,
            "status": self.effective_status.value,
            "can_edit_activities": self.can_edit_activities,
            "can_edit_lessons": self.can_edit_lessons,
            "can_manage_year_groups": self.can_manage_year_groups,
            "can_manage_users": self.can_manage_users,
            "allowed_year_groups": self.allowed_year_groups,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class RevokedAccount(SQLModel, table=True):
    """Marker left behind when a profile row is deleted.

    The identity record outlives local deletion, so a still-valid session must
    not be able to recreate the profile. Cleared when the identity is provisioned again.
    """

    __tablename__ = "revoked_profiles"
    __table_args__ = {"extend_existing": True}

    id: str = Field(primary_key=True)
    email: str | None = None
    revoked_by: str | None = None
    revoked_at: datetime = Field(default_factory=utcnow)


class UserPurchase(SQLModel, table=True):
    """Product purchase attached to an account. Read-only in this service."""

    __tablename__ = "user_purchases"
    __table_args__ = {"extend_existing": True}

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="profiles.id", index=True, ondelete="CASCADE")
    product_name: str
    status: str = Field(default="active")
    purchased_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None


def subscription_status(purchases: list[UserPurchase]) -> SubscriptionStatus:
    """Coarse subscription state: any active wins, then any expired, else none."""
    statuses = {p.status for p in purchases}
    if "active" in statuses:
        return SubscriptionStatus.ACTIVE
    if "expired" in statuses:
        return SubscriptionStatus.EXPIRED
    return SubscriptionStatus.NONE
