import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import desc, select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.config.settings import settings
from src.core.clients import SupabaseAuthClient
from src.core.notifications import notify
from src.domain.accounts import lifecycle
from src.domain.accounts.exceptions import (
    AccountNotFound,
    IncompleteProviderResponse,
    ProvisioningError,
    ValidationError,
    VersionConflict,
)
from src.domain.accounts.models import (
    ADMIN_ROLES,
    Account,
    AccountRole,
    AccountStatus,
    RevokedAccount,
    SubscriptionStatus,
    UserPurchase,
    parse_role,
    parse_status,
    subscription_status,
    utcnow,
)
from src.domain.accounts.permissions import Viewer

MIN_PASSWORD_LENGTH = 6
RESET_PASSWORD_PATH = "/reset-password"

# Status is absent: it only moves through set_suspended and invite acceptance
EDITABLE_FIELDS = frozenset(
    {
        "display_name",
        "role",
        "can_edit_activities",
        "can_edit_lessons",
        "can_manage_year_groups",
        "can_manage_users",
        "allowed_year_groups",
    }
)

IDENTITY_CLEANUP_WARNING = (
    "The profile was removed, but the identity record still exists in Supabase Auth. "
    "Delete it there if the person must no longer be able to sign in."
)


@dataclass
class ProvisioningResult:
    account: Account
    invited: bool
    profile_synced: bool = True


@dataclass
class DeletionResult:
    account_id: str
    email: str | None
    warnings: list[str] = field(default_factory=list)


@dataclass
class PurchaseSummary:
    purchases: list[UserPurchase]
    subscription_status: SubscriptionStatus


def _normalize_email(email: Any) -> str:
    return email.strip() if isinstance(email, str) else ""


def _normalize_display_name(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def build_redirect(redirect_base: str | None) -> str | None:
    """Target page where invitees and reset requesters set a password."""
    base = settings.PUBLIC_BASE_URL or redirect_base
    if not base:
        return None
    return f"{base.rstrip('/')}{RESET_PASSWORD_PATH}"


def should_send_invite(password: str | None, status: AccountStatus, send_invite_email: bool | None) -> bool:
    """An explicit True always invites; otherwise invite when there is no password and the account starts invited."""
    if send_invite_email is True:
        return True
    return not password and status == AccountStatus.INVITED


class AccountService:
    """Administrative operations over identity-provider users and their profile rows."""

    def __init__(self, session: AsyncSession, auth_client: SupabaseAuthClient | None = None) -> None:
        self.session = session
        self._auth_client = auth_client

    @property
    def auth(self) -> SupabaseAuthClient:
        # Built lazily so local-only operations work on a deployment without provider secrets
        if self._auth_client is None:
            self._auth_client = SupabaseAuthClient()
        return self._auth_client

    # --- Provisioning ---

    async def create_account(
        self,
        email: Any,
        password: str | None = None,
        display_name: str | None = None,
        role: str | None = None,
        status: str | None = None,
        send_invite_email: bool | None = None,
        redirect_base: str | None = None,
    ) -> ProvisioningResult:
        """Creates one identity, with a password or by invitation, then upserts its profile row.

        Raises:
            ValidationError: Missing email or a password shorter than six characters.
            ConfigurationError: Identity provider secrets are not configured.
            ProvisioningError: The identity provider rejected the request.
        """
        email = _normalize_email(email)
        if not email:
            raise ValidationError("Email is required.")
        if password and len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        resolved_role = parse_role(role)
        resolved_status = parse_status(status, default=AccountStatus.INVITED)
        name = _normalize_display_name(display_name)
        metadata = {"display_name": name, "role": resolved_role.value}

        use_invite = should_send_invite(password, resolved_status, send_invite_email)

        if not use_invite and password:
            user = await self.auth.create_user(email, password, metadata)
            # Password accounts are usable immediately unless the caller chose a status
            if status is None:
                resolved_status = AccountStatus.ACTIVE
        else:
            use_invite = True
            user = await self.auth.invite_user(email, metadata, build_redirect(redirect_base))

        user_id = user.get("id")
        if not user_id:
            logger.error(f"Identity provider returned no user id for {email}")
            raise IncompleteProviderResponse()

        account, synced = await self._upsert_profile(
            user_id=str(user_id),
            email=user.get("email") or email,
            display_name=name,
            role=resolved_role,
            status=resolved_status,
        )
        logger.info(
            f"Provisioned {account.email} as {resolved_role.value} "
            f"({'invitation sent' if use_invite else 'password set'}, status={resolved_status.value})"
        )
        return ProvisioningResult(account=account, invited=use_invite, profile_synced=synced)

    async def _upsert_profile(
        self,
        user_id: str,
        email: str,
        display_name: str | None,
        role: AccountRole,
        status: AccountStatus,
    ) -> tuple[Account, bool]:
        """Best-effort insert-or-update keyed by id. Failure leaves the identity in place."""
        fields = {"email": email, "display_name": display_name, "role": role, "status": status}
        try:
            account = await self.session.get(Account, user_id)
            if account is None:
                account = Account(id=user_id, **fields)
            else:
                for key, value in fields.items():
                    setattr(account, key, value)
                lifecycle.stamp(account)
            self.session.add(account)

            revoked = await self.session.get(RevokedAccount, user_id)
            if revoked is not None:
                await self.session.delete(revoked)
                logger.info(f"Cleared revocation for re-provisioned identity {email}")

            await self.session.commit()
            await self.session.refresh(account)
            return account, True
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.bind(event="SyncWarning", user_id=user_id).warning(
                f"Profile upsert failed after identity creation for {email}: {e}"
            )
            await notify(f"Profile sync failed for `{email}` ({user_id}). The identity exists; check the profile row.")
            return Account(id=user_id, updated_at=utcnow(), **fields), False

    async def resend_invite(self, email: Any, redirect_base: str | None = None) -> None:
        email = _normalize_email(email)
        if not email:
            raise ValidationError("Email is required.")
        await self.auth.invite_user(email, None, build_redirect(redirect_base))
        logger.info(f"Invite resent to {email}")

    async def send_password_reset(self, email: Any, redirect_base: str | None = None) -> None:
        email = _normalize_email(email)
        if not email:
            raise ValidationError("Email is required.")
        await self.auth.send_password_reset(email, build_redirect(redirect_base))
        logger.info(f"Password reset dispatched to {email}")

    # --- Profile management ---

    async def list_accounts(self) -> list[Account]:
        statement = select(Account).order_by(desc(Account.created_at))
        return list((await self.session.exec(statement)).all())

    async def get_account(self, account_id: str) -> Account:
        account = await self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFound()
        return account

    async def update_account(
        self,
        account_id: str,
        changes: dict[str, Any],
        actor_id: str | None = None,
        expected_version: int | None = None,
    ) -> Account:
        """Applies a partial update to a profile row.

        Raises:
            AccountNotFound: No profile with this id.
            ValidationError: Unknown or non-editable field (including `status`), unknown role,
                or an administrator demoting themselves.
            VersionConflict: `expected_version` no longer matches the stored row.
        """
        account = await self.get_account(account_id)

        if expected_version is not None and account.version != expected_version:
            raise VersionConflict()

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}.")

        updates = dict(changes)
        if "role" in updates:
            try:
                updates["role"] = AccountRole(str(updates["role"]).strip().lower())
            except ValueError as e:
                raise ValidationError(f"Unknown role: {updates['role']}.") from e
        if "display_name" in updates:
            updates["display_name"] = _normalize_display_name(updates["display_name"])
        if "allowed_year_groups" in updates:
            groups = updates["allowed_year_groups"]
            updates["allowed_year_groups"] = list(dict.fromkeys(groups)) if groups else None

        if account.id == actor_id and "role" in updates:
            if updates["role"] not in ADMIN_ROLES and account.effective_role in ADMIN_ROLES:
                raise ValidationError("Cannot remove your own administrator role.")

        for key, value in updates.items():
            setattr(account, key, value)
        return await self._commit(account, f"Updated {account.email or account.id}: {sorted(updates)}")

    async def set_suspended(self, account_id: str, suspended: bool, actor_id: str | None = None) -> Account:
        account = await self.get_account(account_id)
        if suspended and account.id == actor_id:
            raise ValidationError("Cannot suspend your own account.")

        account.status = lifecycle.toggle_suspended(account.status, suspended)
        verb = "Suspended" if suspended else "Reactivated"
        return await self._commit(account, f"{verb} {account.email or account.id}")

    async def delete_account(self, account_id: str, actor_id: str | None = None) -> DeletionResult:
        """Removes the local profile row only. The identity record is left for manual cleanup.

        A revocation marker keeps the identity's live sessions from recreating the row.
        """
        account = await self.get_account(account_id)
        if account.id == actor_id:
            raise ValidationError("Cannot delete your own account.")

        email = account.email
        await self.session.delete(account)
        await self.session.merge(RevokedAccount(id=account_id, email=email, revoked_by=actor_id))
        await self.session.commit()

        logger.info(f"Deleted profile {email or account_id}")
        await notify(f"Profile `{email or account_id}` deleted. Remove the identity record in Supabase Auth.")
        return DeletionResult(account_id=account_id, email=email, warnings=[IDENTITY_CLEANUP_WARNING])

    async def list_purchases(self, account_id: str) -> PurchaseSummary:
        await self.get_account(account_id)
        statement = (
            select(UserPurchase).where(UserPurchase.user_id == account_id).order_by(desc(UserPurchase.purchased_at))
        )
        purchases = list((await self.session.exec(statement)).all())
        return PurchaseSummary(purchases=purchases, subscription_status=subscription_status(purchases))

    async def _commit(self, account: Account, message: str) -> Account:
        lifecycle.stamp(account)
        self.session.add(account)
        await self.session.commit()
        await self.session.refresh(account)
        logger.info(message)
        return account

    # --- Session reconciliation ---

    async def resolve_viewer(self, access_token: str | None) -> Viewer | None:
        """Builds the current viewer from the live session plus the profile row.

        Returns None (unauthenticated) when there is no token, the provider
        rejects it, the lookup exceeds AUTH_CHECK_TIMEOUT_SECONDS, or the
        identity's profile was deleted by an administrator.
        """
        if not access_token:
            return None

        try:
            user = await asyncio.wait_for(self.auth.get_user(access_token), timeout=settings.AUTH_CHECK_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("Session check timed out; treating caller as unauthenticated.")
            return None
        except ProvisioningError as e:
            logger.info(f"Session rejected by identity provider: {e.message}")
            return None

        user_id = user.get("id")
        if not user_id:
            return None

        if await self.session.get(RevokedAccount, str(user_id)) is not None:
            logger.warning(f"Rejected session for deleted profile {user.get('email') or user_id}")
            return None

        profile = await self._reconcile_profile(user)
        claims = user.get("app_metadata") or {}
        return Viewer(id=str(user_id), email=user.get("email"), role=claims.get("role"), profile=profile)

    async def _reconcile_profile(self, user: dict[str, Any]) -> Account:
        user_id = str(user["id"])
        email = user.get("email")
        account = await self.session.get(Account, user_id)

        if account is None:
            # user_metadata is writable by the user; only the display name is taken from it
            metadata = user.get("user_metadata") or {}
            account = Account(
                id=user_id,
                email=email,
                display_name=_normalize_display_name(metadata.get("display_name")),
                role=AccountRole.VIEWER,
                status=AccountStatus.ACTIVE,
            )
            self.session.add(account)
            await self.session.commit()
            await self.session.refresh(account)
            logger.info(f"Created missing profile for {email or user_id}")
            return account

        mutated = False
        if email and account.email != email:
            account.email = email
            mutated = True

        signed_in = user.get("last_sign_in_at") or user.get("email_confirmed_at")
        if account.status == AccountStatus.INVITED and signed_in:
            account.status = lifecycle.accept_invite(account.status)
            mutated = True

        if mutated:
            account = await self._commit(account, f"Synchronized profile for {email or user_id}")
        return account
