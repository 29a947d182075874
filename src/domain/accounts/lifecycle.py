"""Status transitions for profile rows.

    invited --accept invite--> active
    any     --suspend-------> suspended
    any     --reactivate----> active

An invited account that is suspended and then reactivated lands on `active`;
"invited but suspended" is not tracked separately. Deletion is a row removal,
not a state.
"""

from src.domain.accounts.models import Account, AccountStatus, utcnow


def suspend(current: AccountStatus | None) -> AccountStatus:
    return AccountStatus.SUSPENDED


def reactivate(current: AccountStatus | None) -> AccountStatus:
    return AccountStatus.ACTIVE


def toggle_suspended(current: AccountStatus | None, suspended: bool) -> AccountStatus:
    """Resolves the administrator's suspend/reactivate action to the target status."""
    return suspend(current) if suspended else reactivate(current)


def accept_invite(current: AccountStatus | None) -> AccountStatus:
    """Applied when the identity provider reports the invitee has signed in."""
    if current == AccountStatus.INVITED:
        return AccountStatus.ACTIVE
    return current or AccountStatus.ACTIVE


def stamp(account: Account) -> Account:
    """Marks a mutation: fresh updated_at and a bumped version."""
    account.updated_at = utcnow()
    account.version = (account.version or 0) + 1
    return account
