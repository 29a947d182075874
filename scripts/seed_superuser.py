import asyncio
import sys

from src.core.database import async_session_maker, init_db
from src.domain.accounts import lifecycle
from src.domain.accounts.models import Account, AccountRole, AccountStatus, RevokedAccount


async def seed_superuser(user_id: str, email: str) -> None:
    """Upserts a superuser profile row for an existing identity-provider user.

    Replaces the SUPER_ADMIN_EMAIL bypass: once the row exists, user management
    access comes from the role alone and the setting can be removed.
    """
    await init_db()

    async with async_session_maker() as session:
        account = await session.get(Account, user_id)
        if account is None:
            account = Account(id=user_id, email=email, status=AccountStatus.ACTIVE)
            print(f"Creating profile {user_id}")
        else:
            lifecycle.stamp(account)
            print(f"Promoting existing profile {user_id}")

        account.role = AccountRole.SUPERUSER
        account.can_manage_users = True
        account.status = AccountStatus.ACTIVE
        session.add(account)

        revoked = await session.get(RevokedAccount, user_id)
        if revoked is not None:
            await session.delete(revoked)
            print(f"Cleared revocation for {user_id}")

        await session.commit()

    print(f"{email} is now a superuser.")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python -m scripts.seed_superuser <user_id> <email>")
        sys.exit(1)
    asyncio.run(seed_superuser(sys.argv[1], sys.argv[2]))
