from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sqlmodel.ext.asyncio.session import AsyncSession

from src.core.database import get_session
from src.domain.accounts.models import AccountRole, AccountStatus
from src.domain.accounts.permissions import DEFAULT_DENIED_MESSAGE, AccessDecision, Viewer, check_access
from src.domain.accounts.service import AccountService

# auto_error=False: a missing header resolves to "no viewer" instead of failing here
bearer_scheme = HTTPBearer(auto_error=False)


def get_account_service(session: Annotated[AsyncSession, Depends(get_session)]) -> AccountService:
    return AccountService(session)


def redirect_base_from(request: Request) -> str | None:
    """The browser origin that issued the request, used when PUBLIC_BASE_URL is unset."""
    return request.headers.get("origin")


async def get_current_viewer(
    service: Annotated[AccountService, Depends(get_account_service)],
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> Viewer | None:
    """Resolves the caller, or None while unauthenticated.

    Raises:
        HTTPException: 403 when the caller's account is suspended.
    """
    token = credentials.credentials if credentials else None
    viewer = await service.resolve_viewer(token)

    if viewer and viewer.profile and viewer.profile.effective_status == AccountStatus.SUSPENDED:
        logger.warning(f"Blocked request from suspended account: {viewer.email or viewer.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended.")
    return viewer


def require_access(
    required_role: AccountRole | None = None,
    require_manage_users: bool = False,
    denied_message: str = DEFAULT_DENIED_MESSAGE,
) -> Callable[..., Viewer]:
    """Builds a dependency that turns the guard's decision into an HTTP outcome."""

    def dependency(viewer: Annotated[Viewer | None, Depends(get_current_viewer)]) -> Viewer:
        decision = check_access(viewer, required_role=required_role, require_manage_users=require_manage_users)
        if decision is AccessDecision.PENDING:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
        if decision is AccessDecision.DENY:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=denied_message)
        return viewer

    return dependency


require_user_manager = require_access(
    require_manage_users=True, denied_message="User management privileges required."
)
