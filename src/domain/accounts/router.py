from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from src.app.schemas import AccessQueryParams
from src.core.security import get_current_viewer
from src.domain.accounts.permissions import Viewer, check_access

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.get("/me")
async def read_current_viewer(viewer: Annotated[Viewer | None, Depends(get_current_viewer)]) -> dict[str, Any]:
    """Returns the caller reconciled from the live session and the profile row.

    Raises:
        HTTPException: 401 when there is no valid session.
    """
    if viewer is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return viewer.to_public()


@router.get("/access")
async def read_access_decision(
    params: Annotated[AccessQueryParams, Depends()],
    viewer: Annotated[Viewer | None, Depends(get_current_viewer)],
) -> dict[str, str]:
    """Reports the guard decision for the caller without enforcing it.

    `pending` means the session could not be resolved; clients render nothing
    rather than a denial.
    """
    decision = check_access(
        viewer, required_role=params.required_role, require_manage_users=params.require_manage_users
    )
    return {"decision": decision.value}
