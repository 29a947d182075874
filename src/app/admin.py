from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response, status

from src.app.schemas import AccountCreateRequest, AccountUpdateRequest, EmailRequest, SuspensionRequest
from src.config.settings import settings
from src.core.security import get_account_service, redirect_base_from, require_user_manager
from src.domain.accounts.permissions import Viewer
from src.domain.accounts.service import AccountService

router = APIRouter(prefix="/api/v1/admin", tags=["User Management"])

Service = Annotated[AccountService, Depends(get_account_service)]
Manager = Annotated[Viewer, Depends(require_user_manager)]


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.CORS_ALLOW_ORIGIN,
        "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=cors_headers())


@router.options("/users", include_in_schema=False)
@router.options("/users/resend-invite", include_in_schema=False)
@router.options("/users/password-reset", include_in_schema=False)
@router.options("/users/{target_id}", include_in_schema=False)
@router.options("/users/{target_id}/suspension", include_in_schema=False)
async def users_preflight() -> Response:
    """Answers CORS preflight for the user management endpoints."""
    return preflight()


@router.get("/users")
async def list_users(service: Service, user: Manager) -> dict[str, Any]:
    """Lists every profile, newest first."""
    accounts = await service.list_accounts()
    return {"users": [account.to_public() for account in accounts]}


@router.post("/users")
async def create_user(request: Request, body: AccountCreateRequest, service: Service, user: Manager) -> dict[str, Any]:
    """Creates a password account or sends an invitation.

    Returns:
        dict: `invited` tells the caller which path was taken; `profile_synced` is
        False when the identity exists but its profile row could not be written.
    """
    result = await service.create_account(
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        role=body.role,
        status=body.status,
        send_invite_email=body.send_invite_email,
        redirect_base=redirect_base_from(request),
    )
    account = result.account
    return {
        "success": True,
        "user": {
            "id": account.id,
            "email": account.email,
            "display_name": account.display_name,
            "role": account.effective_role.value,
            "status": account.effective_status.value,
        },
        "invited": result.invited,
        "profile_synced": result.profile_synced,
    }


@router.post("/users/resend-invite")
async def resend_invite(request: Request, body: EmailRequest, service: Service, user: Manager) -> dict[str, Any]:
    await service.resend_invite(body.email, redirect_base=redirect_base_from(request))
    return {"success": True, "message": "Invite resent."}


@router.post("/users/password-reset")
async def send_password_reset(request: Request, body: EmailRequest, service: Service, user: Manager) -> dict[str, Any]:
    await service.send_password_reset(body.email, redirect_base=redirect_base_from(request))
    return {"success": True, "message": "Password reset email sent."}


@router.patch("/users/{target_id}")
async def update_user(target_id: str, body: AccountUpdateRequest, service: Service, user: Manager) -> dict[str, Any]:
    """Edits role, display name, capability flags or year-group restrictions."""
    account = await service.update_account(
        target_id, body.changes(), actor_id=user.id, expected_version=body.expected_version
    )
    return {"success": True, "user": account.to_public()}


@router.post("/users/{target_id}/suspension")
async def set_suspension(target_id: str, body: SuspensionRequest, service: Service, user: Manager) -> dict[str, Any]:
    """Suspends (`suspended: true`) or reactivates (`suspended: false`) a user."""
    account = await service.set_suspended(target_id, body.suspended, actor_id=user.id)
    return {"success": True, "user": account.to_public()}


@router.delete("/users/{target_id}", status_code=status.HTTP_200_OK)
async def delete_user(target_id: str, service: Service, user: Manager) -> dict[str, Any]:
    """Hard-deletes the profile row. The identity record must be removed separately."""
    result = await service.delete_account(target_id, actor_id=user.id)
    return {"success": True, "deleted": result.account_id, "warnings": result.warnings}


@router.get("/users/{target_id}/purchases")
async def list_user_purchases(target_id: str, service: Service, user: Manager) -> dict[str, Any]:
    summary = await service.list_purchases(target_id)
    return {
        "subscription_status": summary.subscription_status.value,
        "purchases": [purchase.model_dump(mode="json") for purchase in summary.purchases],
    }
