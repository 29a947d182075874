from dataclasses import dataclass
from typing import Any

from fastapi import Query
from pydantic import BaseModel, ConfigDict, Field

from src.domain.accounts.models import AccountRole


class AccountCreateRequest(BaseModel):
    """Payload for creating or inviting a user.

    Role and status are free-form: unknown values fall back to `viewer` and
    `invited` instead of rejecting the request. A missing email is a 400 from
    the service, not a schema error.
    """

    email: str | None = None
    password: str | None = None
    display_name: str | None = None
    role: str | None = None
    status: str | None = None
    send_invite_email: bool | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"email": "a@x.com", "password": "secret1", "role": "teacher", "send_invite_email": False},
                {"email": "b@x.com"},
            ]
        }
    )


class EmailRequest(BaseModel):
    email: str | None = None


class AccountUpdateRequest(BaseModel):
    """Partial update. Only fields present in the body are written.

    Status is not editable here; use the suspension endpoint.
    """

    model_config = ConfigDict(extra="forbid")

    display_name: str | None = None
    role: str | None = None
    can_edit_activities: bool | None = None
    can_edit_lessons: bool | None = None
    can_manage_year_groups: bool | None = None
    can_manage_users: bool | None = None
    allowed_year_groups: list[str] | None = None
    expected_version: int | None = Field(default=None, description="Reject the update if the row has moved on")

    def changes(self) -> dict[str, Any]:
        # Only these two fields have a meaningful null
        nullable = {"display_name", "allowed_year_groups"}
        data = self.model_dump(exclude_unset=True, exclude={"expected_version"})
        return {k: v for k, v in data.items() if v is not None or k in nullable}


class SuspensionRequest(BaseModel):
    suspended: bool


@dataclass
class AccessQueryParams:
    """Encapsulates GET query parameters for the access check endpoint."""

    required_role: AccountRole | None = Query(default=None, description="Minimum role tier")
    require_manage_users: bool = Query(default=False, description="Require user management capability")
