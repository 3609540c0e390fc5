"""
collabhub/routes_members.py

Project membership endpoints (invite, remove, leave, change role, respond).

Security guarantees:
- Listing members, leaving and answering an invitation need membership only
  (a PENDING invitee must be able to see and answer the invitation)
- Adding, removing and re-roling members need an accepted membership with a
  role in MANAGE_MEMBERS_ROLES, and never grant above the caller's own role
- Notifications are delivered only after the membership change committed;
  a failed delivery is returned in "warnings", the change stays
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from collabhub.auth_context import AuthContext, require_auth_context
from collabhub.db import get_db_connection
from collabhub.dependencies import get_project_id, require_project_member, require_project_role
from collabhub.models import ProjectRole
from collabhub.notifications import deliver, get_notification_dispatcher
from collabhub.rbac import MANAGE_MEMBERS_ROLES
from collabhub.routes_projects import load_project
from collabhub.schemas import (
    AddMemberRequest,
    ApiResponse,
    InvitationResponseRequest,
    UpdateMemberRoleRequest,
)
from collabhub import invitations, store


router = APIRouter(
    prefix="/projects/{project_id}",
    tags=["members"],
)

require_member_manager = require_project_role(MANAGE_MEMBERS_ROLES)


@router.get("/members", response_model=ApiResponse, dependencies=[Depends(require_project_member)])
def list_members(project_id: int = Depends(get_project_id)) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        members = store.list_members(conn, project_id)
    return ApiResponse(
        message="Successfully fetched member details",
        result={
            "name": project.name,
            "members": [m.model_dump(mode="json") for m in members],
        },
    )


@router.post("/members", response_model=ApiResponse)
def add_member(
    request: AddMemberRequest,
    project_id: int = Depends(get_project_id),
    caller_role: ProjectRole = Depends(require_member_manager),
    ctx: AuthContext = Depends(require_auth_context),
    dispatcher=Depends(get_notification_dispatcher),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        result = invitations.add_member(
            conn,
            project,
            inviter_id=ctx.user_id,
            inviter_name=ctx.display_name,
            inviter_role=caller_role,
            email=request.email,
            role=request.role,
        )
    warnings = deliver(dispatcher, result.outbox_ids)
    return ApiResponse(
        message="Successfully added member to project",
        result=result.membership.model_dump(mode="json"),
        warnings=warnings,
    )


@router.delete("/members/me", response_model=ApiResponse, dependencies=[Depends(require_project_member)])
def leave_project(
    project_id: int = Depends(get_project_id),
    ctx: AuthContext = Depends(require_auth_context),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        invitations.leave_project(conn, project, ctx.user_id)
    return ApiResponse(message="Successfully left project")


@router.delete("/members/{user_id}", response_model=ApiResponse)
def remove_member(
    user_id: int = Path(..., ge=1),
    project_id: int = Depends(get_project_id),
    caller_role: ProjectRole = Depends(require_member_manager),
    ctx: AuthContext = Depends(require_auth_context),
    dispatcher=Depends(get_notification_dispatcher),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        result = invitations.remove_member(
            conn,
            project,
            remover_id=ctx.user_id,
            remover_role=caller_role,
            user_id=user_id,
        )
    warnings = deliver(dispatcher, result.outbox_ids)
    return ApiResponse(message="Successfully removed member from project", warnings=warnings)


@router.put("/members/{user_id}", response_model=ApiResponse)
def update_member_role(
    request: UpdateMemberRoleRequest,
    user_id: int = Path(..., ge=1),
    project_id: int = Depends(get_project_id),
    caller_role: ProjectRole = Depends(require_member_manager),
    ctx: AuthContext = Depends(require_auth_context),
    dispatcher=Depends(get_notification_dispatcher),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        result = invitations.update_member_role(
            conn,
            project,
            caller_id=ctx.user_id,
            caller_role=caller_role,
            user_id=user_id,
            role=request.role,
        )
    warnings = deliver(dispatcher, result.outbox_ids)
    return ApiResponse(
        message="Successfully updated member's permission",
        result=result.membership.model_dump(mode="json"),
        warnings=warnings,
    )


@router.post("/invitation", response_model=ApiResponse, dependencies=[Depends(require_project_member)])
def respond_to_invitation(
    request: InvitationResponseRequest,
    project_id: int = Depends(get_project_id),
    ctx: AuthContext = Depends(require_auth_context),
    dispatcher=Depends(get_notification_dispatcher),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
        result = invitations.respond_to_invitation(conn, project, ctx.user_id, request.action)
    warnings = deliver(dispatcher, result.outbox_ids)
    return ApiResponse(
        message=f"Invitation {result.membership.status.value.lower()}",
        result=result.membership.model_dump(mode="json"),
        warnings=warnings,
    )
