"""
collabhub/invitations.py

Invitation Lifecycle Manager.

Membership state machine, per (project, user) entry:

    PENDING --(invited user accepts)--> JOINED
    PENDING --(invited user declines)--> DECLINED

Nothing else is a valid transition, and nothing here is idempotent: adding an
existing member or answering an invitation twice fails.

Every operation runs inside the caller's transaction and only *enqueues*
notifications (see notifications.py). The route delivers them after commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from collabhub.config import IS_DEV
from collabhub.errors import Conflict, Forbidden, InvalidInput, InvalidTransition, NotFound
from collabhub.models import Membership, MemberStatus, Project, ProjectRole
from collabhub.notifications import (
    EVENT_INVITE,
    EVENT_MEMBER_JOINED,
    EVENT_MEMBER_REMOVED,
    EVENT_ROLE_UPDATED,
    Notification,
    NotificationScope,
    enqueue,
)
from collabhub.rbac import DEFAULT_INVITE_ROLE, role_level
from collabhub import store
from collabhub.users import find_user_by_email

LAST_OWNER_MESSAGE = "Project must keep at least one owner"


@dataclass
class MutationResult:
    """Outcome of a committed-to-be membership change plus its queued notifications."""
    membership: Optional[Membership] = None
    outbox_ids: List[int] = field(default_factory=list)


def _ensure_not_above(caller_role: ProjectRole, role: ProjectRole) -> None:
    if role_level(role) > role_level(caller_role):
        print(f"[MEMBERS] Role escalation refused: caller_role={caller_role.value}, role={role.value}")
        raise Forbidden("insufficient role")


def _explain_unapplied(conn, project: Project, user_id: int) -> None:
    """A guarded write matched no row: the entry is gone, or it is the last joined OWNER."""
    if store.get_membership(conn, project.id, user_id) is None:
        raise NotFound("User is not a member of this project")
    raise Conflict(LAST_OWNER_MESSAGE)


def add_member(
    conn,
    project: Project,
    inviter_id: int,
    inviter_name: Optional[str],
    inviter_role: ProjectRole,
    email: str,
    role: Optional[ProjectRole] = None,
) -> MutationResult:
    """
    Invite a user (by email) into the project as a PENDING member.

    Raises:
        NotFound: No user with that email
        Forbidden: Requested role is above the inviter's own role
        Conflict: The user already has an entry in this project
    """
    target = find_user_by_email(conn, email)
    if target is None:
        raise NotFound("Sorry this user doesn't exist")

    role = role or DEFAULT_INVITE_ROLE
    _ensure_not_above(inviter_role, role)

    membership = store.insert_member(
        conn,
        project.id,
        target.id,
        role=role,
        status=MemberStatus.PENDING,
        invited_by=inviter_id,
    )

    outbox_id = enqueue(conn, Notification(
        scope=NotificationScope.user(target.id),
        event=EVENT_INVITE,
        payload={
            "project_id": project.id,
            "message": "You are invited to collaborate",
            "from": inviter_id,
            "userName": inviter_name,
            "projectName": project.name,
            "projectAccess": role.value,
            "type": "INVITE",
        },
    ))

    print(f"[MEMBERS] Invited user_id={target.id} to project_id={project.id} as {role.value}")
    return MutationResult(membership=membership, outbox_ids=[outbox_id])


def remove_member(
    conn,
    project: Project,
    remover_id: int,
    remover_role: ProjectRole,
    user_id: int,
) -> MutationResult:
    """
    Remove a member in any status.

    Raises:
        NotFound: The user has no entry in this project
        Forbidden: The member's role is above the remover's
        Conflict: The member is the project's last joined OWNER
    """
    target = store.get_membership(conn, project.id, user_id)
    if target is None:
        raise NotFound("User is not a member of this project")
    _ensure_not_above(remover_role, target.role)

    if store.delete_member(conn, project.id, user_id) == 0:
        _explain_unapplied(conn, project, user_id)

    result = MutationResult(membership=target)
    if user_id != remover_id:
        result.outbox_ids.append(enqueue(conn, Notification(
            scope=NotificationScope.user(user_id),
            event=EVENT_MEMBER_REMOVED,
            payload={"project_id": project.id, "projectName": project.name, "from": remover_id},
        )))

    print(f"[MEMBERS] Removed user_id={user_id} from project_id={project.id} by user_id={remover_id}")
    return result


def leave_project(conn, project: Project, user_id: int) -> MutationResult:
    """
    Self-removal. Any member may leave, except the last joined OWNER.

    Raises:
        NotFound: The caller's entry is already gone
        Conflict: The caller is the project's last joined OWNER
    """
    target = store.get_membership(conn, project.id, user_id)
    if target is None:
        raise NotFound("User is not a member of this project")
    if store.delete_member(conn, project.id, user_id) == 0:
        _explain_unapplied(conn, project, user_id)

    print(f"[MEMBERS] user_id={user_id} left project_id={project.id}")
    return MutationResult(membership=target)


def update_member_role(
    conn,
    project: Project,
    caller_id: int,
    caller_role: ProjectRole,
    user_id: int,
    role: ProjectRole,
) -> MutationResult:
    """
    Change a member's role; status is untouched.

    Raises:
        NotFound: The user has no entry in this project
        Forbidden: The current or requested role is above the caller's
        Conflict: The change would leave the project without a joined OWNER
    """
    target = store.get_membership(conn, project.id, user_id)
    if target is None:
        raise NotFound("User is not a member of this project")
    _ensure_not_above(caller_role, target.role)
    _ensure_not_above(caller_role, role)

    if store.update_member_role(conn, project.id, user_id, role) == 0:
        _explain_unapplied(conn, project, user_id)

    updated = target.model_copy(update={"role": role})
    outbox_id = enqueue(conn, Notification(
        scope=NotificationScope.project(project.id),
        event=EVENT_ROLE_UPDATED,
        payload={
            "project_id": project.id,
            "user_id": user_id,
            "role": role.value,
            "previous_role": target.role.value,
            "from": caller_id,
        },
    ))

    print(f"[MEMBERS] Role updated: project_id={project.id}, user_id={user_id}, "
          f"{target.role.value} -> {role.value}")
    return MutationResult(membership=updated, outbox_ids=[outbox_id])


def respond_to_invitation(conn, project: Project, user_id: int, action: str) -> MutationResult:
    """
    Accept (JOINED / ACCEPTED) or decline (DECLINED) the caller's own invitation.

    Raises:
        InvalidInput: action is not one of JOINED, ACCEPTED, DECLINED
        InvalidTransition: the caller's entry is no longer PENDING
        Forbidden: the caller has no entry in this project
    """
    try:
        target_status = MemberStatus.parse(action)
    except ValueError:
        target_status = None
    if target_status not in (MemberStatus.JOINED, MemberStatus.DECLINED):
        raise InvalidInput("action must be one of JOINED, ACCEPTED, DECLINED")

    applied = store.transition_member_status(
        conn, project.id, user_id, MemberStatus.PENDING, target_status
    )
    if applied == 0:
        current = store.get_membership(conn, project.id, user_id)
        if current is None:
            raise Forbidden("not a project member")
        raise InvalidTransition(
            f"Cannot change invitation from {current.status.value} to {target_status.value}"
        )

    membership = store.get_membership(conn, project.id, user_id)
    result = MutationResult(membership=membership)
    if target_status == MemberStatus.JOINED:
        result.outbox_ids.append(enqueue(conn, Notification(
            scope=NotificationScope.project(project.id),
            event=EVENT_MEMBER_JOINED,
            payload={"project_id": project.id, "projectName": project.name, "user_id": user_id},
        )))

    if IS_DEV:
        print(f"[MEMBERS] Invitation answered: project_id={project.id}, user_id={user_id}, "
              f"status={target_status.value}")
    return result
