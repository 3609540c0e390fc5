"""
collabhub/authz.py

Membership Resolver and Authorization Gate.

The resolver turns "who is calling" into a ProjectRoleMap once per request.
The gate checks are orthogonal and composed per operation:

- check_membership: caller has any entry in the project (any status, any role)
- check_joined:     caller's entry has been accepted (status JOINED)
- check_role:       caller's role is in the operation's allowed role set

Reading a project only needs membership; changing roles or deleting a
project needs membership + joined + role. All checks fail closed: a missing
map is a server error, never an implicit pass.
"""

from __future__ import annotations

from typing import AbstractSet, Optional

from collabhub.config import IS_DEV
from collabhub.errors import Forbidden, GateMisconfigured
from collabhub.models import MemberStatus, ProjectGrant, ProjectRole, ProjectRoleMap
from collabhub.store import list_grants_for_user


# ============================================================================
# Resolver
# ============================================================================

def resolve_project_roles(conn, user_id: int) -> ProjectRoleMap:
    """
    Build the caller's ProjectRoleMap from the store.

    Pure read. A user without memberships gets an empty map.
    Store errors propagate so the request fails closed.
    """
    role_map = ProjectRoleMap(user_id=user_id, grants=list_grants_for_user(conn, user_id))
    if IS_DEV:
        print(f"[AUTHZ] Resolved project roles: user_id={user_id}, projects={len(role_map)}")
    return role_map


# ============================================================================
# Gate
# ============================================================================

def _require_map(role_map: Optional[ProjectRoleMap]) -> ProjectRoleMap:
    if role_map is None:
        print("[AUTHZ] ERROR: authorization check ran before project roles were resolved")
        raise GateMisconfigured("Project roles were not resolved for this request")
    return role_map


def check_membership(role_map: Optional[ProjectRoleMap], project_id: int) -> ProjectGrant:
    """
    Succeeds iff the caller has an entry in the project, whatever its status or role.

    Raises:
        Forbidden: If the caller is not a member
        GateMisconfigured: If role_map is missing
    """
    grant = _require_map(role_map).get(project_id)
    if grant is None:
        print(f"[AUTHZ] Not a member: user_id={role_map.user_id}, project_id={project_id}")
        raise Forbidden("not a project member")
    return grant


def check_joined(role_map: Optional[ProjectRoleMap], project_id: int) -> ProjectGrant:
    """
    Succeeds iff the caller has accepted their invitation to the project.

    Raises:
        Forbidden: If the caller is not a member or is not JOINED
    """
    grant = check_membership(role_map, project_id)
    if grant.status != MemberStatus.JOINED:
        print(f"[AUTHZ] Invitation not accepted: user_id={role_map.user_id}, "
              f"project_id={project_id}, status={grant.status.value}")
        raise Forbidden("invitation not accepted")
    return grant


def check_role(
    role_map: Optional[ProjectRoleMap],
    project_id: int,
    allowed_roles: AbstractSet[ProjectRole],
) -> ProjectRole:
    """
    Succeeds iff the caller's role in the project is in allowed_roles.

    Raises:
        Forbidden: If the caller has no entry or their role is not allowed
        GateMisconfigured: If role_map is missing
    """
    role = _require_map(role_map).role_for(project_id)
    if role is None or role not in allowed_roles:
        print(f"[AUTHZ] Insufficient role: user_id={role_map.user_id}, project_id={project_id}, "
              f"role={role.value if role else None}, allowed={sorted(r.value for r in allowed_roles)}")
        raise Forbidden("insufficient role")
    return role
