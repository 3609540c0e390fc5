"""
collabhub/dependencies.py

Reusable FastAPI dependencies for project authorization.

FastAPI caches a dependency per request, so get_project_role_map runs once
per request no matter how many guards use it; its value is passed explicitly
to every guard and handler.

Usage in routes:
    @router.put(
        "/{project_id}",
        dependencies=[Depends(require_project_role(EDIT_PROJECT_ROLES))],
    )
    def update_project(project_id: int, ctx: AuthContext = Depends(require_auth_context)):
        ...
"""

from __future__ import annotations

from typing import AbstractSet, Callable

from fastapi import Depends, Path

from collabhub.auth_context import AuthContext, require_auth_context
from collabhub.authz import check_joined, check_membership, check_role, resolve_project_roles
from collabhub.db import get_db_connection
from collabhub.errors import InvalidInput
from collabhub.models import ProjectGrant, ProjectRole, ProjectRoleMap


def get_project_role_map(ctx: AuthContext = Depends(require_auth_context)) -> ProjectRoleMap:
    """Resolve the caller's ProjectRoleMap for this request."""
    with get_db_connection() as conn:
        return resolve_project_roles(conn, ctx.user_id)


def get_project_id(project_id: int = Path(...)) -> int:
    if project_id < 1:
        raise InvalidInput("project_id is required")
    return project_id


def require_project_member(
    project_id: int = Depends(get_project_id),
    role_map: ProjectRoleMap = Depends(get_project_role_map),
) -> ProjectGrant:
    """Guard: caller has any membership entry in the path's project."""
    return check_membership(role_map, project_id)


def require_joined_member(
    project_id: int = Depends(get_project_id),
    role_map: ProjectRoleMap = Depends(get_project_role_map),
) -> ProjectGrant:
    """Guard: caller is a member and has accepted the invitation."""
    return check_joined(role_map, project_id)


def require_project_role(allowed_roles: AbstractSet[ProjectRole]) -> Callable:
    """
    Dependency factory for role-gated project operations.

    The returned guard requires an accepted membership (JOINED) and a role in
    allowed_roles. It returns the caller's role so handlers can compare it
    with the role they are about to grant.
    """
    allowed = frozenset(allowed_roles)

    def _check_role(
        project_id: int = Depends(get_project_id),
        role_map: ProjectRoleMap = Depends(get_project_role_map),
        _joined: ProjectGrant = Depends(require_joined_member),
    ) -> ProjectRole:
        return check_role(role_map, project_id, allowed)

    return _check_role
