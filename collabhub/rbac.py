"""
collabhub/rbac.py

Project role definitions and role policies.

Roles are a small closed set per project (OWNER > ADMIN > WRITE > READ).
Which roles may perform which operation is configuration (see config.py);
this module turns those role names into ProjectRole sets.

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import FrozenSet, Iterable, Optional

from collabhub.config import MEMBER_MANAGE_ROLES, PROJECT_DELETE_ROLES, PROJECT_EDIT_ROLES
from collabhub.models import ProjectRole


# Lowest privilege, used when an inviter does not specify a role
DEFAULT_INVITE_ROLE = ProjectRole.READ


# ============================================================================
# Role Hierarchy Helpers
# ============================================================================

ROLE_HIERARCHY = {
    ProjectRole.OWNER: 4,
    ProjectRole.ADMIN: 3,
    ProjectRole.WRITE: 2,
    ProjectRole.READ: 1,
}


def role_level(role: Optional[ProjectRole]) -> int:
    """
    Get numeric level for a role.

    Returns:
        Numeric level (higher = more privileged), 0 if unknown
    """
    if role is None:
        return 0
    return ROLE_HIERARCHY.get(role, 0)


def role_at_least(user_role: Optional[ProjectRole], required_role: ProjectRole) -> bool:
    """
    Check if user_role meets or exceeds required_role in hierarchy.

    Example:
        role_at_least(ProjectRole.ADMIN, ProjectRole.WRITE) -> True
        role_at_least(ProjectRole.READ, ProjectRole.WRITE) -> False
    """
    return role_level(user_role) >= role_level(required_role)


def parse_role(value: str) -> ProjectRole:
    """Parse a role name case-insensitively. Raises ValueError if unknown."""
    return ProjectRole((value or "").strip().upper())


def role_set(names: Iterable[str]) -> FrozenSet[ProjectRole]:
    """
    Convert configured role names into a ProjectRole set.

    Unknown names fail fast at import time rather than silently
    granting or denying access.
    """
    roles = set()
    for name in names:
        try:
            roles.add(parse_role(name))
        except ValueError:
            raise ValueError(
                f"Unknown project role in configuration: {name!r} "
                f"(valid: {', '.join(r.value for r in ProjectRole)})"
            )
    return frozenset(roles)


# ============================================================================
# Operation Policies
# ============================================================================

EDIT_PROJECT_ROLES = role_set(PROJECT_EDIT_ROLES)
DELETE_PROJECT_ROLES = role_set(PROJECT_DELETE_ROLES)
MANAGE_MEMBERS_ROLES = role_set(MEMBER_MANAGE_ROLES)
