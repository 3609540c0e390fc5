"""
collabhub/store.py

Membership Store: projects and their embedded member lists.

A project owns its members (project_members rows are cascade-deleted with the
project and never addressed without their project_id). All mutations are
single statements so that concurrent requests against the same project are
serialized by the database, never by application locks:

- uniqueness of (project_id, user_id) is a UNIQUE constraint
- the "last joined OWNER" guard lives inside the DELETE/UPDATE statement
- invitation transitions are compare-and-set on status = 'PENDING'

Every function takes an open connection (see db.get_db_connection) and returns
typed projections from models.py, never raw rows.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from collabhub.db import execute_query, is_postgres
from collabhub.errors import Conflict
from collabhub.models import (
    MemberStatus,
    MemberView,
    Membership,
    Project,
    ProjectGrant,
    ProjectRole,
    ProjectStatus,
    ProjectSummary,
)
from collabhub.users import now_iso

PROJECT_COLUMNS = "id, name, type, description, status, created_by, created_at, updated_at"

# Matches when the targeted row is the only JOINED OWNER of its project
_IS_LAST_JOINED_OWNER = """
    role = 'OWNER' AND status = 'JOINED'
    AND (
        SELECT COUNT(*) FROM project_members owners
        WHERE owners.project_id = :project_id
          AND owners.role = 'OWNER' AND owners.status = 'JOINED'
    ) <= 1
"""


def _lock_project(conn, project_id: int) -> None:
    """
    Serialize owner-sensitive writes on one project.

    Without the row lock two READ COMMITTED transactions could each remove a
    different owner while both still count two. SQLite already serializes writers.
    """
    if is_postgres():
        execute_query(conn, "SELECT id FROM projects WHERE id = :id FOR UPDATE", {"id": project_id})


def _like_pattern(query: str) -> str:
    escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
def create_project(
    conn,
    name: str,
    project_type: str,
    owner_id: int,
    description: Optional[str] = None,
) -> Project:
    """Insert a project with the creator as its sole OWNER, already JOINED."""
    now = now_iso()
    project_id = execute_query(
        conn,
        """
        INSERT INTO projects (name, type, description, status, created_by, created_at, updated_at)
        VALUES (:name, :type, :description, :status, :created_by, :now, :now)
        RETURNING id
        """,
        {
            "name": name,
            "type": project_type.upper(),
            "description": description,
            "status": ProjectStatus.ACTIVE.value,
            "created_by": owner_id,
            "now": now,
        },
    ).scalar_one()

    insert_member(
        conn,
        project_id,
        owner_id,
        role=ProjectRole.OWNER,
        status=MemberStatus.JOINED,
        invited_by=None,
    )
    return get_project(conn, project_id)


def get_project(conn, project_id: int, include_deleted: bool = False) -> Optional[Project]:
    row = execute_query(
        conn,
        f"SELECT {PROJECT_COLUMNS} FROM projects WHERE id = :id",
        {"id": project_id},
    ).fetchone()
    if row is None:
        return None
    project = Project(**dict(row._mapping))
    if project.status == ProjectStatus.DELETED and not include_deleted:
        return None
    return project


def update_project(conn, project_id: int, fields: Dict[str, Any]) -> bool:
    """Update name/type/description of an ACTIVE project. Returns False if absent."""
    allowed = {k: v for k, v in fields.items() if k in ("name", "type", "description") and v is not None}
    if "type" in allowed:
        allowed["type"] = allowed["type"].upper()

    assignments = ", ".join(f"{column} = :{column}" for column in allowed)
    if assignments:
        assignments += ", "

    result = execute_query(
        conn,
        f"""
        UPDATE projects SET {assignments}updated_at = :updated_at
        WHERE id = :id AND status = 'ACTIVE'
        """,
        {**allowed, "updated_at": now_iso(), "id": project_id},
    )
    return result.rowcount > 0


def soft_delete_project(conn, project_id: int) -> bool:
    result = execute_query(
        conn,
        """
        UPDATE projects SET status = 'DELETED', updated_at = :updated_at
        WHERE id = :id AND status = 'ACTIVE'
        """,
        {"updated_at": now_iso(), "id": project_id},
    )
    return result.rowcount > 0


def list_projects_for_user(conn, user_id: int, search_query: Optional[str] = None) -> List[ProjectSummary]:
    """ACTIVE projects in which the user has JOINED, optionally filtered by name."""
    query = """
        SELECT p.id, p.name, m.role
        FROM projects p
        JOIN project_members m ON m.project_id = p.id
        WHERE m.user_id = :user_id
          AND m.status = 'JOINED'
          AND p.status = 'ACTIVE'
    """
    params: Dict[str, Any] = {"user_id": user_id}
    if search_query:
        query += " AND LOWER(p.name) LIKE :pattern ESCAPE '\\'"
        params["pattern"] = _like_pattern(search_query)
    query += " ORDER BY p.id"

    rows = execute_query(conn, query, params).fetchall()
    return [ProjectSummary(id=r.id, name=r.name, role=ProjectRole(r.role)) for r in rows]


def search_projects(conn, user_id: int, search_query: str) -> List[ProjectSummary]:
    """ACTIVE projects matching the name in which the user has any membership entry."""
    rows = execute_query(
        conn,
        """
        SELECT p.id, p.name, m.role
        FROM projects p
        JOIN project_members m ON m.project_id = p.id
        WHERE m.user_id = :user_id
          AND p.status = 'ACTIVE'
          AND LOWER(p.name) LIKE :pattern ESCAPE '\\'
        ORDER BY p.id
        """,
        {"user_id": user_id, "pattern": _like_pattern(search_query)},
    ).fetchall()
    return [ProjectSummary(id=r.id, name=r.name, role=ProjectRole(r.role)) for r in rows]


# ---------------------------------------------------------
# Members
# ---------------------------------------------------------
def list_grants_for_user(conn, user_id: int) -> Dict[int, ProjectGrant]:
    """Every membership entry of the user, in any status, keyed by project id."""
    rows = execute_query(
        conn,
        "SELECT project_id, role, status FROM project_members WHERE user_id = :user_id",
        {"user_id": user_id},
    ).fetchall()
    return {
        r.project_id: ProjectGrant(role=ProjectRole(r.role), status=MemberStatus(r.status))
        for r in rows
    }


def list_members(conn, project_id: int) -> List[MemberView]:
    rows = execute_query(
        conn,
        """
        SELECT m.user_id, u.email, u.first_name, u.last_name, u.display_name, m.role, m.status
        FROM project_members m
        LEFT JOIN users u ON u.id = m.user_id
        WHERE m.project_id = :project_id
        ORDER BY m.id
        """,
        {"project_id": project_id},
    ).fetchall()
    return [MemberView(**dict(r._mapping)) for r in rows]


def get_membership(conn, project_id: int, user_id: int) -> Optional[Membership]:
    row = execute_query(
        conn,
        """
        SELECT project_id, user_id, role, status, invited_by
        FROM project_members
        WHERE project_id = :project_id AND user_id = :user_id
        """,
        {"project_id": project_id, "user_id": user_id},
    ).fetchone()
    return Membership(**dict(row._mapping)) if row else None


def insert_member(
    conn,
    project_id: int,
    user_id: int,
    role: ProjectRole,
    status: MemberStatus = MemberStatus.PENDING,
    invited_by: Optional[int] = None,
) -> Membership:
    """
    Append a membership entry to the project.

    Raises:
        Conflict: If the user already has an entry in this project
    """
    now = now_iso()
    try:
        execute_query(
            conn,
            """
            INSERT INTO project_members (project_id, user_id, role, status, invited_by, created_at, updated_at)
            VALUES (:project_id, :user_id, :role, :status, :invited_by, :now, :now)
            """,
            {
                "project_id": project_id,
                "user_id": user_id,
                "role": role.value,
                "status": status.value,
                "invited_by": invited_by,
                "now": now,
            },
        )
    except IntegrityError:
        raise Conflict("User is already a member of this project")
    return Membership(
        project_id=project_id,
        user_id=user_id,
        role=role,
        status=status,
        invited_by=invited_by,
    )


def delete_member(conn, project_id: int, user_id: int) -> int:
    """
    Remove a membership entry unless it is the last joined OWNER.
    Returns the number of deleted rows (0 or 1).
    """
    _lock_project(conn, project_id)
    result = execute_query(
        conn,
        f"""
        DELETE FROM project_members
        WHERE project_id = :project_id AND user_id = :user_id
          AND NOT ({_IS_LAST_JOINED_OWNER})
        """,
        {"project_id": project_id, "user_id": user_id},
    )
    return result.rowcount


def update_member_role(conn, project_id: int, user_id: int, role: ProjectRole) -> int:
    """
    Change only the role of a membership entry; status is left untouched.
    Downgrading the last joined OWNER matches no row.
    Returns the number of updated rows (0 or 1).
    """
    _lock_project(conn, project_id)
    guard = "" if role == ProjectRole.OWNER else f"AND NOT ({_IS_LAST_JOINED_OWNER})"
    result = execute_query(
        conn,
        f"""
        UPDATE project_members SET role = :role, updated_at = :updated_at
        WHERE project_id = :project_id AND user_id = :user_id
          {guard}
        """,
        {
            "role": role.value,
            "updated_at": now_iso(),
            "project_id": project_id,
            "user_id": user_id,
        },
    )
    return result.rowcount


def transition_member_status(
    conn,
    project_id: int,
    user_id: int,
    from_status: MemberStatus,
    to_status: MemberStatus,
) -> int:
    """Compare-and-set a member's status. Returns 1 if the transition applied, else 0."""
    result = execute_query(
        conn,
        """
        UPDATE project_members SET status = :to_status, updated_at = :updated_at
        WHERE project_id = :project_id AND user_id = :user_id AND status = :from_status
        """,
        {
            "to_status": to_status.value,
            "from_status": from_status.value,
            "updated_at": now_iso(),
            "project_id": project_id,
            "user_id": user_id,
        },
    )
    return result.rowcount
