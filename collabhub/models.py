from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional

from pydantic import BaseModel


# Enums
class ProjectRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    WRITE = "WRITE"
    READ = "READ"


class MemberStatus(str, Enum):
    PENDING = "PENDING"
    JOINED = "JOINED"
    DECLINED = "DECLINED"

    @classmethod
    def parse(cls, value: str) -> "MemberStatus":
        """Parse a status name; ACCEPTED is an alias of JOINED."""
        normalized = (value or "").strip().upper()
        if normalized == "ACCEPTED":
            return cls.JOINED
        return cls(normalized)


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


# Typed projections returned by the store
class User(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    created_at: Optional[str] = None


class Project(BaseModel):
    id: int
    name: str
    type: str
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    created_by: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Membership(BaseModel):
    project_id: int
    user_id: int
    role: ProjectRole
    status: MemberStatus
    invited_by: Optional[int] = None


class MemberView(BaseModel):
    """A membership entry joined with the member's display attributes."""
    user_id: int
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    role: ProjectRole
    status: MemberStatus


class ProjectSummary(BaseModel):
    id: int
    name: str
    role: ProjectRole


@dataclass(frozen=True)
class ProjectGrant:
    """The caller's membership in one project, as seen by the gate."""
    role: ProjectRole
    status: MemberStatus


@dataclass
class ProjectRoleMap:
    """
    Request-scoped mapping project_id -> ProjectGrant for one user.

    Built fresh by the resolver on every request and never persisted.
    Covers every project where the user has a membership entry in any status.
    """
    user_id: int
    grants: Dict[int, ProjectGrant] = field(default_factory=dict)

    def __contains__(self, project_id: int) -> bool:
        return project_id in self.grants

    def __iter__(self) -> Iterator[int]:
        return iter(self.grants)

    def __len__(self) -> int:
        return len(self.grants)

    def get(self, project_id: int) -> Optional[ProjectGrant]:
        return self.grants.get(project_id)

    def role_for(self, project_id: int) -> Optional[ProjectRole]:
        grant = self.grants.get(project_id)
        return grant.role if grant else None
