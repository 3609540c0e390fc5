"""
collabhub/schemas.py

Pydantic request/response schemas for the auth, project and membership APIs.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from collabhub.models import ProjectRole


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


def _upper_role(v):
    if isinstance(v, str):
        return v.strip().upper()
    return v


# ========================================================================
# AUTH SCHEMAS
# ========================================================================

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    display_name: Optional[str] = Field(None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must be a valid address")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


# ========================================================================
# PROJECT SCHEMAS
# ========================================================================

class ProjectCreateRequest(BaseModel):
    """Request schema for creating a project. The caller becomes its OWNER."""
    name: str = Field(..., min_length=1, max_length=200, description="Project name (required, 1-200 chars)")
    type: str = Field(..., min_length=1, max_length=50, description="Project type (stored upper-case)")
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("name", "type", mode="before")
    @classmethod
    def trim(cls, v):
        return _strip(v)


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("name", "type", mode="before")
    @classmethod
    def trim(cls, v):
        return _strip(v)


# ========================================================================
# MEMBERSHIP SCHEMAS
# ========================================================================

class AddMemberRequest(BaseModel):
    """Invite an existing user by email. Role defaults to the lowest privilege (READ)."""
    email: str = Field(..., min_length=3, max_length=254)
    role: Optional[ProjectRole] = None

    @field_validator("email", mode="before")
    @classmethod
    def trim_email(cls, v):
        return _strip(v)

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return _upper_role(v)


class UpdateMemberRoleRequest(BaseModel):
    role: ProjectRole

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return _upper_role(v)


class InvitationResponseRequest(BaseModel):
    """action: JOINED (or ACCEPTED) to accept, DECLINED to decline."""
    action: str = Field(..., min_length=1)


# ========================================================================
# RESPONSE ENVELOPE
# ========================================================================

class ApiResponse(BaseModel):
    """
    Uniform success envelope.

    warnings lists side effects that did not complete (e.g. an undelivered
    notification) although the main operation was committed.
    """
    message: str
    result: Any = None
    warnings: List[str] = Field(default_factory=list)
