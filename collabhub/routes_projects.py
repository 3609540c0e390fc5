"""
collabhub/routes_projects.py

Project endpoints.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Reading a project requires membership in it (any status)
- Updating requires an accepted membership with a role in EDIT_PROJECT_ROLES
- Deleting requires an accepted membership with a role in DELETE_PROJECT_ROLES
- Deleted projects behave as not found
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from collabhub.auth_context import AuthContext, require_auth_context
from collabhub.dependencies import get_project_id, require_project_member, require_project_role
from collabhub.db import get_db_connection
from collabhub.errors import InvalidInput, NotFound
from collabhub.models import Project
from collabhub.rbac import DELETE_PROJECT_ROLES, EDIT_PROJECT_ROLES
from collabhub.schemas import ApiResponse, ProjectCreateRequest, ProjectUpdateRequest
from collabhub import store


router = APIRouter(
    prefix="/projects",
    tags=["projects"],
)


def load_project(conn, project_id: int) -> Project:
    """Fetch an ACTIVE project or raise NotFound."""
    project = store.get_project(conn, project_id)
    if project is None:
        raise NotFound("Project not found")
    return project


@router.get("", response_model=ApiResponse)
def list_projects(
    searchQuery: Optional[str] = Query(None, max_length=200),
    ctx: AuthContext = Depends(require_auth_context),
) -> ApiResponse:
    """ACTIVE projects the caller has joined, with the caller's role in each."""
    with get_db_connection() as conn:
        projects = store.list_projects_for_user(conn, ctx.user_id, searchQuery)
    return ApiResponse(
        message="Successfully pulled all projects",
        result=[p.model_dump(mode="json") for p in projects],
    )


@router.get("/search/{searchQuery}", response_model=ApiResponse)
def search_projects(
    searchQuery: str = Path(..., max_length=200),
    ctx: AuthContext = Depends(require_auth_context),
) -> ApiResponse:
    """Projects matching the name where the caller has any membership, pending included."""
    if not searchQuery.strip():
        raise InvalidInput("Please provide a search query")
    with get_db_connection() as conn:
        projects = store.search_projects(conn, ctx.user_id, searchQuery)
    return ApiResponse(
        message="Successfully fetched searched projects",
        result=[p.model_dump(mode="json") for p in projects],
    )


@router.post("", response_model=ApiResponse)
def create_project(
    request: ProjectCreateRequest,
    ctx: AuthContext = Depends(require_auth_context),
) -> ApiResponse:
    with get_db_connection() as conn:
        project = store.create_project(
            conn,
            name=request.name,
            project_type=request.type,
            owner_id=ctx.user_id,
            description=request.description,
        )
    print(f"[PROJECTS] Created project_id={project.id} by user_id={ctx.user_id}")
    return ApiResponse(
        message="Successfully added a new project",
        result={"id": project.id, "name": project.name, "type": project.type, "role": "OWNER"},
    )


@router.get("/{project_id}", response_model=ApiResponse, dependencies=[Depends(require_project_member)])
def get_project(project_id: int = Depends(get_project_id)) -> ApiResponse:
    with get_db_connection() as conn:
        project = load_project(conn, project_id)
    return ApiResponse(
        message="Successfully fetched project details",
        result=project.model_dump(mode="json"),
    )


@router.put(
    "/{project_id}",
    response_model=ApiResponse,
    dependencies=[Depends(require_project_role(EDIT_PROJECT_ROLES))],
)
def update_project(
    request: ProjectUpdateRequest,
    project_id: int = Depends(get_project_id),
) -> ApiResponse:
    with get_db_connection() as conn:
        load_project(conn, project_id)
        store.update_project(conn, project_id, request.model_dump(exclude_unset=True))
        project = load_project(conn, project_id)
    return ApiResponse(
        message="Successfully updated project details",
        result=project.model_dump(mode="json"),
    )


@router.delete(
    "/{project_id}",
    response_model=ApiResponse,
    dependencies=[Depends(require_project_role(DELETE_PROJECT_ROLES))],
)
def delete_project(
    project_id: int = Depends(get_project_id),
    ctx: AuthContext = Depends(require_auth_context),
) -> ApiResponse:
    with get_db_connection() as conn:
        if not store.soft_delete_project(conn, project_id):
            raise NotFound("Project not found")
    print(f"[PROJECTS] Soft-deleted project_id={project_id} by user_id={ctx.user_id}")
    return ApiResponse(message="Successfully deleted project")
