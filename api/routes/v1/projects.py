"""
api/routes/v1/projects.py -- Project and membership REST endpoints.

Routes:
  GET    /api/v1/projects                                -- projects the caller owns or belongs to
  POST   /api/v1/projects                                -- create (caller becomes owner)
  GET    /api/v1/projects/{id}                           -- read tier
  PATCH  /api/v1/projects/{id}                           -- write tier
  DELETE /api/v1/projects/{id}                           -- admin tier (soft delete)
  GET    /api/v1/projects/{id}/members                   -- read tier
  POST   /api/v1/projects/{id}/members                   -- admin tier
  PATCH  /api/v1/projects/{id}/members/{principal_id}    -- admin tier
  DELETE /api/v1/projects/{id}/members/{principal_id}    -- admin tier

Tier checks happen in ProjectService through AccessResolver.can_access; the
routes only authenticate and translate results.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.errors import failure_to_http
from api.models import MemberAdd, MemberPatch, MemberResponse, ProjectCreate, ProjectPatch, ProjectResponse
from auth.dependencies import get_current_principal
from auth.errors import Failure
from auth.models import PublicPrincipal
from projects.models import Project, ProjectMember
from projects.service import ProjectService

router = APIRouter()


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    request: Request, principal: PublicPrincipal = Depends(get_current_principal)
) -> list[ProjectResponse]:
    service: ProjectService = request.app.state.projects
    return [_project_response(p) for p in service.list_projects(principal.id)]


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    request: Request, body: ProjectCreate, principal: PublicPrincipal = Depends(get_current_principal)
) -> ProjectResponse:
    service: ProjectService = request.app.state.projects
    return _project_response(service.create_project(principal.id, body.name, body.description))


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    request: Request, project_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> ProjectResponse:
    service: ProjectService = request.app.state.projects
    result = service.get_project(principal.id, project_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _project_response(result)


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    request: Request,
    project_id: int,
    body: ProjectPatch,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> ProjectResponse:
    service: ProjectService = request.app.state.projects
    result = service.update_project(principal.id, project_id, name=body.name, description=body.description)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _project_response(result)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(
    request: Request, project_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> Response:
    service: ProjectService = request.app.state.projects
    result = service.delete_project(principal.id, project_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/members", response_model=list[MemberResponse])
def list_members(
    request: Request, project_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> list[MemberResponse]:
    service: ProjectService = request.app.state.projects
    result = service.list_members(principal.id, project_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return [_member_response(m) for m in result]


@router.post("/projects/{project_id}/members", response_model=MemberResponse, status_code=201)
def add_member(
    request: Request,
    project_id: int,
    body: MemberAdd,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> MemberResponse:
    service: ProjectService = request.app.state.projects
    result = service.add_member(principal.id, project_id, body.principal_id, body.role.value)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _member_response(result)


@router.patch("/projects/{project_id}/members/{member_id}", status_code=204)
def change_member_role(
    request: Request,
    project_id: int,
    member_id: int,
    body: MemberPatch,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> Response:
    service: ProjectService = request.app.state.projects
    result = service.change_member_role(principal.id, project_id, member_id, body.role.value)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return Response(status_code=204)


@router.delete("/projects/{project_id}/members/{member_id}", status_code=204)
def remove_member(
    request: Request,
    project_id: int,
    member_id: int,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> Response:
    service: ProjectService = request.app.state.projects
    result = service.remove_member(principal.id, project_id, member_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _project_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        owner_id=project.owner_id,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


def _member_response(member: ProjectMember) -> MemberResponse:
    return MemberResponse(principal_id=member.principal_id, role=member.role, joined_at=member.joined_at)
