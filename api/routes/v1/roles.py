"""
api/routes/v1/roles.py -- Global role administration and role assignment endpoints.

Routes:
  GET    /api/v1/roles                          -- list roles (requires auth)
  GET    /api/v1/roles/{id}                     -- one role (requires auth)
  POST   /api/v1/roles                          -- create custom role (admin:roles)
  PATCH  /api/v1/roles/{id}                     -- update custom role (admin:roles)
  DELETE /api/v1/roles/{id}                     -- delete custom role (admin:roles)
  GET    /api/v1/users/{id}/roles               -- roles held by a principal (self or users:view)
  PUT    /api/v1/users/{id}/roles/{role_id}     -- assign (users:manage_roles)
  DELETE /api/v1/users/{id}/roles/{role_id}     -- remove (users:manage_roles)
  GET    /api/v1/users/{id}/permissions         -- effective global permissions (self or users:view)

System roles answer 403 immutable_role on PATCH and DELETE. The check is made
by AccessResolver, not here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.errors import failure_to_http
from api.models import PermissionsResponse, RoleAssignmentResponse, RoleCreate, RolePatch, RoleResponse
from auth.access import AccessResolver
from auth.dependencies import get_current_principal, require_permission
from auth.errors import Failure
from auth.models import PublicPrincipal, Role
from auth.permissions import ADMIN_ROLES, USERS_MANAGE_ROLES, USERS_VIEW

router = APIRouter()


# ---------------------------------------------------------------------------
# Role catalog
# ---------------------------------------------------------------------------


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(request: Request, principal: PublicPrincipal = Depends(get_current_principal)) -> list[RoleResponse]:
    access: AccessResolver = request.app.state.access
    return [_role_response(r) for r in access.list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(
    request: Request, role_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> RoleResponse:
    access: AccessResolver = request.app.state.access
    result = access.get_role(role_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _role_response(result)


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request,
    body: RoleCreate,
    principal: PublicPrincipal = Depends(require_permission(ADMIN_ROLES)),
) -> RoleResponse:
    access: AccessResolver = request.app.state.access
    result = access.create_role(body.name, body.permissions, body.description)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _role_response(result)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    request: Request,
    role_id: int,
    body: RolePatch,
    principal: PublicPrincipal = Depends(require_permission(ADMIN_ROLES)),
) -> RoleResponse:
    access: AccessResolver = request.app.state.access
    result = access.update_role(role_id, name=body.name, description=body.description, permissions=body.permissions)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return _role_response(result)


@router.delete("/roles/{role_id}", status_code=204)
def delete_role(
    request: Request,
    role_id: int,
    principal: PublicPrincipal = Depends(require_permission(ADMIN_ROLES)),
) -> Response:
    access: AccessResolver = request.app.state.access
    result = access.delete_role(role_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@router.get("/users/{principal_id}/roles", response_model=list[RoleResponse])
def principal_roles(
    request: Request, principal_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> list[RoleResponse]:
    access: AccessResolver = request.app.state.access
    _require_self_or_viewer(access, principal, principal_id)
    return [_role_response(r) for r in access.store.roles_for_principal(principal_id)]


@router.put("/users/{principal_id}/roles/{role_id}", response_model=RoleAssignmentResponse, status_code=201)
def assign_role(
    request: Request,
    principal_id: int,
    role_id: int,
    principal: PublicPrincipal = Depends(require_permission(USERS_MANAGE_ROLES)),
) -> RoleAssignmentResponse:
    access: AccessResolver = request.app.state.access
    result = access.assign_role(principal_id, role_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return RoleAssignmentResponse(
        principal_id=result.principal_id, role_id=result.role_id, assigned_at=result.assigned_at
    )


@router.delete("/users/{principal_id}/roles/{role_id}", status_code=204)
def remove_role(
    request: Request,
    principal_id: int,
    role_id: int,
    principal: PublicPrincipal = Depends(require_permission(USERS_MANAGE_ROLES)),
) -> Response:
    access: AccessResolver = request.app.state.access
    result = access.remove_role(principal_id, role_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return Response(status_code=204)


@router.get("/users/{principal_id}/permissions", response_model=PermissionsResponse)
def principal_permissions(
    request: Request, principal_id: int, principal: PublicPrincipal = Depends(get_current_principal)
) -> PermissionsResponse:
    access: AccessResolver = request.app.state.access
    _require_self_or_viewer(access, principal, principal_id)
    return PermissionsResponse(
        principal_id=principal_id, permissions=sorted(access.global_permissions(principal_id))
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_self_or_viewer(access: AccessResolver, caller: PublicPrincipal, principal_id: int) -> None:
    if caller.id != principal_id and not access.has_permission(caller.id, USERS_VIEW):
        raise HTTPException(
            status_code=403,
            detail={"code": Failure.ACCESS_DENIED.value, "message": f"Permission required: {USERS_VIEW}"},
        )


def _role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system=role.is_system,
        permissions=list(role.permissions),
        created_at=role.created_at or "",
        updated_at=role.updated_at or "",
    )
