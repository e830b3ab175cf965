"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Bearer tokens only: "Authorization: Bearer <access token>". Every request is
resolved through SessionOrchestrator.authenticate(), which consults the token
ledger, so a logged-out or rotated-away credential stops working immediately.

get_current_principal() raises HTTP 401 if the request is not authenticated.
require_permission(p) wraps it and raises HTTP 403 unless the principal holds
global permission p through one of its roles.

Layer rule: no imports from api/ or projects/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.access import AccessResolver
from auth.errors import Failure
from auth.models import PublicPrincipal
from auth.sessions import SessionOrchestrator


def bearer_token(request: Request) -> str | None:
    """Return the raw Bearer token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request) -> PublicPrincipal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: PublicPrincipal = Depends(get_current_principal)): ...
    """
    token = bearer_token(request)
    sessions: SessionOrchestrator = request.app.state.sessions
    result = sessions.authenticate(token) if token else Failure.INVALID_OR_EXPIRED_TOKEN
    if isinstance(result, Failure):
        raise HTTPException(
            status_code=401,
            detail={"code": result.value, "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result


def require_permission(permission: str) -> Callable[..., PublicPrincipal]:
    """Build a dependency that requires a global permission string.

        @router.post("/roles")
        async def route(principal: PublicPrincipal = Depends(require_permission(ADMIN_ROLES))): ...
    """

    def _dependency(
        request: Request, principal: PublicPrincipal = Depends(get_current_principal)
    ) -> PublicPrincipal:
        access: AccessResolver = request.app.state.access
        if not access.has_permission(principal.id, permission):
            raise HTTPException(
                status_code=403,
                detail={"code": Failure.ACCESS_DENIED.value, "message": f"Permission required: {permission}"},
            )
        return principal

    return _dependency
