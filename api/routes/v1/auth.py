"""
api/routes/v1/auth.py -- Authentication, session and user management REST endpoints.

Routes:
  POST /api/v1/auth/register           -- create an account (first one becomes Administrator)
  POST /api/v1/auth/login              -- password (+ TOTP) login; returns access+refresh pair
  POST /api/v1/auth/refresh            -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout             -- revoke the presented access token (and refresh token, if given)
  POST /api/v1/auth/logout-all         -- revoke every credential of the caller
  GET  /api/v1/auth/me                 -- current principal (requires auth)
  POST /api/v1/auth/password           -- change password; ends every session
  GET  /api/v1/users                   -- list principals (users:view)
  GET  /api/v1/users/{id}              -- one principal (users:view)
  POST /api/v1/users/{id}/deactivate   -- soft-deactivate + revoke all (users:edit)

Security:
  [H2] login, register and refresh are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] Timing equalization lives in SessionOrchestrator.login -- never inline
       a store lookup + verify_password here.
  [M4] POST /users/{id}/deactivate blocks self-deactivation.
  [M5] Cache-Control: no-store on every response that carries credentials.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.errors import failure_to_http
from api.limiter import limiter, login_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    LogoutRequest,
    MessageResponse,
    PasswordChangeRequest,
    PrincipalResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
)
from auth.accounts import AccountService
from auth.dependencies import bearer_token, get_current_principal, require_permission
from auth.errors import Failure
from auth.models import PublicPrincipal, SecondFactorRequired, TokenPair
from auth.permissions import USERS_EDIT, USERS_VIEW
from auth.sessions import SessionOrchestrator
from core.clock import to_iso
from core.config import get_settings

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh: public, rate-limited
# - everything else: requires a valid access token (get_current_principal)
# - /users/*: requires the named global permission (require_permission)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=PrincipalResponse, status_code=201)
@limiter.limit(login_limit)  # [H2]
def register(request: Request, body: RegisterRequest) -> PrincipalResponse:
    """Create an account. The first account ever created becomes Administrator."""
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    accounts: AccountService = request.app.state.accounts
    result = accounts.register(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return principal_response(result)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email, password and (when enrolled) a TOTP code.

    An account with 2FA enabled and no code supplied gets 200 with
    requires_two_factor=true and no tokens. Every other failure is the same
    generic 401, whatever the reason [C1].
    """
    sessions: SessionOrchestrator = request.app.state.sessions
    result = sessions.login(body.email, body.password, body.totp_code)
    if isinstance(result, Failure):
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": result.value, "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    if isinstance(result, SecondFactorRequired):
        payload = LoginResponse(requires_two_factor=True, principal=principal_response(result.principal))
    else:
        payload = LoginResponse(principal=principal_response(result.principal), tokens=pair_response(result.tokens))
    resp = JSONResponse(status_code=200, content=payload.model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/refresh", response_model=TokenPairResponse)
@limiter.limit(login_limit)  # [H2]
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    sessions: SessionOrchestrator = request.app.state.sessions
    result = sessions.refresh(body.refresh_token)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    resp = JSONResponse(status_code=200, content=pair_response(result).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> MessageResponse:
    """Revoke the access token used for this request, plus the caller's refresh token if supplied."""
    sessions: SessionOrchestrator = request.app.state.sessions
    sessions.logout(bearer_token(request), principal.id)
    if body is not None and body.refresh_token:
        sessions.logout(body.refresh_token, principal.id)
    return MessageResponse(message="Logged out.")


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, principal: PublicPrincipal = Depends(get_current_principal)) -> LogoutAllResponse:
    sessions: SessionOrchestrator = request.app.state.sessions
    return LogoutAllResponse(revoked=sessions.logout_all(principal.id))


@router.get("/auth/me", response_model=PrincipalResponse)
def me(principal: PublicPrincipal = Depends(get_current_principal)) -> PrincipalResponse:
    """Return identity information for the currently authenticated principal."""
    return principal_response(principal)


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    principal: PublicPrincipal = Depends(get_current_principal),
) -> MessageResponse:
    """Change the caller's password. Every existing session, this one included, ends."""
    accounts: AccountService = request.app.state.accounts
    result = accounts.change_password(principal.id, body.current_password, body.new_password)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return MessageResponse(message="Password changed. Sign in again.")


# ---------------------------------------------------------------------------
# User management (permission-gated)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[PrincipalResponse])
def list_users(
    request: Request,
    principal: PublicPrincipal = Depends(require_permission(USERS_VIEW)),
) -> list[PrincipalResponse]:
    accounts: AccountService = request.app.state.accounts
    return [principal_response(p) for p in accounts.list_principals()]


@router.get("/users/{principal_id}", response_model=PrincipalResponse)
def get_user(
    request: Request,
    principal_id: int,
    principal: PublicPrincipal = Depends(require_permission(USERS_VIEW)),
) -> PrincipalResponse:
    accounts: AccountService = request.app.state.accounts
    result = accounts.get_principal(principal_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return principal_response(result)


@router.post("/users/{principal_id}/deactivate", response_model=MessageResponse)
def deactivate_user(
    request: Request,
    principal_id: int,
    principal: PublicPrincipal = Depends(require_permission(USERS_EDIT)),
) -> MessageResponse:
    """Deactivate an account and revoke all of its credentials.

    [M4] Self-deactivation is refused: an administrator locking themselves out
    has no recovery path short of the CLI.
    """
    if principal_id == principal.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    accounts: AccountService = request.app.state.accounts
    result = accounts.deactivate(principal_id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return MessageResponse(message="User deactivated.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def principal_response(principal: PublicPrincipal) -> PrincipalResponse:
    return PrincipalResponse(**asdict(principal))


def pair_response(pair: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        access_expires_at=to_iso(pair.access_expires_at),
        refresh_expires_at=to_iso(pair.refresh_expires_at),
    )
