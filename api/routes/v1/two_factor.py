"""
api/routes/v1/two_factor.py -- TOTP enrollment endpoints for the current principal.

Routes:
  POST /api/v1/auth/2fa/setup    -- generate a pending secret + otpauth:// URI
  POST /api/v1/auth/2fa/verify   -- check a code against the stored secret
  POST /api/v1/auth/2fa/enable   -- activate 2FA (requires a valid code)
  POST /api/v1/auth/2fa/disable  -- deactivate 2FA (requires a valid code)
  GET  /api/v1/auth/2fa/status   -- is 2FA enabled?

All routes act on the authenticated caller only; there is no way to touch
another principal's second factor over HTTP. verify/enable/disable share the
login rate limit since each one is a code-guessing oracle.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import failure_to_http
from api.limiter import limiter, login_limit
from api.models import MessageResponse, TotpCodeRequest, TotpSetupResponse, TotpStatusResponse, TotpVerifyResponse
from auth.dependencies import get_current_principal
from auth.errors import Failure
from auth.models import PublicPrincipal
from auth.totp import TotpEngine

router = APIRouter()


@router.post("/auth/2fa/setup", response_model=TotpSetupResponse)
def setup(request: Request, principal: PublicPrincipal = Depends(get_current_principal)) -> JSONResponse:
    """Start enrollment. The secret is shown once; 2FA stays off until /enable."""
    totp: TotpEngine = request.app.state.totp
    result = totp.setup(principal.id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    resp = JSONResponse(
        content=TotpSetupResponse(secret=result.secret, provisioning_uri=result.provisioning_uri).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/2fa/verify", response_model=TotpVerifyResponse)
@limiter.limit(login_limit)
def verify(
    request: Request, body: TotpCodeRequest, principal: PublicPrincipal = Depends(get_current_principal)
) -> TotpVerifyResponse:
    totp: TotpEngine = request.app.state.totp
    return TotpVerifyResponse(valid=totp.verify(principal.id, body.code))


@router.post("/auth/2fa/enable", response_model=MessageResponse)
@limiter.limit(login_limit)
def enable(
    request: Request, body: TotpCodeRequest, principal: PublicPrincipal = Depends(get_current_principal)
) -> MessageResponse:
    totp: TotpEngine = request.app.state.totp
    result = totp.enable(principal.id, body.code)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return MessageResponse(message="Two-factor authentication enabled.")


@router.post("/auth/2fa/disable", response_model=MessageResponse)
@limiter.limit(login_limit)
def disable(
    request: Request, body: TotpCodeRequest, principal: PublicPrincipal = Depends(get_current_principal)
) -> MessageResponse:
    totp: TotpEngine = request.app.state.totp
    result = totp.disable(principal.id, body.code)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return MessageResponse(message="Two-factor authentication disabled.")


@router.get("/auth/2fa/status", response_model=TotpStatusResponse)
def status(request: Request, principal: PublicPrincipal = Depends(get_current_principal)) -> TotpStatusResponse:
    totp: TotpEngine = request.app.state.totp
    result = totp.status(principal.id)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    return TotpStatusResponse(enabled=result)
