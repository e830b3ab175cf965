"""
api/main.py -- FastAPI application entry point for TaskGate.

Thin HTTP wiring over the auth core: every route resolves its caller through
SessionOrchestrator.authenticate() and its permissions through
AccessResolver, then hands off to the services on app.state.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, services, system-role seeding, purge task)
and shutdown (cancel purge task, close DB engines) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.projects import router as projects_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.two_factor import router as two_factor_router
from api.services import Services, build_services
from auth.errors import InfrastructureFailure
from core.clock import utcnow
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("taskgate.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

PURGE_INTERVAL_SECONDS = 6 * 60 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired credential records every 6 hours.

    Runs as a background asyncio task started in lifespan startup. Expiry is
    never acted on in the request path; this loop and `python main.py
    purge-tokens` are the only places records are removed. CancelledError
    from task.cancel() during shutdown propagates out of asyncio.sleep and
    unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        try:
            app.state.ledger.purge_expired(utcnow())
        except InfrastructureFailure:
            logger.exception("Credential purge failed; retrying next interval")


def attach_services(app: FastAPI, services: Services) -> None:
    """Expose every service on app.state under the name routes look up."""
    app.state.services = services
    app.state.auth_store = services.auth_store
    app.state.project_store = services.project_store
    app.state.ledger = services.ledger
    app.state.totp = services.totp
    app.state.sessions = services.sessions
    app.state.access = services.access
    app.state.accounts = services.accounts
    app.state.projects = services.projects


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Services -- opens both databases and creates their schemas.
      2. System roles -- must exist before the first registration so the
         first principal receives the Administrator role.
      3. Purge task last -- references app.state.ledger.
    """
    # Startup
    logger.info("TaskGate API starting up")
    services = build_services(get_settings())
    attach_services(app, services)
    seeded = services.access.ensure_system_roles()
    logger.info("Auth initialized (%d system roles seeded)", seeded)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    services.close()
    logger.info("TaskGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TaskGate API",
    description="Authentication, credential lifecycle and access control for a project tracker.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the most recently added middleware the outermost one, so
# they are registered innermost first: SlowAPI, CORS, TrustedHost.
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Only method, path, status and latency are logged: never headers,
# so bearer tokens do not reach the logs.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(two_factor_router, prefix="/api/v1", tags=["Two-Factor"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(projects_router, prefix="/api/v1", tags=["Projects"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Each handler answers with the ErrorResponse envelope built by _error(), so a
# client reads error.code without branching on the status first.
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error(429, "rate_limited", "Too many requests.", str(exc), {"Retry-After": str(retry_after)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap HTTP exceptions, including router 404/405s, in the error envelope.

    Routes raise with a {"code", "message"} dict as detail (see
    api.errors.failure_to_http); that dict becomes the error field as is.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(InfrastructureFailure)
async def infrastructure_failure_handler(request: Request, exc: InfrastructureFailure) -> JSONResponse:
    """503 when a store is unavailable. The cause is logged, never returned."""
    logger.error("Infrastructure failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(503, "service_unavailable", "A backing service is unavailable. Try again later.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# Health lives on the app itself, outside every router, and is not rate-limited.


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=API_VERSION)
