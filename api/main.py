"""
api/main.py -- FastAPI application entry point for MemberAuth.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- credentialed CORS for the membership frontend
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- signed session cookie carrying SessionIdentity

Lifespan builds the store and the services once and hangs them on app.state;
routes and dependencies read them from there. init_services() is shared with
the test lifespan so tests wire the same object graph around fakes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.authenticator import Authenticator
from auth.errors import DependencyFailure, MembershipError
from auth.hasher import CredentialHasher, KdfParams
from auth.lifecycle import AccountLifecycle
from auth.roles import RoleDirectory
from auth.store import AccountStore
from auth.verifier import IdentityVerifier
from blobs.store import BlobStore, LocalBlobStore
from core.config import Settings, get_settings
from notify.sink import NotificationSink, build_sink

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("memberauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def init_services(
    app: FastAPI,
    store: AccountStore,
    sink: NotificationSink,
    blobs: BlobStore,
    settings: Settings,
) -> None:
    """Build the service graph around the given collaborators and attach it to app.state."""
    store.ensure_roles(settings.default_roles)
    hasher = CredentialHasher(KdfParams.from_settings(settings))
    roles = RoleDirectory(store, settings.admin_role_name)
    authenticator = Authenticator(store, hasher, sink, settings)
    verifier = IdentityVerifier(store, roles, sink, blobs, settings)

    app.state.store = store
    app.state.sink = sink
    app.state.blobs = blobs
    app.state.hasher = hasher
    app.state.roles = roles
    app.state.authenticator = authenticator
    app.state.verifier = verifier
    app.state.lifecycle = AccountLifecycle(store, roles, authenticator, verifier)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the account store and build services on startup; close on shutdown."""
    logger.info("MemberAuth API starting up")
    store = AccountStore(_settings.database_url)
    blobs = LocalBlobStore(Path(_settings.blob_root), _settings.blob_base_url)
    init_services(app, store, build_sink(_settings), blobs, _settings)
    logger.info("Account store initialized (%d accounts)", store.count_accounts())

    yield

    app.state.store.close()
    logger.info("MemberAuth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="MemberAuth API",
    description="Sign-in, credentials and identity verification for the membership site.",
    version=_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack -- registered outermost first
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    max_age=_settings.session_max_age,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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
# Routers and static documents
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

# Uploaded identity documents are public-read under blob_base_url.
app.mount("/uploads", StaticFiles(directory=_settings.blob_root, check_dir=False), name="uploads")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error except the 204 "no body" signal uses the ErrorResponse
# envelope. A 204 cannot carry a body, so its reason travels in the
# X-Error-Message header instead.
# ---------------------------------------------------------------------------


def _no_body_response(message: str) -> Response:
    return Response(status_code=204, headers={"X-Error-Message": message})


@app.exception_handler(MembershipError)
async def membership_error_handler(request: Request, exc: MembershipError) -> Response:
    if exc.status_code == 204:
        return _no_body_response(exc.message)
    if isinstance(exc, DependencyFailure):
        logger.error("Dependency failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    """Missing or malformed body: 204 with the first error in X-Error-Message."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {location} {first.get('msg', '')}".strip() if location else "No body attached"
    return _no_body_response(message.encode("ascii", "replace").decode("ascii"))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """The record store is a dependency; its failures surface as a generic 417."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    failure = DependencyFailure()
    return JSONResponse(
        status_code=failure.status_code,
        content=ErrorResponse(error=ErrorDetail(code=failure.code, message=failure.message)).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler. The raw exception goes to the log, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and record store reachability."""
    database = "ok"
    try:
        request.app.state.store.count_accounts()
    except SQLAlchemyError:
        logger.exception("Health check: account store unreachable")
        database = "error"
    return HealthResponse(version=_VERSION, components={"app": "ok", "database": database})
