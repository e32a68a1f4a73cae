"""
api/main.py -- FastAPI application for PropertyDesk.

Serves the identity core over HTTP: password and email-code sign-in, bearer
tokens, and the whitelist-gated back office.

Run with:      uvicorn asgi:app --reload

Request path (outermost first):
  log_requests -> TrustedHostMiddleware -> CORSMiddleware -> SlowAPIMiddleware -> router

lifespan() builds one engine and every store and service over it, then
tears them down in reverse. Settings is the only module-level singleton.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.codes import VerificationCodeStore
from auth.credentials import CredentialStore
from auth.db import create_auth_engine
from auth.delivery import LoggingCodeDelivery
from auth.errors import AuthError
from auth.gate import AuthorizationGate
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenService
from auth.whitelist import AdminWhitelist
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("propertydesk.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired verification codes every `interval` seconds.

    Housekeeping only: an expired code is already rejected on read, so a
    failed or skipped sweep changes nothing observable.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = app.state.codes.purge_expired()
        except AuthError:
            logger.warning("Expired-code sweep failed; will retry next interval")
            continue
        if removed:
            logger.info("Purged %d expired verification codes", removed)


def _bootstrap_whitelist(whitelist: AdminWhitelist, settings: Settings) -> None:
    """Whitelist BOOTSTRAP_ADMIN_EMAIL if the whitelist is empty."""
    if not settings.bootstrap_admin_email or whitelist.count() > 0:
        return
    whitelist.add(settings.bootstrap_admin_email, settings.bootstrap_admin_name, added_by="bootstrap")
    logger.info("Bootstrap admin whitelisted")


def wire_services(app: FastAPI, settings: Settings, engine) -> None:
    """Build every store and service over one engine and attach them to app.state."""
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, workers=settings.password_hash_workers)
    users = UserStore(engine)
    app.state.engine = engine
    app.state.hasher = hasher
    app.state.credentials = CredentialStore(users, hasher)
    app.state.codes = VerificationCodeStore(
        engine,
        ttl=settings.verification_code_ttl_seconds,
        code_length=settings.verification_code_length,
    )
    app.state.whitelist = AdminWhitelist(engine)
    app.state.gate = AuthorizationGate(app.state.whitelist)
    app.state.tokens = TokenService(settings.secret_key, ttl=settings.token_expire_seconds)
    app.state.code_delivery = LoggingCodeDelivery(reveal_codes=settings.debug)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup before the yield, shutdown after it.

    SECRET_KEY is read here once and handed to TokenService; nothing reads
    it again for the life of the process.
    """
    settings = get_settings()
    logger.info("PropertyDesk API starting up")
    engine = create_auth_engine(settings.database_url)
    wire_services(app, settings, engine)
    _bootstrap_whitelist(app.state.whitelist, settings)
    logger.info("Auth initialized (whitelist entries=%d)", app.state.whitelist.count())
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.code_purge_interval_seconds))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.hasher.close()
    engine.dispose()
    logger.info("PropertyDesk API shutdown complete")


app = FastAPI(
    title="PropertyDesk API",
    description="Identity and access control for the property-listing site and its back office.",
    version=__version__,
    lifespan=lifespan,
)

# SlowAPI finds its limiter on app.state.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Middleware
#
# Starlette wraps each add_middleware() call around the previous ones, so the
# LAST registered runs FIRST. Registered innermost-out here; a request meets
# request logging, TrustedHost, CORS, then SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=600,
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request. Bodies and headers are never logged."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info(
        "%s %s -> %d (%.1fms) from %s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        client,
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Error envelope
#
# Every failure leaves as {"error": {code, message, detail, retryable}}.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    retryable: bool = False,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail, retryable=retryable))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an identity or access failure.

    The precise kind (exc.code, e.g. "invalid_signature") goes to the log.
    The client gets only the coarse public code, so neither a failed login
    nor a rejected token says which check failed.
    """
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    headers = {"Cache-Control": "no-store"}
    if exc.retryable:
        headers["Retry-After"] = "1"
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return _error_response(
        exc.status_code,
        exc.public_code,
        exc.public_message,
        retryable=exc.retryable,
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s", request.url.path)
    return _error_response(
        429,
        "rate_limited",
        "Too many attempts. Slow down and try again shortly.",
        detail=str(exc.detail),
        headers={"Retry-After": "60"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 naming the offending fields.

    Submitted values are never echoed; a signup body carries a password.
    """
    fields = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return _error_response(422, "validation_error", "Request validation failed.", detail=fields)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routes that raise HTTPException with a {code, message} dict keep their code."""
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", f"http_{exc.status_code}")
        return _error_response(exc.status_code, code, exc.detail.get("message", ""))
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected: traceback to the log, a fixed message to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# No rate limit and no auth: load balancers poll this.
@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)
