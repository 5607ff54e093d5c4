"""
api/main.py -- FastAPI application entry point for SessionAuth.

Run with:      uvicorn api.main:app --reload

Middleware stack (registration order; Starlette wraps the last one outermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- CLIENT_URL origin; exposes the refresh-token header
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- OAuth state storage for authlib

Lifespan builds every collaborator once (cache, user store, registry,
services, OAuth registry) and hangs it on app.state; dependencies and routes
read from there. Nothing is a module-level singleton except the settings
needed to configure middleware before startup.
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
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import PRIVATE_FIELDS, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import REFRESH_HEADER
from auth.limits import SessionLimitPolicy
from auth.oauth import build_oauth
from auth.service import AuthService
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenCodec
from cache.store import CacheStore, RedisCache, open_cache
from core.config import Settings, get_settings
from core.errors import ApiError
from core.response import ApiResponse
from users.service import UsersService

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, cache: CacheStore, user_store: UserStore) -> None:
    """Build the session subsystem on top of a cache and user store and attach it to app.state."""
    app.state.settings = settings
    app.state.cache = cache
    app.state.user_store = user_store
    app.state.users_service = UsersService(user_store)
    app.state.sessions = SessionRegistry(cache, TokenCodec(settings.session_secret), settings)
    app.state.auth_service = AuthService(app.state.sessions, app.state.users_service, settings)
    app.state.session_limit = SessionLimitPolicy(app.state.sessions, settings.max_active_sessions)
    app.state.oauth = build_oauth(settings)


def connect_cache(url: str) -> CacheStore:
    """Open the configured cache. A Redis backend must answer PING before startup continues."""
    cache = open_cache(url)
    if isinstance(cache, RedisCache):
        cache.verify_connection()
        logger.info("Redis cache reachable")
    return cache


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Reclaim storage held by expired cache rows every 6 hours.

    Expired rows are already invisible to reads; this only frees space.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(6 * 60 * 60)
        removed = app.state.cache.purge_expired()
        logger.info("Purged %d expired cache entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown, symmetric even if a request handler raised.
    """
    logger.info("SessionAuth API starting up")
    cache = connect_cache(_settings.cache_url)
    user_store = UserStore(_settings.database_url)
    wire_services(app, _settings, cache, user_store)
    logger.info("Cache (%s) and user store initialized", type(cache).__name__)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.cache.close()
    app.state.user_store.close()
    logger.info("SessionAuth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionAuth API",
    description="Local email/password accounts with device-scoped JWT sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.client_url],
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "api-key"],
    allow_credentials=True,
    # browsers hide non-safelisted response headers unless exposed
    expose_headers=[REFRESH_HEADER],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# authlib keeps the OAuth state value here between redirect and callback
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.session_secret,
    https_only=_settings.secure_cookies,
    max_age=_settings.session_expiry,
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
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {success, data, error, message} envelope so
# clients parse every failure the same way.
# ---------------------------------------------------------------------------


def _envelope(status_code: int, error: BaseException, message: str | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ApiResponse.fail(error, message).to_dict())


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render an ApiError with the status its kind carries; exc.data becomes the envelope data."""
    body = ApiResponse(False, exc.data, exc, exc.message).to_dict(exclude=PRIVATE_FIELDS)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _envelope(429, exc, "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when request body or query params fail validation."""
    return _envelope(422, ApiError.bad_request(str(exc.errors())), "Request validation failed.")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the envelope shape.

    Dependencies raise HTTPException with an already-built envelope as detail;
    that is passed through as the body unchanged.
    """
    if isinstance(exc.detail, dict) and "success" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return _envelope(exc.status_code, exc, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception is logged server-side only; clients get a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "data": None,
            "error": {"code": "ERR_INTERNAL", "message": "An unexpected error occurred.", "status_code": 500},
            "message": "An unexpected error occurred.",
        },
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a cheap read against the cache and the user store."""
    components = {"app": "ok"}
    try:
        request.app.state.cache.get("health:probe")
        components["cache"] = "ok"
    except Exception:
        logger.exception("Cache health probe failed")
        components["cache"] = "error"
    try:
        request.app.state.user_store.has_users()
        components["database"] = "ok"
    except Exception:
        logger.exception("Database health probe failed")
        components["database"] = "error"
    status = "ok" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=__version__, components=components)
