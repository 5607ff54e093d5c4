"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes (mounted under /api):
  POST /auth/local/signup            -- create account + first session
  POST /auth/local/signin            -- password login; session limit enforced
  GET  /auth/session                 -- decoded claims of the caller's session
  GET  /auth/sessions                -- the caller's active sessions (no tokens)
  POST /auth/logout                  -- delete the caller's session
  GET  /auth/providers               -- enabled OAuth providers (public)
  GET  /auth/{provider}/login        -- start OAuth redirect (404 if disabled)
  GET  /auth/{provider}/redirect     -- OAuth callback placeholder

Security:
  [H2] POST /auth/local/signin is rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on every response that carries a token.
  The session-limit check runs after the password check, so an anonymous
  caller cannot enumerate another account's devices by email alone.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_rate_limit
from api.models import Envelope, LoginRequest, OAuthProviderEnum, OAuthProviderInfo, SignupRequest, render
from auth.dependencies import require_session
from auth.limits import SessionLimitPolicy
from auth.models import VerifiedSession
from auth.oauth import callback_url, get_enabled_providers
from auth.service import AuthService, SignupData, device_from_headers
from auth.sessions import SessionRegistry
from core.errors import ApiError
from core.response import ApiResponse

# Auth policy:
# - POST /auth/local/signup:        public
# - POST /auth/local/signin:        public, rate-limited
# - GET  /auth/providers:           public
# - GET  /auth/{provider}/*:        public (OAuth placeholders)
# - GET  /auth/session, /sessions:  requires session (require_session)
# - POST /auth/logout:              requires session (require_session)
router = APIRouter()


# ---------------------------------------------------------------------------
# Local accounts
# ---------------------------------------------------------------------------


@router.post("/auth/local/signup", response_model=Envelope, status_code=201)
def signup(request: Request, response: Response, body: SignupRequest) -> dict:
    """Create an account and sign it in on the requesting device."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.local_signup(
        request.headers,
        SignupData(email=body.email, password=body.password, password_match=body.password_match),
    )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return render(result, response, status_code=201)


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/local/signin", response_model=Envelope)
def signin(request: Request, response: Response, body: LoginRequest) -> dict:
    """Authenticate with email and password and open a session for this device.

    404 when no account has the email, 401 on a wrong password, 409 when the
    device already holds a session or the account is over its session limit.
    """
    auth_service: AuthService = request.app.state.auth_service
    policy: SessionLimitPolicy = request.app.state.session_limit

    user = auth_service.validate_user(body.email, body.password)
    if user is None:
        raise ApiError.unauthorized("unable to validate user")

    policy.check(user.id, device_from_headers(request.headers))

    result = auth_service.local_login(user, request.headers)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return render(result, response)


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/session", response_model=Envelope)
def current_session(session: VerifiedSession = Depends(require_session)) -> dict:
    """Return the decoded claims of the caller's token."""
    return ApiResponse.ok(
        {**session.decoded.claims(), "iat": session.decoded.iat, "exp": session.decoded.exp},
        f"session {session.session_id} active",
    ).to_dict()


@router.get("/auth/sessions", response_model=Envelope)
def list_sessions(request: Request, session: VerifiedSession = Depends(require_session)) -> dict:
    """List the caller's active sessions. Tokens are never included."""
    sessions: SessionRegistry = request.app.state.sessions
    active = sessions.get_active_sessions_from_cache(session.decoded.id)
    data = [{"id": s.id, "device": s.device, "current": s.id == session.session_id} for s in active]
    return ApiResponse.ok(data, f"{len(data)} active sessions").to_dict()


@router.post("/auth/logout", response_model=Envelope)
def logout(request: Request, response: Response, session: VerifiedSession = Depends(require_session)) -> dict:
    """Delete the caller's session. The token stops verifying immediately."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.local_logout(session.session_id)
    # a refresh header minted while verifying would point at the deleted session
    if "refresh-token" in response.headers:
        del response.headers["refresh-token"]
    return render(result, response)


# ---------------------------------------------------------------------------
# OAuth placeholders
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when no credentials are set."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(request.app.state.settings)]


@router.get("/auth/{provider}/login")
async def oauth_login(request: Request, provider: OAuthProviderEnum):
    """Redirect to the provider's consent page."""
    client = request.app.state.oauth.create_client(provider.value)
    if client is None:
        raise ApiError.not_found(f"{provider.value} OAuth provider")
    return await client.authorize_redirect(request, callback_url(request.app.state.settings, provider.value))


@router.get("/auth/{provider}/redirect")
async def oauth_redirect(provider: OAuthProviderEnum) -> dict:
    """Provider callback. Code exchange and account linking are not implemented."""
    return {"message": f"{provider.value} redirect"}
