"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

require_session():
  1. Reads "Authorization: Bearer <token>".
  2. Verifies the token against the session registry for the requesting
     device (user-agent).
  3. If the token expires within REFRESH_THRESHOLD seconds, mints a
     replacement and returns it in the "refresh-token" response header.
  Any failure becomes HTTP 401 with the standard envelope body.

require_api_key():
  Checks the "api-key" header against API_KEY in constant time. 401 on
  mismatch.

Both read their collaborators from request.app.state, where api/main.py's
lifespan puts them.

Layer rule: no imports from api/. auth/dependencies.py may import from
fastapi (for Depends/HTTPException/Request) because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from fastapi import HTTPException, Request, Response

from auth.models import VerifiedSession
from auth.service import device_from_headers
from auth.sessions import SessionRegistry
from auth.tokens import api_key_matches
from core.errors import ApiError
from core.response import ApiResponse

logger = logging.getLogger("sessionauth.auth.dependencies")

REFRESH_HEADER = "refresh-token"


def bearer_token(headers: Mapping[str, str]) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, else None."""
    auth_header = headers.get("authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _unauthorized(exc: Exception) -> HTTPException:
    return HTTPException(status_code=401, detail=ApiResponse.fail(exc).to_dict())


def require_session(request: Request, response: Response) -> VerifiedSession:
    """Require a live session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: VerifiedSession = Depends(require_session)): ...

    Routes using this dependency must return a dict or model (not a Response)
    so FastAPI merges the refresh-token header into the final response.
    """
    sessions: SessionRegistry = request.app.state.sessions
    threshold: int = request.app.state.settings.refresh_threshold

    try:
        token = bearer_token(request.headers)
        if not token:
            raise ApiError.unauthorized("no token provided")

        verified = sessions.verify_token(token, device_from_headers(request.headers))

        refreshed = sessions.rotate_if_expiring(verified, threshold)
        if refreshed:
            response.headers[REFRESH_HEADER] = refreshed
    except ApiError as exc:
        raise _unauthorized(exc) from exc
    except Exception as exc:
        logger.exception("Session verification failed unexpectedly")
        raise _unauthorized(exc) from exc

    request.state.session = verified
    return verified


def require_api_key(request: Request) -> None:
    """Require the configured API key in the "api-key" header. Raises HTTP 401 otherwise."""
    expected: str = request.app.state.settings.api_key
    if not api_key_matches(expected, request.headers.get("api-key")):
        raise _unauthorized(ApiError.unauthorized("api key not valid"))
