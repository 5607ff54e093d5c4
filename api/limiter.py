"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter) and
api/routes/v1/auth.py applies per-route limits with @limiter.limit().
A single module-level instance keeps every route on the same counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Resolved per request so tests can adjust LOGIN_RATE_LIMIT before startup."""
    return get_settings().login_rate_limit
