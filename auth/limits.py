"""
auth/limits.py -- Concurrent-session ceiling checked before local sign-in.

Two rejections, both HTTP 409:
  - the requesting device already holds a session ("user is already signed in",
    data = that session)
  - the user holds more than max_sessions sessions ("<n> active sessions",
    data = {"active_sessions": [...]})

The check and the token write that follows are separate cache operations, so
two simultaneous sign-ins can both pass and leave the user one session over
the ceiling until one expires.
"""

from __future__ import annotations

from auth.models import CachedSession
from auth.sessions import SessionRegistry
from core.errors import ApiError


class SessionLimitPolicy:
    def __init__(self, sessions: SessionRegistry, max_sessions: int = 2) -> None:
        self.sessions = sessions
        self.max_sessions = max_sessions

    def check(self, user_id: int, device: str) -> list[CachedSession]:
        """Raise ApiError(CONFLICT) if sign-in must be refused; else return the active sessions."""
        active = self.sessions.get_active_sessions_from_cache(user_id)

        on_device = next((s for s in active if s.device == device), None)
        if on_device is not None:
            raise ApiError.conflict("user is already signed in", data=on_device)

        if len(active) > self.max_sessions:
            raise ApiError.conflict(f"{len(active)} active sessions", data={"active_sessions": active})

        return active
