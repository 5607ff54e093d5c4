"""
API request and response models for SessionAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

import re
from enum import Enum
from typing import Any, Optional

from fastapi import Response
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import ApiError
from core.response import ApiResponse

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[^A-Za-z0-9]"), "a symbol"),
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OAuthProviderEnum(str, Enum):
    google = "google"
    github = "github"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/local/signup.

    passwordMatch is accepted under its camelCase wire name. Whether it equals
    password is checked by AuthService.local_signup(), which owns that error
    message; this model only checks password strength.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    password_match: str = Field(alias="passwordMatch", max_length=72)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        missing = [label for rule, label in _PASSWORD_RULES if not rule.search(value)]
        if missing:
            raise ValueError(f"Invalid password format: must contain {', '.join(missing)}")
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/local/signin."""

    model_config = ConfigDict(frozen=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class UserEdit(BaseModel):
    """Request body for PUT /api/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Uniform response body: every route returns this shape, success or not."""

    success: bool
    data: Any = None
    error: Optional[dict] = None
    message: str = ""


class OAuthProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Envelope rendering
# ---------------------------------------------------------------------------

# Never serialised to clients: password hashes, and tokens of sessions
# other than the caller's own.
PRIVATE_FIELDS = frozenset({"password", "token"})


def render(result: ApiResponse, response: Response, status_code: int = 200) -> dict:
    """Turn a service envelope into a response body, setting the status code.

    Failures take their status from the error kind; errors without a kind
    (store or cache outages) map to 500.
    """
    if result.success:
        response.status_code = status_code
    elif isinstance(result.error, ApiError):
        response.status_code = result.error.status_code
    else:
        response.status_code = 500
    return result.to_dict(exclude=PRIVATE_FIELDS)
