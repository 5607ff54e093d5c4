"""
core/errors.py -- Error taxonomy shared by every layer.

One ErrorKind case per failure category. ApiError is the single exception
type raised by the session registry and token codec; service methods catch
it and fold it into an ApiResponse envelope, and the API layer renders it
with the status code the kind carries. Dispatch is on `exc.kind`, never on
the exception class.

Layer rule: core/ is the kernel. No imports from api/, auth/, users/, cache/.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error code plus its HTTP status classification."""

    EMPTY_INPUT = "ERR_EMPTY_INPUT"
    BAD_REQUEST = "ERR_BAD_REQUEST"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT = "ERR_CONFLICT"

    @property
    def status_code(self) -> int:
        return _STATUS[self]


_STATUS: dict[ErrorKind, int] = {
    ErrorKind.EMPTY_INPUT: 400,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
}


class ApiError(Exception):
    """Application error tagged with an ErrorKind.

    `data` is an optional payload that travels with the error into the
    envelope (the session-limit conflict uses it to list sessions).

    Prefer the named constructors; they fix the message format for each kind
    so the same failure always reads the same way to clients:

        ApiError.empty("auth token")      -> "auth token must be provided"
        ApiError.not_found("user 7")      -> "user 7 not found"
        ApiError.unauthorized("bad key")  -> "Unauthorized: bad key"
    """

    def __init__(self, kind: ErrorKind, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.data = data

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @classmethod
    def empty(cls, entity: str) -> ApiError:
        return cls(ErrorKind.EMPTY_INPUT, f"{entity} must be provided")

    @classmethod
    def bad_request(cls, message: str) -> ApiError:
        return cls(ErrorKind.BAD_REQUEST, message)

    @classmethod
    def unauthorized(cls, message: str | None = None) -> ApiError:
        return cls(ErrorKind.UNAUTHORIZED, f"Unauthorized: {message}" if message else "Unauthorized")

    @classmethod
    def not_found(cls, entity: str) -> ApiError:
        return cls(ErrorKind.NOT_FOUND, f"{entity} not found")

    @classmethod
    def conflict(cls, message: str, data: Any = None) -> ApiError:
        return cls(ErrorKind.CONFLICT, message, data)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "status_code": self.status_code}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApiError):
            return NotImplemented
        return self.kind is other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))

    def __repr__(self) -> str:
        return f"ApiError({self.kind.name}, {self.message!r})"
