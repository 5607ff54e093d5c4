"""
core/response.py -- The uniform result envelope returned by service methods.

Every service-layer call returns ApiResponse instead of raising, so route
handlers branch on `.success` rather than wrapping calls in try/except.
The envelope carries the original exception object in `error` (never a
string copy) so callers and tests can inspect its kind.

Layer rule: core/ is the kernel. No imports from api/, auth/, users/, cache/.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from core.errors import ApiError

T = TypeVar("T")


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """`success` and `error` are fields, so the constructors are ok() / fail()."""

    success: bool
    data: Optional[T]
    error: Optional[BaseException]
    message: str

    @classmethod
    def ok(cls, data: T, message: str = "Operation successful") -> ApiResponse[T]:
        return cls(True, data, None, message)

    @classmethod
    def fail(cls, error: BaseException, message: str | None = None) -> ApiResponse[T]:
        """Failure envelope. The message defaults to the error's own text."""
        return cls(False, None, error, message if message is not None else _error_message(error))

    @classmethod
    def from_exception(cls, exc: BaseException) -> ApiResponse[T]:
        """Catch-all constructor: wraps any exception, keeping the original object."""
        return cls(False, None, exc, _error_message(exc))

    def to_dict(self, exclude: frozenset[str] = frozenset()) -> dict:
        """JSON-ready form. Dataclass payloads are converted; `exclude` drops
        keys from dict-shaped payloads (e.g. the password hash)."""
        return {
            "success": self.success,
            "data": _serialize(self.data, exclude),
            "error": _serialize_error(self.error),
            "message": self.message,
        }


def _error_message(error: BaseException) -> str:
    if isinstance(error, ApiError):
        return error.message
    return str(error) or error.__class__.__name__


def _serialize_error(error: BaseException | None) -> dict | None:
    if error is None:
        return None
    if isinstance(error, ApiError):
        return error.to_dict()
    return {"code": "ERR_INTERNAL", "message": _error_message(error), "status_code": 500}


def _serialize(value: Any, exclude: frozenset[str]) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, dict):
        return {k: _serialize(v, exclude) for k, v in value.items() if k not in exclude}
    if isinstance(value, (list, tuple)):
        return [_serialize(v, exclude) for v in value]
    return value
