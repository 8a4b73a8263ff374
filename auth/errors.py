"""
auth/errors.py -- Error taxonomy for the auth service layer.

Service operations do not raise for expected failures (duplicate email, bad
OTP, unverified login, ...). They return an Outcome carrying either a value
or a ServiceError(kind, message). The route layer owns the mapping from
ErrorKind to HTTP status (STATUS_BY_KIND), so the service stays usable from
the CLI and from tests without an HTTP stack.

Unexpected failures (database down, core.mailer.MailDeliveryError) still
raise. The API's exception handlers turn those into 5xx responses.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    TOO_MANY_REQUESTS = "too_many_requests"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.TOO_MANY_REQUESTS: 429,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str
    detail: list[str] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def as_dict(self) -> dict:
        """Shape used for the `error` field of the JSON error envelope."""
        return {"code": self.kind.value, "message": self.message, "detail": list(self.detail)}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a ServiceError -- never both.

    Usage:
        result = service.signup(...)
        if not result.ok:
            return error_response(result.error)
        use(result.value)
    """

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, detail: list[str] | None = None) -> "Outcome[T]":
        return cls(error=ServiceError(kind=kind, message=message, detail=detail or []))
