"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
predicates). Stores map rows to these; the service and routes do the work.
Records are flat -- a Session carries user_id, not a nested User. Callers
that need the owner look it up explicitly.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    LOGOUT = "LOGOUT"
    EXPIRED = "EXPIRED"


class OTPStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    USED = "USED"
    EXPIRED = "EXPIRED"


class OTPPurpose(str, Enum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"


@dataclass
class User:
    """A registered account.

    email_verified_at stays None until the first successful OTP redemption
    and is never overwritten afterwards. password_hash is a bcrypt string.
    """

    email: str
    password_hash: str
    display_name: str
    id: int | None = None
    public_id: str | None = None
    email_verified_at: str | None = None
    created_at: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None


@dataclass
class Session:
    """One authenticated login, independently revocable.

    useragent is the raw User-Agent string captured at login; every later
    request must present the identical string.
    """

    user_id: int
    useragent: str
    ip_address: str
    status: SessionStatus = SessionStatus.ACTIVE
    id: int | None = None
    public_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class OTP:
    user_id: int
    code: str  # 8 ASCII digits
    purpose: OTPPurpose
    expires_at: str  # ISO 8601 UTC
    status: OTPStatus = OTPStatus.AVAILABLE
    id: int | None = None
    public_id: str | None = None
    created_at: str | None = None


@dataclass
class Role:
    name: str
    id: int | None = None
    public_id: str | None = None


@dataclass(frozen=True)
class ClientFingerprint:
    """What the server knows about the calling client.

    Only `source` (the raw User-Agent) takes part in session binding. browser
    and os are coarse labels for display in session history.
    """

    source: str
    ip_address: str
    browser: str = "Other"
    os: str = "Other"


@dataclass
class AuthContext:
    """Identity attached to a request after the session gate succeeds."""

    user: User
    session_id: str
    roles: list[str] = field(default_factory=list)

    def has_any_role(self, required: set[str] | list[str] | tuple[str, ...]) -> bool:
        return any(role in self.roles for role in required)
