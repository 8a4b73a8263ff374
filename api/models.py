"""
API request and response models for Inkwell REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Public identifiers are exposed as `uuid`; internal integer ids never leave
the server.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.account import SessionView
from auth.models import User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one @, no whitespace, a dot in the domain. Deliverability
# is proven by the OTP round-trip, not by the regex.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
OTP_PATTERN = r"^\d{8}$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    No str_strip_whitespace here: it would silently alter passwords. The
    service normalises the email itself.
    """

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=4, max_length=32)
    display_name: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=4, max_length=32)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify. The OTP is the credential."""

    model_config = ConfigDict(str_strip_whitespace=True)

    uuid: str = Field(min_length=1, max_length=36)
    otp: str = Field(pattern=OTP_PATTERN)


class ResendVerifyRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    uuid: str = Field(min_length=1, max_length=36)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/account/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str
    email: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class EmailResponse(BaseModel):
    """Returned by verify and resend -- echoes the address the code belongs to."""

    model_config = ConfigDict(frozen=True)

    email: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    uuid: str
    email: str
    display_name: str
    email_verified_at: Optional[str] = None
    created_at: str
    roles: list[str] = []

    @classmethod
    def from_user(cls, user: User, roles: list[str] | None = None) -> "ProfileResponse":
        return cls(
            uuid=user.public_id,
            email=user.email,
            display_name=user.display_name,
            email_verified_at=user.email_verified_at,
            created_at=user.created_at or "",
            roles=roles or [],
        )


class PaginationInfo(BaseModel):
    current_page: int
    size_page: int  # rows on this page, not the requested limit
    max_page: int
    total_data: int


class UserListResponse(BaseModel):
    """GET /api/v1/users: one page of accounts plus the paging block."""

    data: list[ProfileResponse]
    pagination: PaginationInfo


class SessionResponse(BaseModel):
    """One row of GET /api/v1/account/sessions."""

    model_config = ConfigDict(frozen=True)

    uuid: str
    useragent: str
    ip_address: str
    status: str
    created_at: str
    updated_at: str
    is_current: bool

    @classmethod
    def from_view(cls, view: SessionView) -> "SessionResponse":
        s = view.session
        return cls(
            uuid=s.public_id,
            useragent=s.useragent,
            ip_address=s.ip_address,
            status=s.status.value,
            created_at=s.created_at or "",
            updated_at=s.updated_at or "",
            is_current=view.is_current,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: list[str] = []


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
