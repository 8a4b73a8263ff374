"""
api/routes/v1/auth.py -- Registration, login, logout and email verification.

Routes:
  POST /api/v1/auth/register       -- create account, email an OTP (201)
  POST /api/v1/auth/login          -- password login; sets Authorization cookie
  POST /api/v1/auth/logout         -- end the current session (requires auth)
  POST /api/v1/auth/verify         -- redeem the emailed OTP
  POST /api/v1/auth/email/resend   -- email a fresh OTP

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  POST /email/resend is rate-limited per IP (RESEND_RATE_LIMIT, default 3/hour)
    because every call sends an email.
  Cache-Control: no-store on login responses so the token is never cached.
  The session created at login is bound to the caller's User-Agent; see
    auth/authenticator.py.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_error
from api.limiter import LOGIN_LIMIT, RESEND_LIMIT, limiter
from api.models import (
    EmailResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResendVerifyRequest,
    VerifyEmailRequest,
)
from auth.dependencies import get_current_context
from auth.fingerprint import client_fingerprint
from auth.models import AuthContext
from auth.service import AuthService
from auth.tokens import clear_auth_cookie

# Auth policy:
# - POST /api/v1/auth/register:      public
# - POST /api/v1/auth/login:         public, rate-limited
# - POST /api/v1/auth/logout:        requires auth (get_current_context)
# - POST /api/v1/auth/verify:        public -- the OTP is the credential
# - POST /api/v1/auth/email/resend:  public, rate-limited
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an unverified account and email it a verification code."""
    outcome = _service(request).signup(body.email, body.password, body.display_name)
    if not outcome.ok:
        raise_for_error(outcome.error)
    return RegisterResponse(uuid=outcome.value.public_id, email=outcome.value.email)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(LOGIN_LIMIT)  # innermost: SlowAPIMiddleware skips endpoints it finds decorated
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; open a session and set the auth cookie.

    The access token is returned in the body as well, for API clients that
    prefer the Authorization: Bearer header.
    """
    outcome = _service(request).login(body.email, body.password, client_fingerprint(request))
    if not outcome.ok:
        raise_for_error(outcome.error)

    result = outcome.value
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
        ).model_dump(),
    )
    resp.headers.append("Set-Cookie", result.cookie)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, context: AuthContext = Depends(get_current_context)) -> JSONResponse:
    """Mark the calling session LOGOUT and clear the auth cookie."""
    outcome = _service(request).logout(context.user, context.session_id)
    if not outcome.ok:
        raise_for_error(outcome.error)
    resp = JSONResponse(content=MessageResponse(message="Logout Success").model_dump())
    resp.headers.append("Set-Cookie", clear_auth_cookie())
    return resp


@router.post("/auth/verify", response_model=EmailResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> EmailResponse:
    """Redeem an emailed OTP and mark the account's email verified."""
    outcome = _service(request).verify_email(body.uuid, body.otp)
    if not outcome.ok:
        raise_for_error(outcome.error)
    return EmailResponse(email=outcome.value.email)


@router.post("/auth/email/resend", response_model=EmailResponse)
@limiter.limit(RESEND_LIMIT)
def resend_verify_email(request: Request, body: ResendVerifyRequest) -> EmailResponse:
    """Email a fresh verification code to a not-yet-verified account."""
    outcome = _service(request).resend_verify_email(body.uuid)
    if not outcome.ok:
        raise_for_error(outcome.error)
    return EmailResponse(email=outcome.value.email)
