"""
auth/tokens.py -- Bearer token issuing, password hashing, and the auth cookie.

Security design decisions:
  JWT: python-jose with HS256. A token binds exactly two identities: the
       user's public id (claim "uid") and the session's public id (claim
       "sid"). It carries no role, email or fingerprint -- those are looked
       up from the session on every request so that logging out, or a
       fingerprint change, invalidates the token immediately. Verification
       returns None on any failure -- the session gate turns that into 401.

  Passwords: bcrypt with a configurable cost (BCRYPT_ROUNDS, default 10).
       The _DUMMY_HASH constant enables timing equalization in
       burn_password_check() so response time does not reveal whether an
       email is registered.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to start
       in production without one and rejects keys shorter than 32 chars.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Session, User

logger = logging.getLogger("inkwell.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

AUTH_COOKIE_NAME = "Authorization"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: int  # seconds


@dataclass(frozen=True)
class TokenClaims:
    uid: str  # user public id
    sid: str  # session public id
    exp: int  # unix seconds


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    passwords at 32 characters, which keeps inputs below that threshold.
    """
    salt = bcrypt.gensalt(rounds=rounds or _settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("inkwell_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt comparison against the dummy hash and discard the result.

    Called on the unknown-email login path so it costs the same as a real
    password check.
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def issue_access_token(user: User, session: Session, expire_seconds: int = 0) -> IssuedToken:
    """Sign a token binding the user's and the session's public ids.

    Args:
        user:           Owner of the session. Only public_id is embedded.
        session:        Freshly created ACTIVE session.
        expire_seconds: Validity window. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "uid": user.public_id,
        "sid": session.public_id,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    token = jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)
    return IssuedToken(token=token, expires_in=duration)


def decode_access_token(token: str) -> TokenClaims | None:
    """Verify signature and expiry. Returns the claims or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    uid, sid = payload.get("uid"), payload.get("sid")
    if not isinstance(uid, str) or not isinstance(sid, str):
        return None
    return TokenClaims(uid=uid, sid=sid, exp=int(payload.get("exp", 0)))


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def build_auth_cookie(token: str, expires_in: int) -> str:
    """Return the Set-Cookie value carrying the bearer token.

    HttpOnly keeps it away from page scripts, Max-Age matches the JWT expiry
    so both lapse together, SameSite=Lax blocks cross-site POSTs, and Secure
    is added when SECURE_COOKIES=true.
    """
    cookie = f"{AUTH_COOKIE_NAME}={token}; HttpOnly; Max-Age={expires_in}; Path=/; SameSite=Lax"
    if _settings.secure_cookies:
        cookie += "; Secure"
    return cookie


def clear_auth_cookie() -> str:
    """Set-Cookie value that makes the browser drop the auth cookie."""
    return f"{AUTH_COOKIE_NAME}=; HttpOnly; Max-Age=0; Path=/; SameSite=Lax"
