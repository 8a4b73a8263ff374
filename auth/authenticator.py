"""
auth/authenticator.py -- The session gate in front of every protected route.

A request is authorized only if every step passes, in this order:

  1. a bearer token is present          (cookie "Authorization", else header)
  2. the token verifies                 (signature + expiry)
  3. its session exists and is ACTIVE
  4. the token's uid is the session owner's public id
  5. the request's User-Agent equals the one stored on the session

Any failed step short-circuits to Unauthenticated with the same client-facing
message; the failing step name is logged so operators can tell them apart.
Step 5 stops a token lifted from one client being replayed from another.

This module is framework-free apart from reading the token off a Starlette
Request; auth/dependencies.py adapts it to FastAPI's Depends().
"""

from __future__ import annotations

import logging

from starlette.requests import Request

from auth.errors import ErrorKind, Outcome
from auth.models import AuthContext, ClientFingerprint
from auth.store import RoleStore, SessionStore, UserStore
from auth.tokens import AUTH_COOKIE_NAME, decode_access_token

logger = logging.getLogger("inkwell.auth.gate")

INVALID_TOKEN_MESSAGE = "Invalid Token"


def extract_bearer_token(request: Request) -> str | None:
    """Return the raw token from the auth cookie or the Authorization header.

    The cookie wins when both are present.
    """
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


class SessionAuthenticator:
    """Validates (token, fingerprint) pairs against the session store."""

    def __init__(self, users: UserStore, sessions: SessionStore, roles: RoleStore) -> None:
        self.users = users
        self.sessions = sessions
        self.roles = roles

    def authenticate(self, token: str | None, fingerprint: ClientFingerprint) -> Outcome[AuthContext]:
        if not token:
            return self._reject("no_token")

        claims = decode_access_token(token)
        if claims is None:
            return self._reject("bad_token")

        session = self.sessions.get_active(claims.sid)
        if session is None:
            return self._reject("session_inactive", sid=claims.sid)

        owner = self.users.get_by_id(session.user_id)
        if owner is None or owner.public_id != claims.uid:
            return self._reject("identity_mismatch", sid=claims.sid)

        if fingerprint.source != session.useragent:
            return self._reject("fingerprint_mismatch", sid=claims.sid)

        return Outcome.success(
            AuthContext(
                user=owner,
                session_id=session.public_id,
                roles=self.roles.role_names_for_user(owner.id),
            )
        )

    @staticmethod
    def _reject(step: str, sid: str | None = None) -> Outcome[AuthContext]:
        logger.info("Session gate rejected request: step=%s sid=%s", step, sid or "-")
        return Outcome.failure(ErrorKind.UNAUTHENTICATED, INVALID_TOKEN_MESSAGE)


def check_roles(context: AuthContext, required: set[str] | list[str] | tuple[str, ...]) -> Outcome[AuthContext]:
    """Role gate: succeed if the context holds at least one required role."""
    if context.has_any_role(required):
        return Outcome.success(context)
    return Outcome.failure(ErrorKind.FORBIDDEN, "Unauthorized Access")
