"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_context() runs the session gate (auth/authenticator.py) against
the request's bearer token and client fingerprint. On success the resulting
AuthContext is also stored on request.state.auth so middleware and handlers
further down can read it without re-validating. On failure it raises HTTP 401.

require_roles("ADMIN", ...) builds a dependency that additionally raises
HTTP 403 unless the caller holds at least one of the named roles.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.authenticator import SessionAuthenticator, check_roles, extract_bearer_token
from auth.fingerprint import client_fingerprint
from auth.models import AuthContext


def get_current_context(request: Request) -> AuthContext:
    """Require a valid session. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(ctx: AuthContext = Depends(get_current_context)): ...
    """
    authenticator: SessionAuthenticator = request.app.state.authenticator
    outcome = authenticator.authenticate(extract_bearer_token(request), client_fingerprint(request))
    if not outcome.ok:
        raise HTTPException(status_code=outcome.error.status_code, detail=outcome.error.as_dict())
    request.state.auth = outcome.value
    return outcome.value


def require_roles(*names: str) -> Callable[..., AuthContext]:
    """Return a dependency that demands one of `names` on top of authentication.

    Usage:
        @router.get("/users")
        def route(ctx: AuthContext = Depends(require_roles("ADMIN"))): ...
    """
    required = frozenset(names)

    def dependency(context: AuthContext = Depends(get_current_context)) -> AuthContext:
        outcome = check_roles(context, required)
        if not outcome.ok:
            raise HTTPException(status_code=outcome.error.status_code, detail=outcome.error.as_dict())
        return context

    return dependency
