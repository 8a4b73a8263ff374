"""
api/routes/v1/account.py -- Self-service account endpoints.

Routes:
  GET /api/v1/account/profile    -- the caller's profile and roles
  PUT /api/v1/account/profile    -- change display_name
  GET /api/v1/account/sessions   -- the caller's login sessions, current first

All routes require a valid session (get_current_context). They operate on the
caller's own account only; there is no user id in the path.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.errors import raise_for_error
from api.models import ProfileResponse, ProfileUpdate, SessionResponse
from auth.account import AccountService
from auth.dependencies import get_current_context
from auth.models import AuthContext

router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


@router.get("/account/profile", response_model=ProfileResponse)
def get_profile(request: Request, context: AuthContext = Depends(get_current_context)) -> ProfileResponse:
    outcome = _service(request).get_profile(context.user.id)
    if not outcome.ok:
        raise_for_error(outcome.error)
    return ProfileResponse.from_user(outcome.value, context.roles)


@router.put("/account/profile", response_model=ProfileResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    context: AuthContext = Depends(get_current_context),
) -> ProfileResponse:
    """Update the caller's display name. Returns the updated profile."""
    outcome = _service(request).update_profile(context.user.id, body.display_name)
    if not outcome.ok:
        raise_for_error(outcome.error)
    return ProfileResponse.from_user(outcome.value, context.roles)


@router.get("/account/sessions", response_model=list[SessionResponse])
def list_sessions(request: Request, context: AuthContext = Depends(get_current_context)) -> list[SessionResponse]:
    """List every session the caller has opened, including logged-out ones."""
    views = _service(request).list_sessions(context.user.id, context.session_id)
    return [SessionResponse.from_view(v) for v in views]
