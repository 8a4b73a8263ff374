"""
auth/account.py -- Self-service account views for an authenticated user.

Profile read/update and session history. Every method is keyed by the
caller's own internal user id taken from the AuthContext, never by a
client-supplied id.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.errors import ErrorKind, Outcome
from auth.models import Session, User
from auth.store import SessionStore, UserStore


@dataclass(frozen=True)
class SessionView:
    session: Session
    is_current: bool


class AccountService:
    def __init__(self, users: UserStore, sessions: SessionStore) -> None:
        self.users = users
        self.sessions = sessions

    def get_profile(self, user_id: int) -> Outcome[User]:
        user = self.users.get_by_id(user_id)
        if user is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "User not found")
        return Outcome.success(user)

    def update_profile(self, user_id: int, display_name: str | None) -> Outcome[User]:
        """Change the display name. BadRequest when nothing would change."""
        name = (display_name or "").strip()
        if not name:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "Some field is required", ["display_name"])
        if not self.users.update_display_name(user_id, name):
            return Outcome.failure(ErrorKind.NOT_FOUND, "User not found")
        return self.get_profile(user_id)

    def list_sessions(self, user_id: int, current_session_id: str) -> list[SessionView]:
        """All of the user's sessions, the calling session first, then newest first."""
        views = [
            SessionView(session=s, is_current=s.public_id == current_session_id)
            for s in self.sessions.list_for_user(user_id)
        ]
        # sort is stable, so the store's newest-first order survives
        views.sort(key=lambda v: not v.is_current)
        return views
