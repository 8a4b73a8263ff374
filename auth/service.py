"""
auth/service.py -- Signup, login, logout and email verification.

AuthService coordinates the stores, the token issuer and the mailer. Each
public method returns an Outcome: expected failures (duplicate email, bad
password, unverified email, bad OTP) come back as a ServiceError and the
route layer picks the HTTP status. Infrastructure failures raise.

Transactions:
  signup() and resend_verify_email() run all of their writes AND the mail
  dispatch inside one Database.transaction(). If the mailer raises, the user,
  role edge and OTP rows are rolled back together and the exception
  propagates. login(), logout() and verify_email() issue independent
  single-statement writes.

Duplicate emails:
  The email_exists() pre-check is a fast path for the common case. Two
  concurrent signups can both pass it; the UNIQUE index on users.email then
  rejects the second insert, and that IntegrityError is reported as the same
  Conflict.

build_auth_components() is the composition root: it wires every store and
service from one Database handle so the API lifespan, the CLI and the tests
construct the graph the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.account import AccountService
from auth.authenticator import SessionAuthenticator
from auth.errors import ErrorKind, Outcome
from auth.models import ClientFingerprint, OTPPurpose, User
from auth.otp import redeem_otp
from auth.store import OTPStore, RoleStore, SessionStore, UserStore, init_schema, to_iso, utc_now
from auth.tokens import build_auth_cookie, burn_password_check, hash_password, issue_access_token, verify_password
from core.config import Settings
from core.database import Database
from core.mailer import Mailer, redact_email

logger = logging.getLogger("inkwell.auth.service")


@dataclass(frozen=True)
class RegisteredUser:
    public_id: str
    email: str


@dataclass(frozen=True)
class LoginResult:
    cookie: str  # full Set-Cookie value
    access_token: str
    expires_in: int
    session_id: str


@dataclass(frozen=True)
class EmailResult:
    email: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Auth orchestrator.

    Usage:
        service = AuthService(db, users, roles, sessions, otps, mailer, settings)
        outcome = service.signup("a@x.com", "secret123!", "A")
    """

    def __init__(
        self,
        db: Database,
        users: UserStore,
        roles: RoleStore,
        sessions: SessionStore,
        otps: OTPStore,
        mailer: Mailer,
        settings: Settings,
    ) -> None:
        self.db = db
        self.users = users
        self.roles = roles
        self.sessions = sessions
        self.otps = otps
        self.mailer = mailer
        self.settings = settings

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, display_name: str) -> Outcome[RegisteredUser]:
        email = normalize_email(email)
        if self.users.email_exists(email):
            return Outcome.failure(ErrorKind.CONFLICT, f"This email {email} already exists")

        password_hash = hash_password(password, self.settings.bcrypt_rounds)
        valid_minutes = self.settings.otp_valid_minutes
        try:
            with self.db.transaction() as conn:
                user = self.users.create(
                    User(email=email, password_hash=password_hash, display_name=display_name.strip()),
                    conn=conn,
                )
                role = self.roles.get_by_name(self.settings.default_role, conn=conn)
                if role is None:
                    raise RuntimeError(f"Default role {self.settings.default_role!r} is not seeded")
                self.roles.assign(user.id, role.id, conn=conn)
                otp = self.otps.create(user.id, OTPPurpose.EMAIL_VERIFICATION, valid_minutes, conn=conn)
                self.mailer.send_verification_code(user.email, user.display_name, otp.code, valid_minutes)
        except IntegrityError:
            logger.info("Signup lost the unique-email race for %s", redact_email(email))
            return Outcome.failure(ErrorKind.CONFLICT, f"This email {email} already exists")

        logger.info("User registered: public_id=%s email=%s", user.public_id, redact_email(email))
        return Outcome.success(RegisteredUser(public_id=user.public_id, email=user.email))

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, fingerprint: ClientFingerprint) -> Outcome[LoginResult]:
        email = normalize_email(email)
        user = self.users.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt
            burn_password_check(password)
            return Outcome.failure(ErrorKind.NOT_FOUND, f"This email {email} was not found")

        if not verify_password(password, user.password_hash):
            logger.info("Login failed (password) for public_id=%s", user.public_id)
            return Outcome.failure(ErrorKind.CONFLICT, "Password not matching")

        if not user.is_verified:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "Email is not verified")

        session = self.sessions.create(user.id, fingerprint.source, fingerprint.ip_address)
        issued = issue_access_token(user, session, self.settings.token_expire_seconds)
        logger.info(
            "Login: public_id=%s session=%s ip=%s browser=%s os=%s",
            user.public_id,
            session.public_id,
            fingerprint.ip_address,
            fingerprint.browser,
            fingerprint.os,
        )
        return Outcome.success(
            LoginResult(
                cookie=build_auth_cookie(issued.token, issued.expires_in),
                access_token=issued.token,
                expires_in=issued.expires_in,
                session_id=session.public_id,
            )
        )

    def logout(self, user: User, session_public_id: str) -> Outcome[bool]:
        """End one session. Unknown or already-closed sessions are a no-op success."""
        current = self.users.get_by_id(user.id)
        if current is None:
            return Outcome.failure(ErrorKind.CONFLICT, "User doesn't exist")

        if self.sessions.mark_logged_out(session_public_id, current.id):
            logger.info("Logout: public_id=%s session=%s", current.public_id, session_public_id)
        return Outcome.success(True)

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verify_email(self, user_public_id: str, code: str) -> Outcome[EmailResult]:
        user = self.users.get_by_public_id(user_public_id)
        if user is None:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "Invalid UUID")

        redeemed = redeem_otp(self.otps, user.id, code, OTPPurpose.EMAIL_VERIFICATION)
        if not redeemed.ok:
            return Outcome(error=redeemed.error)

        self.users.mark_verified(user.id, to_iso(utc_now()))
        logger.info("Email verified: public_id=%s", user.public_id)
        return Outcome.success(EmailResult(email=user.email))

    def resend_verify_email(self, user_public_id: str) -> Outcome[EmailResult]:
        user = self.users.get_by_public_id(user_public_id)
        if user is None:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "Invalid UUID")
        if user.is_verified:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "Email already verified")

        valid_minutes = self.settings.otp_valid_minutes
        with self.db.transaction() as conn:
            otp = self.otps.create(user.id, OTPPurpose.EMAIL_VERIFICATION, valid_minutes, conn=conn)
            self.mailer.send_verification_code(user.email, user.display_name, otp.code, valid_minutes)

        logger.info("Verification code re-sent: public_id=%s", user.public_id)
        return Outcome.success(EmailResult(email=user.email))


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


@dataclass
class AuthComponents:
    db: Database
    users: UserStore
    roles: RoleStore
    sessions: SessionStore
    otps: OTPStore
    service: AuthService
    account: AccountService
    authenticator: SessionAuthenticator


def build_auth_components(db: Database, mailer: Mailer, settings: Settings) -> AuthComponents:
    """Create the schema (idempotent) and wire every store and service to `db`."""
    init_schema(db)
    users = UserStore(db)
    roles = RoleStore(db)
    sessions = SessionStore(db)
    otps = OTPStore(db)
    return AuthComponents(
        db=db,
        users=users,
        roles=roles,
        sessions=sessions,
        otps=otps,
        service=AuthService(db, users, roles, sessions, otps, mailer, settings),
        account=AccountService(users, sessions),
        authenticator=SessionAuthenticator(users, sessions, roles),
    )
