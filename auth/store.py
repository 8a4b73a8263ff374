"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. One small repository per table family
(UserStore, RoleStore, SessionStore, OTPStore); the _row_to_* functions are
the mappers. Service and dependency code never touches SQL directly.

Every repository is constructed with an explicit core.database.Database
handle -- there is no module-level engine. Every method takes an optional
`conn`; pass the connection from Database.transaction() to make several
writes atomic (signup, resend-verification). Without it each call commits
on its own.

Queries return flat records. Joins that the HTTP layer needs (session ->
owner, user -> role names) are separate explicit calls.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email carries a UNIQUE index. That index, not the service-level
  existence check, is what prevents two accounts sharing an email under
  concurrent signups. create() lets IntegrityError propagate.

Layer rule: no imports from api/. core.database is the only core import.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    asc,
    desc,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection

from auth.models import OTP, OTPPurpose, OTPStatus, Role, Session, SessionStatus, User
from core.database import Database

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("public_id", String(36), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("display_name", String(255), nullable=False),
    Column("email_verified_at", String(32)),  # NULL until OTP redemption
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("public_id", String(36), nullable=False, unique=True),
    Column("name", String(52), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

users_roles = Table(
    "users_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_users_roles_user_role"),
)

users_sessions = Table(
    "users_sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("public_id", String(36), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("useragent", String(512), nullable=False),
    Column("ip_address", String(64), nullable=False),
    Column("status", String(16), nullable=False),  # ACTIVE | LOGOUT | EXPIRED
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

otps = Table(
    "otps",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("public_id", String(36), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("code", String(8), nullable=False),
    Column("purpose", String(32), nullable=False),
    Column("status", String(16), nullable=False),  # AVAILABLE | USED | EXPIRED
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Reference data. Fixed public ids so every deployment agrees on them.
SEED_ROLES: dict[str, str] = {
    "ADMIN": "1e516945-88f2-4a90-9ef5-1546d0a0f863",
    "USER": "a8e28554-8565-460b-9d33-f82bd26c859a",
}

OTP_LENGTH = 8

# Columns an admin listing may be ordered by.
USER_ORDER_COLUMNS = ("created_at", "updated_at", "email", "display_name")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Fixed-width ISO 8601 so stored timestamps also sort correctly as text."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(utc_now())


def _new_public_id() -> str:
    return str(uuid.uuid4())


def generate_otp_code(length: int = OTP_LENGTH) -> str:
    """Return a random numeric code with exactly `length` digits (no leading zero).

    secrets.randbelow draws from the OS CSPRNG, so codes are not predictable
    from earlier ones.
    """
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def init_schema(db: Database) -> None:
    """Create all auth tables and seed the reference roles. Idempotent."""
    db.create_schema(metadata)
    RoleStore(db).ensure_seeded()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(db)
        user = store.create(User(email="a@x.com", password_hash=h, display_name="A"))
        same = store.get_by_email("a@x.com")
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, user: User, conn: Connection | None = None) -> User:
        """Insert a user and return it with id, public_id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        public_id = user.public_id or _new_public_id()
        with self.db.scope(conn) as c:
            result = c.execute(
                users.insert().values(
                    public_id=public_id,
                    email=user.email,
                    password_hash=user.password_hash,
                    display_name=user.display_name,
                    email_verified_at=user.email_verified_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            user_id = result.inserted_primary_key[0]
        return User(
            id=user_id,
            public_id=public_id,
            email=user.email,
            password_hash=user.password_hash,
            display_name=user.display_name,
            email_verified_at=user.email_verified_at,
            created_at=now,
        )

    def get_by_id(self, user_id: int, conn: Connection | None = None) -> User | None:
        with self.db.scope(conn) as c:
            row = c.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_public_id(self, public_id: str, conn: Connection | None = None) -> User | None:
        with self.db.scope(conn) as c:
            row = c.execute(users.select().where(users.c.public_id == public_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str, conn: Connection | None = None) -> User | None:
        """Exact match on the stored (already lower-cased) email."""
        with self.db.scope(conn) as c:
            row = c.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str, conn: Connection | None = None) -> bool:
        with self.db.scope(conn) as c:
            row = c.execute(select(users.c.id).where(users.c.email == email)).fetchone()
        return row is not None

    def list_users(
        self,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
        order: str = "created_at",
        sort: str = "desc",
    ) -> tuple[list[User], int]:
        """Return one page of users and the total number matching `search`.

        `search` is a case-insensitive substring match on display_name or
        email. `order` must be one of USER_ORDER_COLUMNS; ties break on id so
        pages never overlap.
        """
        if order not in USER_ORDER_COLUMNS:
            raise ValueError(f"cannot order users by {order!r}")
        column = users.c[order]
        direction = desc if sort == "desc" else asc

        query = users.select()
        counter = select(func.count()).select_from(users)
        if search:
            pattern = f"%{search.lower()}%"
            match = or_(func.lower(users.c.display_name).like(pattern), func.lower(users.c.email).like(pattern))
            query = query.where(match)
            counter = counter.where(match)

        query = query.order_by(direction(column), direction(users.c.id)).limit(limit).offset((page - 1) * limit)
        with self.db.scope() as c:
            total = c.execute(counter).scalar_one()
            rows = c.execute(query).fetchall()
        return [_row_to_user(r) for r in rows], total

    def mark_verified(self, user_id: int, when: str | None = None, conn: Connection | None = None) -> bool:
        """Set email_verified_at once. A second call leaves the first timestamp.

        Returns True if the row changed.
        """
        stamp = when or _now_iso()
        with self.db.scope(conn) as c:
            result = c.execute(
                users.update()
                .where((users.c.id == user_id) & (users.c.email_verified_at.is_(None)))
                .values(email_verified_at=stamp, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def update_display_name(self, user_id: int, display_name: str) -> bool:
        with self.db.scope() as c:
            result = c.execute(
                users.update().where(users.c.id == user_id).values(display_name=display_name, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def count(self) -> int:
        with self.db.scope() as c:
            return c.execute(select(func.count()).select_from(users)).scalar_one()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleStore:
    """Read-mostly repository for roles and the users_roles edge."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def ensure_seeded(self) -> None:
        """Insert any missing SEED_ROLES. Safe to call on every startup."""
        with self.db.scope() as c:
            existing = {row.name for row in c.execute(select(roles.c.name)).fetchall()}
            for name, public_id in SEED_ROLES.items():
                if name not in existing:
                    c.execute(roles.insert().values(public_id=public_id, name=name, created_at=_now_iso()))

    def get_by_name(self, name: str, conn: Connection | None = None) -> Role | None:
        with self.db.scope(conn) as c:
            row = c.execute(roles.select().where(roles.c.name == name)).fetchone()
        return Role(id=row.id, public_id=row.public_id, name=row.name) if row is not None else None

    def assign(self, user_id: int, role_id: int, conn: Connection | None = None) -> int:
        """Create a users_roles edge and return its id."""
        with self.db.scope(conn) as c:
            result = c.execute(users_roles.insert().values(user_id=user_id, role_id=role_id, created_at=_now_iso()))
            return result.inserted_primary_key[0]

    def role_names_for_user(self, user_id: int, conn: Connection | None = None) -> list[str]:
        """Return the user's role names, sorted."""
        query = (
            select(roles.c.name)
            .select_from(users_roles.join(roles, users_roles.c.role_id == roles.c.id))
            .where(users_roles.c.user_id == user_id)
            .order_by(roles.c.name)
        )
        with self.db.scope(conn) as c:
            rows = c.execute(query).fetchall()
        return [r.name for r in rows]

    def role_names_for_users(self, user_ids: list[int]) -> dict[int, list[str]]:
        """Batch form of role_names_for_user: one query for a whole page of users."""
        names: dict[int, list[str]] = {uid: [] for uid in user_ids}
        if not user_ids:
            return names
        query = (
            select(users_roles.c.user_id, roles.c.name)
            .select_from(users_roles.join(roles, users_roles.c.role_id == roles.c.id))
            .where(users_roles.c.user_id.in_(user_ids))
            .order_by(users_roles.c.user_id, roles.c.name)
        )
        with self.db.scope() as c:
            for row in c.execute(query):
                names[row.user_id].append(row.name)
        return names


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for users_sessions rows.

    The only status transition written here is ACTIVE -> LOGOUT, and it is
    conditional on the row still being ACTIVE so it can never resurrect or
    re-close a session.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, user_id: int, useragent: str, ip_address: str, conn: Connection | None = None) -> Session:
        now = _now_iso()
        public_id = _new_public_id()
        with self.db.scope(conn) as c:
            result = c.execute(
                users_sessions.insert().values(
                    public_id=public_id,
                    user_id=user_id,
                    useragent=useragent,
                    ip_address=ip_address,
                    status=SessionStatus.ACTIVE.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            session_id = result.inserted_primary_key[0]
        return Session(
            id=session_id,
            public_id=public_id,
            user_id=user_id,
            useragent=useragent,
            ip_address=ip_address,
            status=SessionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )

    def get_by_public_id(self, public_id: str) -> Session | None:
        with self.db.scope() as c:
            row = c.execute(users_sessions.select().where(users_sessions.c.public_id == public_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_active(self, public_id: str) -> Session | None:
        """Return the session only if it exists AND is ACTIVE."""
        with self.db.scope() as c:
            row = c.execute(
                users_sessions.select().where(
                    (users_sessions.c.public_id == public_id)
                    & (users_sessions.c.status == SessionStatus.ACTIVE.value)
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_for_user(self, user_id: int) -> list[Session]:
        """All sessions of a user, newest first."""
        with self.db.scope() as c:
            rows = c.execute(
                users_sessions.select()
                .where(users_sessions.c.user_id == user_id)
                .order_by(users_sessions.c.created_at.desc(), users_sessions.c.id.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def mark_logged_out(self, public_id: str, user_id: int) -> bool:
        """ACTIVE -> LOGOUT for the session owned by user_id.

        Returns False when no ACTIVE session matches (unknown id, other owner,
        or already closed).
        """
        with self.db.scope() as c:
            result = c.execute(
                users_sessions.update()
                .where(
                    (users_sessions.c.public_id == public_id)
                    & (users_sessions.c.user_id == user_id)
                    & (users_sessions.c.status == SessionStatus.ACTIVE.value)
                )
                .values(status=SessionStatus.LOGOUT.value, updated_at=_now_iso())
            )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# OTPs
# ---------------------------------------------------------------------------


class OTPStore:
    """Repository for one-time codes.

    Status changes are compare-and-set on status = AVAILABLE, which keeps
    AVAILABLE -> USED and AVAILABLE -> EXPIRED one-way and mutually exclusive
    even if two redemptions race.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(
        self,
        user_id: int,
        purpose: OTPPurpose,
        valid_minutes: int,
        conn: Connection | None = None,
    ) -> OTP:
        """Generate and persist a fresh AVAILABLE code for the user."""
        now = utc_now()
        expires_at = to_iso(now + timedelta(minutes=valid_minutes))
        code = generate_otp_code()
        public_id = _new_public_id()
        with self.db.scope(conn) as c:
            result = c.execute(
                otps.insert().values(
                    public_id=public_id,
                    user_id=user_id,
                    code=code,
                    purpose=purpose.value,
                    status=OTPStatus.AVAILABLE.value,
                    expires_at=expires_at,
                    created_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )
            otp_id = result.inserted_primary_key[0]
        return OTP(
            id=otp_id,
            public_id=public_id,
            user_id=user_id,
            code=code,
            purpose=purpose,
            status=OTPStatus.AVAILABLE,
            expires_at=expires_at,
            created_at=to_iso(now),
        )

    def find_available(self, user_id: int, code: str, purpose: OTPPurpose) -> OTP | None:
        """Newest AVAILABLE OTP matching (user, code, purpose), or None."""
        with self.db.scope() as c:
            row = c.execute(
                otps.select()
                .where(
                    (otps.c.user_id == user_id)
                    & (otps.c.code == code)
                    & (otps.c.purpose == purpose.value)
                    & (otps.c.status == OTPStatus.AVAILABLE.value)
                )
                .order_by(otps.c.id.desc())
            ).fetchone()
        return _row_to_otp(row) if row is not None else None

    def get_by_id(self, otp_id: int) -> OTP | None:
        with self.db.scope() as c:
            row = c.execute(otps.select().where(otps.c.id == otp_id)).fetchone()
        return _row_to_otp(row) if row is not None else None

    def list_for_user(self, user_id: int) -> list[OTP]:
        with self.db.scope() as c:
            rows = c.execute(otps.select().where(otps.c.user_id == user_id).order_by(otps.c.id)).fetchall()
        return [_row_to_otp(r) for r in rows]

    def transition(self, otp_id: int, new_status: OTPStatus) -> bool:
        """Move an AVAILABLE OTP to USED or EXPIRED. False if it was no longer AVAILABLE."""
        if new_status is OTPStatus.AVAILABLE:
            raise ValueError("OTPs cannot transition back to AVAILABLE")
        with self.db.scope() as c:
            result = c.execute(
                otps.update()
                .where((otps.c.id == otp_id) & (otps.c.status == OTPStatus.AVAILABLE.value))
                .values(status=new_status.value, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def expire_overdue(self, now: datetime | None = None) -> int:
        """Mark every AVAILABLE OTP whose expiry has passed as EXPIRED.

        Operator sweep only (main.py expire-otps); the request path expires
        codes lazily on redemption. Returns the number of rows changed.
        """
        cutoff = to_iso(now or utc_now())
        with self.db.scope() as c:
            result = c.execute(
                otps.update()
                .where((otps.c.status == OTPStatus.AVAILABLE.value) & (otps.c.expires_at < cutoff))
                .values(status=OTPStatus.EXPIRED.value, updated_at=_now_iso())
            )
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        public_id=row.public_id,
        email=row.email,
        password_hash=row.password_hash,
        display_name=row.display_name,
        email_verified_at=row.email_verified_at,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        public_id=row.public_id,
        user_id=row.user_id,
        useragent=row.useragent,
        ip_address=row.ip_address,
        status=SessionStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_otp(row) -> OTP:
    return OTP(
        id=row.id,
        public_id=row.public_id,
        user_id=row.user_id,
        code=row.code,
        purpose=OTPPurpose(row.purpose),
        status=OTPStatus(row.status),
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
