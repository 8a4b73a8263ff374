"""Unit tests for auth/store.py -- user, role, session and OTP repositories.

Covers:
- init_schema seeds ADMIN and USER exactly once
- UNIQUE(email) rejects a second insert even without the service check
- writes inside Database.transaction() roll back together
- mark_verified keeps the first timestamp
- list_users searches, orders and pages; role names load in one batch
- session ACTIVE -> LOGOUT is one-way and owner-scoped
- OTP transitions are compare-and-set and never return to AVAILABLE
- expire_overdue() sweeps only overdue AVAILABLE codes
- generated OTP codes are 8 digits
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import OTPPurpose, OTPStatus, SessionStatus, User
from auth.store import (
    SEED_ROLES,
    OTPStore,
    RoleStore,
    SessionStore,
    UserStore,
    generate_otp_code,
    init_schema,
    utc_now,
)

PURPOSE = OTPPurpose.EMAIL_VERIFICATION

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores(db):
    """(users, roles, sessions, otps) over a freshly initialised in-memory db."""
    init_schema(db)
    return UserStore(db), RoleStore(db), SessionStore(db), OTPStore(db)


def _user(email: str = "u@x.com") -> User:
    return User(email=email, password_hash="$2b$04$notarealhash", display_name="U")


# ---------------------------------------------------------------------------
# Users and roles
# ---------------------------------------------------------------------------


def test_init_schema_seeds_roles_idempotently(db, stores):
    init_schema(db)
    _, roles, _, _ = stores
    for name, public_id in SEED_ROLES.items():
        role = roles.get_by_name(name)
        assert role.public_id == public_id


def test_create_fills_generated_fields(stores):
    users, _, _, _ = stores
    user = users.create(_user())
    assert user.id is not None
    assert len(user.public_id) == 36
    assert user.created_at
    assert users.get_by_email("u@x.com").public_id == user.public_id
    assert users.get_by_id(user.id).email == "u@x.com"


def test_unique_email_enforced_by_store(stores):
    users, _, _, _ = stores
    users.create(_user("same@x.com"))
    with pytest.raises(IntegrityError):
        users.create(_user("same@x.com"))
    assert users.count() == 1


def test_transaction_rolls_back_every_write(db, stores):
    users, roles, _, otps = stores
    with pytest.raises(RuntimeError):
        with db.transaction() as conn:
            user = users.create(_user("tx@x.com"), conn=conn)
            roles.assign(user.id, roles.get_by_name("USER", conn=conn).id, conn=conn)
            otps.create(user.id, PURPOSE, 10, conn=conn)
            raise RuntimeError("boom")
    assert not users.email_exists("tx@x.com")
    assert users.count() == 0


def test_duplicate_role_edge_rejected(stores):
    users, roles, _, _ = stores
    user = users.create(_user())
    role = roles.get_by_name("USER")
    roles.assign(user.id, role.id)
    with pytest.raises(IntegrityError):
        roles.assign(user.id, role.id)


def test_role_names_sorted(stores):
    users, roles, _, _ = stores
    user = users.create(_user())
    roles.assign(user.id, roles.get_by_name("USER").id)
    roles.assign(user.id, roles.get_by_name("ADMIN").id)
    assert roles.role_names_for_user(user.id) == ["ADMIN", "USER"]


def test_mark_verified_keeps_first_timestamp(stores):
    users, _, _, _ = stores
    user = users.create(_user())
    assert users.mark_verified(user.id, "2024-01-01T00:00:00.000000+00:00")
    assert not users.mark_verified(user.id, "2025-01-01T00:00:00.000000+00:00")
    assert users.get_by_id(user.id).email_verified_at == "2024-01-01T00:00:00.000000+00:00"


def _seed_people(users) -> None:
    for email, name in (
        ("ada@x.com", "Ada Lovelace"),
        ("grace@x.com", "Grace Hopper"),
        ("linus@x.com", "Linus"),
        ("barbara@x.com", "Barbara Liskov"),
    ):
        users.create(User(email=email, password_hash="$2b$04$notarealhash", display_name=name))


def test_list_users_defaults_to_newest_first(stores):
    users, _, _, _ = stores
    _seed_people(users)

    found, total = users.list_users()

    assert total == 4
    assert [u.email for u in found] == ["barbara@x.com", "linus@x.com", "grace@x.com", "ada@x.com"]


def test_list_users_pages_by_order_column(stores):
    users, _, _, _ = stores
    _seed_people(users)

    first, total = users.list_users(page=1, limit=3, order="email", sort="asc")
    second, _ = users.list_users(page=2, limit=3, order="email", sort="asc")

    assert total == 4
    assert [u.email for u in first] == ["ada@x.com", "barbara@x.com", "grace@x.com"]
    assert [u.email for u in second] == ["linus@x.com"]


def test_list_users_search_is_case_insensitive_on_name_and_email(stores):
    users, _, _, _ = stores
    _seed_people(users)

    by_name, by_name_total = users.list_users(search="LISKOV")
    by_email, _ = users.list_users(search="Grace@", order="email", sort="asc")
    either, either_total = users.list_users(search="li", order="email", sort="asc")

    assert [u.email for u in by_name] == ["barbara@x.com"]
    assert by_name_total == 1
    assert [u.email for u in by_email] == ["grace@x.com"]
    # "li" hits Liskov by name and Linus by both
    assert [u.email for u in either] == ["barbara@x.com", "linus@x.com"]
    assert either_total == 2


def test_list_users_total_ignores_paging(stores):
    users, _, _, _ = stores
    _seed_people(users)

    found, total = users.list_users(page=9, limit=2)

    assert found == []
    assert total == 4
    assert users.count() == 4


def test_list_users_rejects_unknown_order_column(stores):
    users, _, _, _ = stores
    with pytest.raises(ValueError):
        users.list_users(order="password_hash")


def test_role_names_for_users_batches(stores):
    users, roles, _, _ = stores
    admin = users.create(_user("admin@x.com"))
    plain = users.create(_user("plain@x.com"))
    bare = users.create(_user("bare@x.com"))
    roles.assign(admin.id, roles.get_by_name("USER").id)
    roles.assign(admin.id, roles.get_by_name("ADMIN").id)
    roles.assign(plain.id, roles.get_by_name("USER").id)

    names = roles.role_names_for_users([admin.id, plain.id, bare.id])

    assert names == {admin.id: ["ADMIN", "USER"], plain.id: ["USER"], bare.id: []}
    assert roles.role_names_for_users([]) == {}


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def test_session_logout_is_one_way(stores):
    users, _, sessions, _ = stores
    user = users.create(_user())
    session = sessions.create(user.id, "agent/1.0", "10.0.0.1")
    assert sessions.get_active(session.public_id) is not None

    assert sessions.mark_logged_out(session.public_id, user.id)
    assert sessions.get_active(session.public_id) is None
    assert not sessions.mark_logged_out(session.public_id, user.id)
    assert sessions.get_by_public_id(session.public_id).status is SessionStatus.LOGOUT


def test_session_logout_requires_owner(stores):
    users, _, sessions, _ = stores
    owner = users.create(_user("owner@x.com"))
    other = users.create(_user("other@x.com"))
    session = sessions.create(owner.id, "agent/1.0", "10.0.0.1")
    assert not sessions.mark_logged_out(session.public_id, other.id)
    assert sessions.get_active(session.public_id) is not None


def test_sessions_listed_newest_first(stores):
    users, _, sessions, _ = stores
    user = users.create(_user())
    first = sessions.create(user.id, "a", "1.1.1.1")
    second = sessions.create(user.id, "b", "1.1.1.1")
    assert [s.public_id for s in sessions.list_for_user(user.id)] == [second.public_id, first.public_id]


# ---------------------------------------------------------------------------
# OTPs
# ---------------------------------------------------------------------------


def test_otp_transition_is_compare_and_set(stores):
    users, _, _, otps = stores
    user = users.create(_user())
    otp = otps.create(user.id, PURPOSE, 10)

    assert otps.transition(otp.id, OTPStatus.USED)
    assert not otps.transition(otp.id, OTPStatus.EXPIRED)
    assert otps.get_by_id(otp.id).status is OTPStatus.USED


def test_otp_cannot_return_to_available(stores):
    users, _, _, otps = stores
    otp = otps.create(users.create(_user()).id, PURPOSE, 10)
    with pytest.raises(ValueError):
        otps.transition(otp.id, OTPStatus.AVAILABLE)


def test_find_available_ignores_consumed_codes(stores):
    users, _, _, otps = stores
    user = users.create(_user())
    otp = otps.create(user.id, PURPOSE, 10)
    assert otps.find_available(user.id, otp.code, PURPOSE).id == otp.id
    otps.transition(otp.id, OTPStatus.USED)
    assert otps.find_available(user.id, otp.code, PURPOSE) is None


def test_expire_overdue_only_touches_overdue_available(stores):
    users, _, _, otps = stores
    user = users.create(_user())
    fresh = otps.create(user.id, PURPOSE, 10)
    stale = otps.create(user.id, PURPOSE, -5)
    used_stale = otps.create(user.id, PURPOSE, -5)
    otps.transition(used_stale.id, OTPStatus.USED)

    assert otps.expire_overdue() == 1
    assert otps.get_by_id(fresh.id).status is OTPStatus.AVAILABLE
    assert otps.get_by_id(stale.id).status is OTPStatus.EXPIRED
    assert otps.get_by_id(used_stale.id).status is OTPStatus.USED

    # A later cutoff catches the fresh one too
    assert otps.expire_overdue(now=utc_now() + timedelta(minutes=11)) == 1


def test_generated_codes_are_eight_digits():
    for _ in range(50):
        code = generate_otp_code()
        assert len(code) == 8
        assert code.isdigit()
