#!/usr/bin/env python3
"""
Inkwell -- operator commands for the blog API's account database.

Usage:
  python main.py init-db
  python main.py create-admin --email admin@example.com --password s3cret!
  python main.py create-admin --email admin@example.com --password s3cret! --name "Site Admin"
  python main.py expire-otps
  python main.py serve --host 0.0.0.0 --port 8000

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the account database (default: sqlite file in the repo root)
  SECRET_KEY     JWT signing key, 32+ chars. Required unless DEBUG=true.
"""

import argparse
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.service import normalize_email
from auth.store import OTPStore, RoleStore, UserStore, init_schema, to_iso, utc_now
from auth.tokens import hash_password
from core.config import get_settings
from core.database import Database


def _open_db() -> Database:
    db = Database(get_settings().database_url)
    init_schema(db)
    return db


def cmd_init_db(args: argparse.Namespace) -> int:
    db = _open_db()
    print(f"Schema ready at {db.url}")
    db.close()
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    """Create a pre-verified user holding both ADMIN and USER."""
    settings = get_settings()
    email = normalize_email(args.email)
    db = _open_db()
    users, roles = UserStore(db), RoleStore(db)
    try:
        with db.transaction() as conn:
            user = users.create(
                User(
                    email=email,
                    password_hash=hash_password(args.password, settings.bcrypt_rounds),
                    display_name=args.name or email.split("@")[0],
                    email_verified_at=to_iso(utc_now()),
                ),
                conn=conn,
            )
            for name in ("ADMIN", "USER"):
                role = roles.get_by_name(name, conn=conn)
                roles.assign(user.id, role.id, conn=conn)
    except IntegrityError:
        print(f"  [!] {email} already exists.")
        return 1
    finally:
        db.close()
    print(f"Admin created: {email} ({user.public_id})")
    return 0


def cmd_expire_otps(args: argparse.Namespace) -> int:
    db = _open_db()
    count = OTPStore(db).expire_overdue()
    db.close()
    print(f"{count} OTP(s) marked EXPIRED.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="inkwell",
        description="Inkwell account database and server commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create tables and seed the ADMIN/USER roles.")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-admin", help="Create a verified administrator account.")
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--name", default=None, help="Display name (default: the email's local part)")
    p.set_defaults(func=cmd_create_admin)

    p = sub.add_parser("expire-otps", help="Mark every overdue AVAILABLE OTP as EXPIRED.")
    p.set_defaults(func=cmd_expire_otps)

    p = sub.add_parser("serve", help="Run the API with uvicorn.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
