"""Tests for main.py operator commands against a throwaway SQLite file."""

import argparse

import pytest

import main
from auth.models import OTPPurpose, OTPStatus
from auth.store import OTPStore, RoleStore, UserStore
from core.config import Settings
from core.database import Database


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    settings = Settings(debug=True, database_url=url, bcrypt_rounds=4)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return url


def test_init_db_is_repeatable(db_url, capsys):
    assert main.cmd_init_db(argparse.Namespace()) == 0
    assert main.cmd_init_db(argparse.Namespace()) == 0
    assert "Schema ready" in capsys.readouterr().out


def test_create_admin_is_verified_with_both_roles(db_url):
    args = argparse.Namespace(email="Root@Blog.Test", password="adminpass", name=None)
    assert main.cmd_create_admin(args) == 0

    db = Database(db_url)
    user = UserStore(db).get_by_email("root@blog.test")
    assert user.is_verified
    assert user.display_name == "root"
    assert RoleStore(db).role_names_for_user(user.id) == ["ADMIN", "USER"]
    db.close()


def test_create_admin_twice_fails(db_url, capsys):
    args = argparse.Namespace(email="dup@blog.test", password="adminpass", name="Dup")
    assert main.cmd_create_admin(args) == 0
    assert main.cmd_create_admin(args) == 1
    assert "already exists" in capsys.readouterr().out


def test_expire_otps(db_url, capsys):
    main.cmd_create_admin(argparse.Namespace(email="o@blog.test", password="adminpass", name=None))
    db = Database(db_url)
    user = UserStore(db).get_by_email("o@blog.test")
    otps = OTPStore(db)
    stale = otps.create(user.id, OTPPurpose.EMAIL_VERIFICATION, -1)

    assert main.cmd_expire_otps(argparse.Namespace()) == 0

    assert otps.get_by_id(stale.id).status is OTPStatus.EXPIRED
    assert "1 OTP(s)" in capsys.readouterr().out
    db.close()
