from __future__ import annotations

import logging
import re

import pytest

from tailorbook.auth import make_reset_token, profile_from_reset_token
from tailorbook.extensions import db
from tailorbook.models import Profile
from tailorbook.utils.passwords import (
    hash_pin,
    is_valid_pin,
    password_criteria,
    validate_password,
    verify_password,
    verify_pin,
)

from .conftest import PASSWORD, PIN, sign_in

NEW_PASSWORD = "Needle&Thread9"


# =========================================================
# Password / PIN helpers
# =========================================================
def test_password_policy():
    assert validate_password(PASSWORD) == (True, "")
    assert validate_password("short1!")[0] is False
    assert validate_password("lowercase1!")[1] == "Include at least one uppercase letter."
    assert validate_password("NoDigits!!")[1] == "Include at least one number."
    assert validate_password("NoSymbol12")[1] == "Include at least one symbol (e.g. !@#$)."


def test_password_criteria_checklist():
    assert password_criteria("abc") == {"length": False, "upper": False, "number": False, "special": False}
    assert all(password_criteria(PASSWORD).values())


def test_pin_format():
    assert is_valid_pin("0000")
    for bad in ("", None, "123", "12345", "12a4", " 123", "1234\n", "\n1234", 1234):
        assert not is_valid_pin(bad)
    with pytest.raises(ValueError):
        hash_pin("1234\n")
    assert verify_pin(hash_pin("4321"), "4321")
    assert not verify_pin(hash_pin("4321"), "1234")


# =========================================================
# Login / logout
# =========================================================
def test_login_requires_email(client, profile):
    resp = client.post("/login", data={"email": "9800000000", "password": PASSWORD})
    assert resp.status_code == 400
    assert b"Please use Email to login." in resp.data


def test_login_wrong_password(client, profile):
    resp = client.post("/login", data={"email": profile.email, "password": "Wrong#Pass1"})
    assert resp.status_code == 401
    assert b"Invalid email or password." in resp.data


def test_login_is_case_insensitive_and_lands_locked(client, profile):
    resp = client.post("/login", data={"email": "OWNER@Shop.test", "password": PASSWORD})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/unlock")

    resp = client.get("/dashboard")
    assert resp.status_code == 302
    assert "/unlock" in resp.headers["Location"]

    assert db.session.get(Profile, profile.id).last_login_at is not None


def test_logout_ends_session(unlocked):
    assert unlocked.get("/dashboard").status_code == 200

    resp = unlocked.post("/logout")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")

    resp = unlocked.get("/dashboard")
    assert resp.status_code == 302
    assert "/unlock" not in resp.headers["Location"]


def test_unsafe_next_is_ignored(client, profile):
    sign_in(client, pin=None)
    resp = client.post("/unlock?next=https://evil.example/", data={"pin": PIN})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard")


# =========================================================
# Register
# =========================================================
def test_register_rejects_weak_password(client, app):
    resp = client.post("/register", data={"email": "new@shop.test", "password": "weak"})
    assert resp.status_code == 400
    assert Profile.query.count() == 0


def test_register_rejects_duplicate_email(client, profile):
    resp = client.post("/register", data={"email": "Owner@shop.test", "password": PASSWORD})
    assert resp.status_code == 400
    assert b"already exists" in resp.data


def test_register_with_defaults(client, app):
    resp = client.post("/register", data={"email": "New@Shop.test", "password": PASSWORD})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/unlock")

    profile = Profile.query.one()
    assert profile.email == "new@shop.test"
    assert profile.shop_name == "My Shop"

    # Default PIN unlocks the new account.
    resp = client.post("/unlock", data={"pin": "0000"})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/dashboard")
    assert client.get("/dashboard").status_code == 200


def test_register_rejects_bad_pin(client, app):
    resp = client.post("/register", data={"email": "new@shop.test", "password": PASSWORD, "pin": "12"})
    assert resp.status_code == 400
    assert Profile.query.count() == 0


# =========================================================
# Password reset
# =========================================================
def _reset_link(caplog, client, email):
    with caplog.at_level(logging.INFO):
        resp = client.post("/forgot-password", data={"email": email})
    assert resp.status_code == 302
    links = [re.search(r"token=(\S+)", r.getMessage()) for r in caplog.records]
    links = [m.group(1) for m in links if m]
    return links[-1] if links else None


def test_forgot_password_unknown_email_gives_same_answer(client, app, caplog):
    assert _reset_link(caplog, client, "nobody@shop.test") is None


def test_reset_password_flow(client, profile, caplog):
    token = _reset_link(caplog, client, profile.email)
    assert token

    resp = client.post("/reset-password", data={
        "token": token, "password": NEW_PASSWORD, "confirm_password": "Different#1",
    })
    assert resp.status_code == 400
    assert b"Passwords do not match." in resp.data

    resp = client.post("/reset-password", data={
        "token": token, "password": "weak", "confirm_password": "weak",
    })
    assert resp.status_code == 400

    resp = client.post("/reset-password", data={
        "token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD,
    })
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")

    assert verify_password(db.session.get(Profile, profile.id).password_hash, NEW_PASSWORD)

    # The link is single use.
    resp = client.get(f"/reset-password?token={token}")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/forgot-password")


def test_reset_token_rejects_tampering(app, profile):
    token = make_reset_token(profile)
    assert profile_from_reset_token(token) == profile
    assert profile_from_reset_token(token + "x") is None
    assert profile_from_reset_token("garbage") is None
