from __future__ import annotations

import pytest
from flask import g

from tailorbook import create_app
from tailorbook.extensions import db
from tailorbook.models import Customer, Profile
from tailorbook.settings import TestConfig
from tailorbook.utils.passwords import hash_password, hash_pin

PASSWORD = "Tailor#2025"
PIN = "1234"


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        STORAGE_DIR = str(tmp_path / "storage")

    app = create_app(_Config)

    # Requests reuse this app context (and its `g`); make each request resolve
    # the signed-in profile from its own session cookie.
    def _reset_login_cache():
        g.pop("_login_user", None)

    app.before_request_funcs.setdefault(None, []).insert(0, _reset_login_cache)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_profile(email="owner@shop.test", shop_name="Sharma Tailors", mobile="9800000000"):
    profile = Profile(
        email=email,
        password_hash=hash_password(PASSWORD),
        shop_name=shop_name,
        owner_name="Ravi",
        mobile=mobile,
        pin_hash=hash_pin(PIN),
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def make_customer(profile, name="Raj Kumar", mobile="9876543210"):
    customer = Customer(profile_id=profile.id, name=name, mobile=mobile)
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def profile(app):
    return make_profile()


def sign_in(client, email="owner@shop.test", password=PASSWORD, pin=PIN):
    client.post("/login", data={"email": email, "password": password})
    if pin is not None:
        client.post("/unlock", data={"pin": pin})
    return client


@pytest.fixture
def unlocked(client, profile):
    """Test client signed in as `profile` with the PIN entered."""
    return sign_in(client)
