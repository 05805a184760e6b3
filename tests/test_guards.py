from __future__ import annotations

import time

from tailorbook.extensions import db
from tailorbook.utils.guards import (
    LAST_ACTIVITY_KEY,
    UNLOCKED_KEY,
    SessionGuard,
    SessionState,
    endpoint_access,
)
from tailorbook.utils.passwords import hash_pin

from .conftest import PIN, sign_in


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _guard(store=None, clock=None, authenticated=True):
    return SessionGuard(store if store is not None else {}, authenticated=authenticated,
                        idle_seconds=300, clock=clock or FakeClock())


# =========================================================
# State machine
# =========================================================
def test_anonymous_until_authenticated():
    guard = _guard(authenticated=False)
    assert guard.state is SessionState.ANONYMOUS
    assert guard.unlock(hash_pin(PIN), PIN) is False


def test_sign_in_lands_locked():
    store = {UNLOCKED_KEY: True}
    guard = _guard(store, authenticated=False)
    assert guard.sign_in() is SessionState.LOCKED
    assert UNLOCKED_KEY not in store


def test_correct_pin_unlocks():
    guard = _guard()
    guard.sign_in()
    assert guard.unlock(hash_pin(PIN), PIN) is True
    assert guard.state is SessionState.UNLOCKED


def test_wrong_pin_stays_locked():
    guard = _guard()
    guard.sign_in()
    for code in ("0000", "4321", "123", "12345", "abcd", ""):
        assert guard.unlock(hash_pin(PIN), code) is False
    assert guard.state is SessionState.LOCKED


def test_idle_window_locks_and_activity_resets():
    clock = FakeClock()
    guard = _guard(clock=clock)
    guard.sign_in()
    guard.unlock(hash_pin(PIN), PIN)

    clock.now += 299
    assert guard.touch() is SessionState.UNLOCKED

    # Countdown restarted by the event above.
    clock.now += 299
    assert guard.touch() is SessionState.UNLOCKED
    assert guard.seconds_remaining() == 300

    clock.now += 300
    assert guard.touch() is SessionState.LOCKED
    assert guard.state is SessionState.LOCKED


def test_sign_out_clears_everything():
    store = {}
    guard = _guard(store)
    guard.sign_in()
    guard.unlock(hash_pin(PIN), PIN)
    store["order_draft"] = {"mobile": "1"}

    assert guard.sign_out() is SessionState.ANONYMOUS
    assert store == {}


def test_endpoint_access():
    assert endpoint_access("public.landing") == "public"
    assert endpoint_access("auth.login") == "public"
    assert endpoint_access("static") == "public"
    assert endpoint_access("auth.unlock") == "locked"
    assert endpoint_access("auth.session_ping") == "locked"
    assert endpoint_access("main.dashboard") == "protected"
    assert endpoint_access(None) == "protected"


# =========================================================
# Through the app
# =========================================================
def test_anonymous_is_sent_to_landing(client, profile):
    r = client.get("/dashboard")
    assert r.status_code == 302
    assert r.headers["Location"].startswith("/?") or r.headers["Location"] == "/"


def test_locked_session_only_reaches_unlock(client, profile):
    sign_in(client, pin=None)

    r = client.get("/orders")
    assert r.status_code == 302
    assert "/unlock" in r.headers["Location"]

    assert client.get("/unlock").status_code == 200


def test_wrong_pin_rerenders_empty(client, profile):
    sign_in(client, pin=None)
    r = client.post("/unlock", data={"pin": "9999"})
    assert r.status_code == 401
    assert b'value=""' in r.data
    assert b"Incorrect PIN." in r.data

    assert client.get("/dashboard").status_code == 302


def test_unlock_then_idle_timeout(client, profile):
    sign_in(client)
    assert client.get("/dashboard").status_code == 200

    with client.session_transaction() as sess:
        sess[LAST_ACTIVITY_KEY] = time.time() - 301

    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/unlock" in r.headers["Location"]


def test_ping_resets_countdown(client, profile):
    sign_in(client)
    with client.session_transaction() as sess:
        sess[LAST_ACTIVITY_KEY] = time.time() - 200

    r = client.post("/session/ping")
    assert r.status_code == 200
    assert r.get_json()["state"] == "unlocked"
    assert r.get_json()["seconds_remaining"] >= 299

    with client.session_transaction() as sess:
        assert time.time() - sess[LAST_ACTIVITY_KEY] < 5


def test_idle_timer_listens_to_input_events_only(unlocked):
    html = unlocked.get("/dashboard").get_data(as_text=True)
    assert '["mousemove", "mousedown", "touchstart", "keydown"]' in html
    assert '"scroll"' not in html


def test_ping_after_timeout_reports_locked(client, profile):
    sign_in(client)
    with client.session_transaction() as sess:
        sess[LAST_ACTIVITY_KEY] = time.time() - 1000

    r = client.post("/session/ping")
    assert r.get_json()["state"] == "locked"


def test_logout_returns_to_anonymous(client, profile):
    sign_in(client)
    r = client.post("/logout")
    assert r.status_code == 302

    with client.session_transaction() as sess:
        assert UNLOCKED_KEY not in sess
        assert "_user_id" not in sess

    assert client.get("/dashboard").status_code == 302


def test_profile_lookup_failure_fails_closed(app, client, profile, monkeypatch):
    sign_in(client)

    def _boom(*args, **kwargs):
        from sqlalchemy.exc import OperationalError
        raise OperationalError("select", {}, Exception("db down"))

    monkeypatch.setattr(db.session, "get", _boom)
    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/unlock" not in r.headers["Location"]


def test_changed_pin_is_required_next_unlock(client, profile):
    profile.pin_hash = hash_pin("8888")
    db.session.commit()

    sign_in(client, pin=None)
    assert client.post("/unlock", data={"pin": PIN}).status_code == 401
    assert client.post("/unlock", data={"pin": "8888"}).status_code == 302
