# tailorbook/utils/guards.py

from __future__ import annotations

import enum
import time
from typing import Callable, MutableMapping

from flask import current_app, session
from flask_login import current_user

from .passwords import verify_pin


IDLE_LOCK_SECONDS = 5 * 60

# Session keys owned by the guard.
UNLOCKED_KEY = "pin_unlocked"
LAST_ACTIVITY_KEY = "last_activity_at"

# Reachable without any session. The idle timer does not run here.
PUBLIC_ENDPOINTS = {
    "public.landing",
    "public.stored_file",
    "auth.login",
    "auth.register",
    "auth.forgot_password",
    "auth.reset_password",
}

# Reachable with a session that is still PIN-locked.
LOCKED_ENDPOINTS = {
    "auth.unlock",
    "auth.logout",
    "auth.session_ping",
}


class SessionState(enum.Enum):
    ANONYMOUS = "anonymous"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class SessionGuard:
    """
    PIN-lock state machine over a session mapping.

        ANONYMOUS --sign in/up--> LOCKED --correct PIN--> UNLOCKED
        UNLOCKED --idle for idle_seconds--> LOCKED
        any --sign out--> ANONYMOUS

    `store` is the Flask session in the app and a plain dict in tests.
    `authenticated` is whether the identity provider holds a valid session.
    """

    def __init__(
        self,
        store: MutableMapping,
        *,
        authenticated: bool,
        idle_seconds: int = IDLE_LOCK_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.authenticated = bool(authenticated)
        self.idle_seconds = idle_seconds
        self.clock = clock

    @property
    def state(self) -> SessionState:
        if not self.authenticated:
            return SessionState.ANONYMOUS
        if self.store.get(UNLOCKED_KEY):
            return SessionState.UNLOCKED
        return SessionState.LOCKED

    def seconds_idle(self) -> float:
        last = self.store.get(LAST_ACTIVITY_KEY)
        if last is None:
            return float("inf")
        try:
            return max(0.0, self.clock() - float(last))
        except (TypeError, ValueError):
            return float("inf")

    def seconds_remaining(self) -> float:
        if self.state is not SessionState.UNLOCKED:
            return 0.0
        return max(0.0, self.idle_seconds - self.seconds_idle())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def sign_in(self) -> SessionState:
        self.authenticated = True
        self.lock()
        return self.state

    def unlock(self, pin_hash: str | None, code: str | None) -> bool:
        if self.state is SessionState.ANONYMOUS:
            return False
        if not verify_pin(pin_hash, code):
            return False
        self.store[UNLOCKED_KEY] = True
        self.store[LAST_ACTIVITY_KEY] = self.clock()
        return True

    def lock(self) -> None:
        self.store.pop(UNLOCKED_KEY, None)
        self.store.pop(LAST_ACTIVITY_KEY, None)

    def touch(self) -> SessionState:
        """
        Record a qualifying input event.
        Locks first if the idle window already elapsed, otherwise restarts it.
        """
        state = self.state
        if state is not SessionState.UNLOCKED:
            return state

        if self.seconds_idle() >= self.idle_seconds:
            self.lock()
            return SessionState.LOCKED

        self.store[LAST_ACTIVITY_KEY] = self.clock()
        return SessionState.UNLOCKED

    def sign_out(self) -> SessionState:
        self.store.clear()
        self.authenticated = False
        return self.state


def current_guard() -> SessionGuard:
    """Guard bound to the request's session and the Flask-Login identity."""
    return SessionGuard(
        session,
        authenticated=getattr(current_user, "is_authenticated", False),
        idle_seconds=current_app.config.get("IDLE_LOCK_SECONDS", IDLE_LOCK_SECONDS),
    )


def endpoint_access(endpoint: str | None) -> str:
    """
    Classify an endpoint: "public", "locked" (session needed, PIN not) or "protected".
    """
    endpoint = endpoint or ""
    if endpoint == "static" or endpoint.startswith("static.") or endpoint in PUBLIC_ENDPOINTS:
        return "public"
    if endpoint in LOCKED_ENDPOINTS:
        return "locked"
    return "protected"


# =========================================================
# Per-profile scoping
# =========================================================
def owned(model):
    """Query over `model` limited to the signed-in profile's rows."""
    return model.query.filter(model.profile_id == current_user.id)


def get_owned_or_404(model, object_id):
    # Another profile's row is indistinguishable from a missing one.
    return owned(model).filter(model.id == object_id).first_or_404()
