# tailorbook/auth.py
from __future__ import annotations

from datetime import datetime
from urllib.parse import urlparse, urljoin

from flask import Blueprint, current_app, jsonify, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config.shop import DEFAULT_PIN, REGISTER_SHOP_NAME
from .extensions import db, limiter, login_manager
from .models import Profile
from .services.storage import LOGOS_BUCKET, StorageError
from .utils import notify
from .utils.guards import SessionGuard, SessionState, current_guard
from .utils.passwords import (
    hash_password,
    hash_pin,
    is_valid_pin,
    password_criteria,
    validate_password,
    verify_password,
)
from .utils.uploads import UploadRejected, store_logo

auth = Blueprint("auth", __name__)

RESET_SALT = "tailorbook-password-reset"


# =========================================================
# Flask-Login user loader
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    # Fail closed: any lookup problem means "not signed in".
    try:
        return db.session.get(Profile, int(user_id))
    except (TypeError, ValueError, SQLAlchemyError):
        current_app.logger.exception("Session profile lookup failed id=%r", user_id)
        return None


# =========================================================
# Helpers
# =========================================================
def _is_safe_next(target: str) -> bool:
    """
    Allow only same-host redirects AND block redirect loops into /login or /logout.
    """
    if not target:
        return False

    blocked_prefixes = ("/login", "/logout", "/unlock")
    if target.startswith(blocked_prefixes):
        return False

    ref = urlparse(request.host_url)
    test = urlparse(urljoin(request.host_url, target))
    return test.scheme in ("http", "https") and ref.netloc == test.netloc


def _next_or_dashboard() -> str:
    nxt = request.args.get("next") or request.form.get("next") or ""
    if nxt and _is_safe_next(nxt):
        return nxt
    return url_for("main.dashboard")


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def find_profile_by_email(email: str) -> Profile | None:
    return Profile.query.filter(db.func.lower(Profile.email) == _normalize_email(email)).first()


def _reset_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=RESET_SALT)


def make_reset_token(profile: Profile) -> str:
    # The password hash is part of the payload, so a used link stops working.
    return _reset_serializer().dumps({"id": profile.id, "h": profile.password_hash[-12:]})


def profile_from_reset_token(token: str) -> Profile | None:
    max_age = current_app.config.get("PASSWORD_RESET_MAX_AGE", 3600)
    try:
        data = _reset_serializer().loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None

    profile = db.session.get(Profile, data.get("id"))
    if not profile or profile.password_hash[-12:] != data.get("h"):
        return None
    return profile


def _start_session(profile: Profile) -> None:
    """Sign in and land in the LOCKED state."""
    session.clear()
    login_user(profile)
    SessionGuard(session, authenticated=True).sign_in()

    profile.last_login_at = datetime.utcnow()
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not stamp last_login_at profile=%s", profile.id)


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    if getattr(current_user, "is_authenticated", False):
        return redirect(url_for("main.dashboard"))

    next_url = request.args.get("next") or request.form.get("next") or ""

    if request.method == "POST":
        identifier = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""

        if not identifier or not password:
            notify.enqueue("Email and password are required.", "error")
            return render_template("auth/login.html", next=next_url, email=identifier), 400

        if "@" not in identifier:
            notify.enqueue("Please use Email to login.", "error")
            return render_template("auth/login.html", next=next_url, email=identifier), 400

        profile = find_profile_by_email(identifier)
        if not profile or not verify_password(profile.password_hash, password):
            notify.enqueue("Invalid email or password.", "error")
            return render_template("auth/login.html", next=next_url, email=identifier), 401

        _start_session(profile)
        return redirect(url_for("auth.unlock", next=next_url) if next_url else url_for("auth.unlock"))

    return render_template("auth/login.html", next=next_url)


@auth.route("/logout", methods=["GET", "POST"])
def logout():
    """
    Not login_required: a locked or half-expired session must still be able to leave.
    """
    current_guard().sign_out()
    logout_user()
    notify.enqueue("You have been logged out.", "success")
    return redirect(url_for("public.landing"))


# =========================================================
# Register
# =========================================================
@auth.route("/register", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def register():
    if getattr(current_user, "is_authenticated", False):
        return redirect(url_for("main.dashboard"))

    if request.method == "GET":
        return render_template("auth/register.html", form={}, criteria=password_criteria(""))

    form = {
        "email": _normalize_email(request.form.get("email")),
        "owner_name": (request.form.get("owner_name") or "").strip(),
        "shop_name": (request.form.get("shop_name") or "").strip() or REGISTER_SHOP_NAME,
        "mobile": (request.form.get("mobile") or "").strip(),
        "pin": (request.form.get("pin") or "").strip() or DEFAULT_PIN,
    }
    password = request.form.get("password") or ""

    def _fail(msg: str):
        notify.enqueue(msg, "error")
        return render_template("auth/register.html", form=form, criteria=password_criteria(password)), 400

    if not form["email"] or "@" not in form["email"]:
        return _fail("A valid email is required.")

    ok, msg = validate_password(password)
    if not ok:
        return _fail(msg)

    if not is_valid_pin(form["pin"]):
        return _fail("PIN must be exactly 4 digits.")

    if find_profile_by_email(form["email"]):
        return _fail("An account with this email already exists.")

    profile = Profile(
        email=form["email"],
        password_hash=hash_password(password),
        owner_name=form["owner_name"] or None,
        shop_name=form["shop_name"],
        mobile=form["mobile"] or None,
        pin_hash=hash_pin(form["pin"]),
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _fail("An account with this email already exists.")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Registration failed email=%s", form["email"])
        return _fail("Could not create your account. Please try again.")

    # Optional logo; the account exists even if this part fails.
    logo = request.files.get("logo")
    if logo and logo.filename:
        try:
            profile.logo_url = store_logo(profile.id, logo)
            db.session.commit()
        except UploadRejected as exc:
            notify.enqueue(str(exc), "error")
        except (StorageError, SQLAlchemyError):
            db.session.rollback()
            current_app.logger.exception("Logo upload failed at registration profile=%s bucket=%s",
                                         profile.id, LOGOS_BUCKET)
            notify.enqueue("Account created, but the logo could not be uploaded.", "error")

    _start_session(profile)
    notify.enqueue("Account created. Enter your PIN to continue.", "success")
    return redirect(url_for("auth.unlock"))


# =========================================================
# PIN lock
# =========================================================
@auth.route("/unlock", methods=["GET", "POST"])
@login_required
def unlock():
    guard = current_guard()
    next_url = request.args.get("next") or request.form.get("next") or ""

    if guard.state is SessionState.UNLOCKED:
        return redirect(_next_or_dashboard())

    if request.method == "POST":
        code = (request.form.get("pin") or "").strip()
        if guard.unlock(current_user.pin_hash, code):
            return redirect(_next_or_dashboard())

        current_app.logger.warning("PIN rejected profile=%s", current_user.id)
        notify.enqueue("Incorrect PIN.", "error")
        # Entry is cleared: the form is re-rendered empty.
        return render_template("auth/unlock.html", next=next_url), 401

    return render_template("auth/unlock.html", next=next_url)


@auth.route("/session/ping", methods=["POST"])
@login_required
def session_ping():
    """Client input events (pointer, touch, key) restart the idle countdown."""
    guard = current_guard()
    state = guard.touch()
    return jsonify({
        "state": state.value,
        "seconds_remaining": int(guard.seconds_remaining()),
    })


# =========================================================
# Password reset
# =========================================================
@auth.route("/forgot-password", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def forgot_password():
    if request.method == "POST":
        email = _normalize_email(request.form.get("email"))
        if not email or "@" not in email:
            notify.enqueue("Please enter your email.", "error")
            return render_template("auth/forgot_password.html", email=email), 400

        profile = find_profile_by_email(email)
        if profile:
            link = url_for("auth.reset_password", token=make_reset_token(profile), _external=True)
            # No mailer configured: the operator of the deployment relays the link.
            current_app.logger.info("Password reset link for %s: %s", profile.email, link)

        # Same answer whether or not the account exists.
        notify.enqueue("If that email is registered, a reset link has been sent.", "info")
        return redirect(url_for("auth.login"))

    return render_template("auth/forgot_password.html", email="")


@auth.route("/reset-password", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def reset_password():
    token = request.args.get("token") or request.form.get("token") or ""
    profile = profile_from_reset_token(token) if token else None

    if not profile:
        notify.enqueue("This reset link is invalid or has expired.", "error")
        return redirect(url_for("auth.forgot_password"))

    if request.method == "POST":
        password = request.form.get("password") or ""
        confirm = request.form.get("confirm_password") or ""

        if password != confirm:
            notify.enqueue("Passwords do not match.", "error")
            return render_template("auth/reset_password.html", token=token,
                                   criteria=password_criteria(password)), 400

        ok, msg = validate_password(password)
        if not ok:
            notify.enqueue(msg, "error")
            return render_template("auth/reset_password.html", token=token,
                                   criteria=password_criteria(password)), 400

        profile.password_hash = hash_password(password)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Password reset failed profile=%s", profile.id)
            notify.enqueue("Failed to update password. Please try again.", "error")
            return render_template("auth/reset_password.html", token=token,
                                   criteria=password_criteria("")), 500

        notify.enqueue("Password updated. Please sign in.", "success")
        return redirect(url_for("auth.login"))

    return render_template("auth/reset_password.html", token=token, criteria=password_criteria(""))
