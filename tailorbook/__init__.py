# tailorbook/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify, redirect, render_template, request, url_for
from flask_login import current_user

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Global template context (Shop identity)
    # ======================
    from .config.shop import shop_context
    from .utils.invoice_pdf import format_amount
    from .utils.notify import drain

    @app.context_processor
    def inject_shop():
        # SHOP_NAME, SHOP_LOGO_URL, CURRENCY, TOAST_DURATION_MS, IDLE_LOCK_SECONDS ...
        return shop_context()

    app.jinja_env.globals["drain_notifications"] = drain
    app.jinja_env.filters["amount"] = format_amount

    # ======================
    # Register Blueprints
    # ======================
    from .routes import main
    from .auth import auth
    from .shop import shop
    from .public import public

    app.register_blueprint(main)
    app.register_blueprint(auth)
    app.register_blueprint(shop)
    app.register_blueprint(public)

    # ======================
    # Session guard (PIN lock + idle timer)
    # ======================
    from .utils.guards import SessionState, current_guard, endpoint_access

    @app.before_request
    def enforce_pin_lock():
        access = endpoint_access(request.endpoint)
        if access == "public":
            return None

        if not getattr(current_user, "is_authenticated", False):
            # login_required on the view sends anonymous callers to the landing page.
            return None

        if access == "locked":
            return None

        guard = current_guard()
        state = guard.touch()
        if state is SessionState.UNLOCKED:
            return None

        next_path = request.full_path if request.method == "GET" else None
        if request.is_json or request.accept_mimetypes.best == "application/json":
            return jsonify({"state": state.value}), 401
        return redirect(url_for("auth.unlock", next=next_path) if next_path else url_for("auth.unlock"))

    # ======================
    # Error handlers
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return render_template("errors/429.html"), 429

    @app.errorhandler(403)
    def forbidden(e):
        return render_template("errors/403.html"), 403

    @app.errorhandler(404)
    def not_found(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        app.logger.error("Unhandled error on %s %s", request.method, request.path)
        return render_template("errors/500.html"), 500

    return app
