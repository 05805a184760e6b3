# tailorbook/config/shop.py
"""
Shop-level constants and the template context built from the signed-in profile.

Values here are defaults; the profile (Settings screen) overrides name, logo
and contact fields per account.
"""
from __future__ import annotations

from flask import current_app
from flask_login import current_user

# -----------------------------
# Defaults
# -----------------------------
DEFAULT_SHOP_NAME = "My Tailor Shop"
REGISTER_SHOP_NAME = "My Shop"
DEFAULT_PIN = "0000"

# Digits in a local mobile number; the wizard looks a customer up at this length.
MOBILE_LOOKUP_LENGTH = 10

DELIVERY_LEAD_DAYS = 7

# Logos are shown on invoices and in the header; keep them small.
LOGO_MAX_BYTES = 500 * 1024

EXPENSE_CATEGORIES = ["Material", "Rent", "Electricity", "Salary", "Maintenance", "Other"]
DESIGN_CATEGORIES = ["Shirt", "Pant", "Kurta", "Suit", "Other"]

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def shop_context() -> dict:
    """
    Template context for every page:
    - SHOP_NAME / SHOP_LOGO_URL from the signed-in profile (defaults otherwise)
    - CURRENCY / TOAST_DURATION_MS / IDLE_LOCK_SECONDS from app config
    """
    profile = current_user if getattr(current_user, "is_authenticated", False) else None

    return {
        "SHOP_NAME": (getattr(profile, "shop_name", None) or DEFAULT_SHOP_NAME),
        "SHOP_LOGO_URL": getattr(profile, "logo_url", None),
        "SHOP_MOBILE": getattr(profile, "mobile", None),
        "SHOP_ADDRESS": getattr(profile, "address", None),
        "SHOP_GSTIN": getattr(profile, "gst_in", None),
        "CURRENCY": current_app.config.get("CURRENCY_SYMBOL", "₹"),
        "TOAST_DURATION_MS": current_app.config.get("TOAST_DURATION_MS", 3000),
        "IDLE_LOCK_SECONDS": current_app.config.get("IDLE_LOCK_SECONDS", 300),
    }
