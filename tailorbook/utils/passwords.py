# tailorbook/utils/passwords.py
from __future__ import annotations

import re
from typing import Tuple

from werkzeug.security import check_password_hash, generate_password_hash


# =========================
# Password hashing / verify
# =========================
def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using a strong KDF.
    Werkzeug's scrypt is memory-hard and suitable for production.
    """
    if not isinstance(plain_password, str) or not plain_password.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str, plain_password: str) -> bool:
    """Verify plaintext password against stored hash."""
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)


# =========================
# Password policy
# =========================
_PASSWORD_RULES = [
    (lambda s: len(s) >= 8, "Password must be at least 8 characters."),
    (lambda s: re.search(r"[A-Z]", s) is not None, "Include at least one uppercase letter."),
    (lambda s: re.search(r"[0-9]", s) is not None, "Include at least one number."),
    (lambda s: re.search(r"[^A-Za-z0-9]", s) is not None, "Include at least one symbol (e.g. !@#$)."),
]


def validate_password(plain_password: str) -> Tuple[bool, str]:
    """
    Returns (ok, message). If ok is False, message explains what to fix.
    """
    if not isinstance(plain_password, str):
        return False, "Password must be text."
    if not plain_password:
        return False, "Password cannot be empty."

    for rule, msg in _PASSWORD_RULES:
        if not rule(plain_password):
            return False, msg
    return True, ""


def password_criteria(plain_password: str) -> dict[str, bool]:
    """Per-rule status for the live checklist on the register/reset forms."""
    p = plain_password or ""
    return {
        "length": len(p) >= 8,
        "upper": re.search(r"[A-Z]", p) is not None,
        "number": re.search(r"[0-9]", p) is not None,
        "special": re.search(r"[^A-Za-z0-9]", p) is not None,
    }


# =========================
# Unlock PIN
# =========================
_PIN_RE = re.compile(r"[0-9]{4}")


def is_valid_pin(pin: str | None) -> bool:
    return isinstance(pin, str) and _PIN_RE.fullmatch(pin) is not None


def hash_pin(pin: str) -> str:
    if not is_valid_pin(pin):
        raise ValueError("PIN must be exactly 4 digits.")
    return generate_password_hash(pin, method="pbkdf2:sha256")


def verify_pin(pin_hash: str | None, pin: str | None) -> bool:
    if not pin_hash or not is_valid_pin(pin):
        return False
    return check_password_hash(pin_hash, pin)
