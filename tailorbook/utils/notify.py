# tailorbook/utils/notify.py
from __future__ import annotations

from flask import flash, get_flashed_messages

# Operator-facing kinds -> flash categories used by the templates.
_KIND_TO_CATEGORY = {
    "success": "success",
    "error": "danger",
    "info": "info",
}


def enqueue(message: str, kind: str = "success") -> None:
    """
    Queue a transient notification for the operator.

    Messages are shown in FIFO order on the next rendered page and removed
    after TOAST_DURATION_MS by the base template.
    """
    flash(message, _KIND_TO_CATEGORY.get(kind, "info"))


def drain() -> list[tuple[str, str]]:
    """Pop every queued (category, message) pair, oldest first."""
    return get_flashed_messages(with_categories=True)
