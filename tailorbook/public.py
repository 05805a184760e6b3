# tailorbook/public.py
from __future__ import annotations

from flask import Blueprint, abort, redirect, render_template, send_from_directory, url_for
from flask_login import current_user

from .services.storage import BUCKETS, LocalFileStore, get_file_store


public = Blueprint("public", __name__)


# =========================================================
# Landing
# =========================================================
@public.route("/")
def landing():
    if getattr(current_user, "is_authenticated", False):
        return redirect(url_for("main.dashboard"))
    return render_template("public/landing.html")


# =========================================================
# Stored files (local storage backend)
# =========================================================
@public.route("/files/<bucket>/<path:path>")
def stored_file(bucket: str, path: str):
    """
    Public links for invoices / designs / logos when STORAGE_BACKEND=local.
    Invoice paths embed the order UUID, so links are unguessable.
    """
    if bucket not in BUCKETS:
        abort(404)

    store = get_file_store(bucket)
    if not isinstance(store, LocalFileStore):
        # Remote backends hand out their own public URLs.
        abort(404)

    # send_from_directory rejects traversal and raises NotFound for missing files.
    return send_from_directory(store.root, path)
