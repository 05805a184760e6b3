# tailorbook/shop.py
from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from .config.shop import DESIGN_CATEGORIES, EXPENSE_CATEGORIES, LOGO_MAX_BYTES
from .extensions import db
from .models import MEASUREMENT_LABELS, Customer, Design, Expense
from .services.orders import parse_amount, parse_date, search_customers, sort_recent
from .services.storage import DESIGNS_BUCKET, StorageError, get_file_store
from .utils import notify
from .utils.guards import get_owned_or_404, owned
from .utils.passwords import (
    hash_password,
    hash_pin,
    is_valid_pin,
    password_criteria,
    validate_password,
    verify_password,
)
from .utils.uploads import UploadRejected, store_design, store_logo

shop = Blueprint("shop", __name__)


# =========================================================
# Small DB helper
# =========================================================
def _commit_or_rollback(action: str) -> bool:
    try:
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        notify.enqueue(f"{action} failed. Please try again.", "error")
        return False


# =========================================================
# Customers
# =========================================================
@shop.route("/customers")
@login_required
def customers_list():
    q = (request.args.get("q") or "").strip()
    rows = search_customers(owned(Customer).all(), q)
    return render_template("customers/list.html", customers=rows, q=q)


@shop.route("/customers/<uuid:customer_id>")
@login_required
def customer_detail(customer_id):
    customer = get_owned_or_404(Customer, customer_id)
    return render_template(
        "customers/detail.html",
        customer=customer,
        measurements=sorted(customer.measurements, key=lambda m: m.garment_type.value),
        orders=sort_recent(customer.orders),
        labels=MEASUREMENT_LABELS,
    )


@shop.route("/customers/<uuid:customer_id>/delete", methods=["POST"])
@login_required
def customer_delete(customer_id):
    customer = get_owned_or_404(Customer, customer_id)

    if request.form.get("confirm") != "yes":
        notify.enqueue("Please confirm the deletion.", "info")
        return redirect(url_for("shop.customer_detail", customer_id=customer.id))

    # Measurements, orders and order items go with the customer.
    db.session.delete(customer)
    if not _commit_or_rollback("Delete customer"):
        return redirect(url_for("shop.customer_detail", customer_id=customer_id))

    notify.enqueue("Customer deleted.", "success")
    return redirect(url_for("shop.customers_list"))


# =========================================================
# Expenses
# =========================================================
def _expense_rows():
    return owned(Expense).order_by(Expense.date.desc(), Expense.created_at.desc()).all()


@shop.route("/expenses", methods=["GET", "POST"])
@login_required
def expenses():
    form = {"category": EXPENSE_CATEGORIES[0], "amount": "", "date": date.today().isoformat(), "note": ""}

    if request.method == "POST":
        form = {
            "category": (request.form.get("category") or "").strip(),
            "amount": (request.form.get("amount") or "").strip(),
            "date": (request.form.get("date") or "").strip(),
            "note": (request.form.get("note") or "").strip(),
        }
        amount = parse_amount(form["amount"])
        spent_on = parse_date(form["date"]) if form["date"] else date.today()

        error = None
        if form["category"] not in EXPENSE_CATEGORIES:
            error = "Please choose a category."
        elif amount is None or amount <= 0:
            error = "Amount must be greater than zero."
        elif spent_on is None:
            error = "Please enter a valid date."

        if error:
            notify.enqueue(error, "error")
            return render_template(
                "expenses.html", expenses=_expense_rows(), form=form, categories=EXPENSE_CATEGORIES,
            ), 400

        db.session.add(Expense(
            profile_id=current_user.id,
            category=form["category"],
            amount=amount,
            date=spent_on,
            note=form["note"] or None,
        ))
        if _commit_or_rollback("Add expense"):
            notify.enqueue("Expense added.", "success")
        return redirect(url_for("shop.expenses"))

    return render_template("expenses.html", expenses=_expense_rows(), form=form, categories=EXPENSE_CATEGORIES)


@shop.route("/expenses/<uuid:expense_id>/delete", methods=["POST"])
@login_required
def expense_delete(expense_id):
    expense = get_owned_or_404(Expense, expense_id)
    db.session.delete(expense)
    if _commit_or_rollback("Delete expense"):
        notify.enqueue("Expense deleted.", "success")
    return redirect(url_for("shop.expenses"))


# =========================================================
# Design catalog
# =========================================================
def _discard_design_file(storage_path: str | None) -> None:
    if not storage_path:
        return
    try:
        get_file_store(DESIGNS_BUCKET).delete(storage_path)
    except StorageError:
        # An orphaned file stays behind; the catalog only lists DB rows.
        current_app.logger.exception("Design file delete failed path=%s", storage_path)


@shop.route("/catalog", methods=["GET", "POST"])
@login_required
def catalog():
    category = (request.args.get("category") or "All").strip()

    if request.method == "POST":
        title = (request.form.get("title") or "").strip()
        design_category = (request.form.get("category") or "").strip()

        if not title:
            notify.enqueue("Title is required.", "error")
            return redirect(url_for("shop.catalog"))
        if design_category not in DESIGN_CATEGORIES:
            notify.enqueue("Please choose a category.", "error")
            return redirect(url_for("shop.catalog"))

        try:
            storage_path, image_url = store_design(current_user.id, request.files.get("image"))
        except UploadRejected as exc:
            notify.enqueue(str(exc), "error")
            return redirect(url_for("shop.catalog"))
        except StorageError:
            current_app.logger.exception("Design upload failed profile=%s", current_user.id)
            notify.enqueue("Upload failed. Please try again.", "error")
            return redirect(url_for("shop.catalog"))

        db.session.add(Design(
            profile_id=current_user.id,
            title=title,
            category=design_category,
            image_url=image_url,
            storage_path=storage_path,
        ))
        if not _commit_or_rollback("Save design"):
            _discard_design_file(storage_path)
            return redirect(url_for("shop.catalog"))

        notify.enqueue("Design added.", "success")
        return redirect(url_for("shop.catalog"))

    query = owned(Design)
    if category in DESIGN_CATEGORIES:
        query = query.filter(Design.category == category)
    designs = query.order_by(Design.created_at.desc()).all()

    return render_template(
        "catalog.html",
        designs=designs,
        category=category,
        categories=DESIGN_CATEGORIES,
    )


@shop.route("/catalog/<uuid:design_id>/delete", methods=["POST"])
@login_required
def design_delete(design_id):
    design = get_owned_or_404(Design, design_id)
    storage_path = design.storage_path

    db.session.delete(design)
    if not _commit_or_rollback("Delete design"):
        return redirect(url_for("shop.catalog"))

    _discard_design_file(storage_path)
    notify.enqueue("Design deleted.", "success")
    return redirect(url_for("shop.catalog"))


# =========================================================
# Settings
# =========================================================
def _render_settings(status: int = 200):
    return render_template(
        "settings.html",
        profile=current_user,
        criteria=password_criteria(""),
        logo_max_kb=LOGO_MAX_BYTES // 1024,
    ), status


@shop.route("/settings", methods=["GET", "POST"])
@login_required
def settings():
    if request.method == "GET":
        return _render_settings()

    shop_name = (request.form.get("shop_name") or "").strip()
    pin = (request.form.get("pin") or "").strip()

    if not shop_name:
        notify.enqueue("Shop name is required.", "error")
        return _render_settings(400)
    if pin and not is_valid_pin(pin):
        notify.enqueue("PIN must be exactly 4 digits.", "error")
        return _render_settings(400)

    current_user.shop_name = shop_name
    current_user.owner_name = (request.form.get("owner_name") or "").strip() or None
    current_user.mobile = (request.form.get("mobile") or "").strip() or None
    current_user.address = (request.form.get("address") or "").strip() or None
    current_user.gst_in = (request.form.get("gst_in") or "").strip().upper() or None
    if pin:
        current_user.pin_hash = hash_pin(pin)

    if _commit_or_rollback("Save settings"):
        notify.enqueue("Settings saved.", "success")
    return redirect(url_for("shop.settings"))


@shop.route("/settings/logo", methods=["POST"])
@login_required
def settings_logo():
    try:
        current_user.logo_url = store_logo(current_user.id, request.files.get("logo"))
    except UploadRejected as exc:
        notify.enqueue(str(exc), "error")
        return redirect(url_for("shop.settings"))
    except StorageError:
        current_app.logger.exception("Logo upload failed profile=%s", current_user.id)
        notify.enqueue("Logo upload failed. Please try again.", "error")
        return redirect(url_for("shop.settings"))

    if _commit_or_rollback("Save logo"):
        notify.enqueue("Logo updated.", "success")
    return redirect(url_for("shop.settings"))


@shop.route("/settings/password", methods=["POST"])
@login_required
def settings_password():
    current_password = request.form.get("current_password") or ""
    new_password = request.form.get("new_password") or ""
    confirm_password = request.form.get("confirm_password") or ""

    if not verify_password(current_user.password_hash, current_password):
        notify.enqueue("Current password is incorrect.", "error")
        return _render_settings(400)

    if new_password != confirm_password:
        notify.enqueue("New password and confirmation do not match.", "error")
        return _render_settings(400)

    ok, msg = validate_password(new_password)
    if not ok:
        notify.enqueue(msg, "error")
        return _render_settings(400)

    current_user.password_hash = hash_password(new_password)
    if _commit_or_rollback("Update password"):
        notify.enqueue("Password updated successfully.", "success")
    return redirect(url_for("shop.settings"))
