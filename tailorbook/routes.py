# tailorbook/routes.py
from __future__ import annotations

from datetime import datetime

from flask import (
    Blueprint,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from .config.shop import MOBILE_LOOKUP_LENGTH, shop_context
from .models import (
    MEASUREMENT_LABELS,
    ORDER_STATUS_FLOW,
    Customer,
    GarmentType,
    Order,
    OrderStatus,
)
from .services import orders as order_service
from .services.invoices import share_invoice
from .services.orders import (
    LookupState,
    OrderValidationError,
    PaymentConfirmationRequired,
)
from .services.reports import greeting, load_dashboard, load_report
from .utils import notify
from .utils.guards import get_owned_or_404, owned
from .utils.invoice_pdf import render_invoice_pdf

main = Blueprint("main", __name__)


def _customer_json(customer) -> dict:
    return {
        "id": str(customer.id),
        "name": customer.name,
        "mobile": customer.mobile,
        "address": customer.address,
    }


# =========================================================
# Dashboard
# =========================================================
@main.route("/dashboard")
@login_required
def dashboard():
    stats = load_dashboard(current_user.id)
    return render_template(
        "dashboard.html",
        stats=stats,
        greeting=greeting(),
        owner_name=current_user.owner_name or current_user.shop_name,
    )


# =========================================================
# Orders: list / status / delete
# =========================================================
@main.route("/orders")
@login_required
def orders_list():
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("filter") or "ALL").strip().upper()
    if status_filter not in order_service.ORDER_FILTERS:
        status_filter = "ALL"

    rows = order_service.filter_orders(owned(Order).all(), search, status_filter)
    return render_template(
        "orders/list.html",
        orders=rows,
        q=search,
        status_filter=status_filter,
        filters=order_service.ORDER_FILTERS,
        statuses=ORDER_STATUS_FLOW,
    )


@main.route("/orders/<uuid:order_id>")
@login_required
def order_detail(order_id):
    order = get_owned_or_404(Order, order_id)
    return render_template(
        "orders/detail.html",
        order=order,
        statuses=ORDER_STATUS_FLOW,
        labels=MEASUREMENT_LABELS,
    )


@main.route("/orders/<uuid:order_id>/status", methods=["POST"])
@login_required
def order_set_status(order_id):
    order = get_owned_or_404(Order, order_id)
    target = OrderStatus.parse(request.form.get("status"))
    confirm = request.form.get("confirm_payment") == "yes"
    back = request.form.get("next") or ""
    if not back.startswith("/") or back.startswith("//"):
        back = url_for("main.order_detail", order_id=order.id)

    if target is None:
        notify.enqueue("Unknown status.", "error")
        return redirect(back)

    try:
        order_service.change_status(order, target, confirm_payment=confirm)
    except PaymentConfirmationRequired as exc:
        # Ask before marking a part-paid order as delivered.
        return render_template("orders/confirm_delivered.html", order=order, balance=exc.balance, next=back)
    except OrderValidationError as exc:
        notify.enqueue(str(exc), "info")
        return redirect(back)
    except SQLAlchemyError:
        current_app.logger.exception("Status update failed order=%s", order_id)
        notify.enqueue("Failed to update status. Please try again.", "error")
        return redirect(back)

    if target == OrderStatus.DELIVERED and confirm:
        notify.enqueue("Payment received. Order marked as delivered.", "success")
    else:
        notify.enqueue(f"Order marked as {target.value}.", "success")
    return redirect(back)


@main.route("/orders/<uuid:order_id>/delete", methods=["POST"])
@login_required
def order_delete(order_id):
    order = get_owned_or_404(Order, order_id)

    if request.form.get("confirm") != "yes":
        notify.enqueue("Please confirm the deletion.", "info")
        return redirect(url_for("main.order_detail", order_id=order.id))

    try:
        order_service.delete_order(order)
    except SQLAlchemyError:
        current_app.logger.exception("Order delete failed order=%s", order_id)
        notify.enqueue("Failed to delete order. Please try again.", "error")
        return redirect(url_for("main.order_detail", order_id=order_id))

    notify.enqueue("Order deleted.", "success")
    return redirect(url_for("main.orders_list"))


# =========================================================
# Invoice: PDF / share
# =========================================================
@main.route("/orders/<uuid:order_id>/pdf")
@login_required
def order_pdf(order_id):
    """Render the invoice on the fly (no storage writes)."""
    order = get_owned_or_404(Order, order_id)

    pdf_bytes = render_invoice_pdf(order, shop_context())
    filename = f"Invoice_{order.reference}.pdf"
    disposition = "attachment" if request.args.get("download") else "inline"

    return current_app.response_class(
        pdf_bytes,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'},
    )


@main.route("/orders/<uuid:order_id>/share", methods=["POST"])
@login_required
def order_share(order_id):
    order = get_owned_or_404(Order, order_id)

    try:
        result = share_invoice(order, shop_context())
    except Exception:
        # Anything beyond a storage failure leaves the invoice screen as it was.
        current_app.logger.exception("Invoice share failed order=%s", order_id)
        notify.enqueue("Could not prepare the invoice. Please try again.", "error")
        return redirect(url_for("main.order_detail", order_id=order.id))

    if result.fallback:
        current_app.logger.warning("Invoice share using download fallback order=%s", order_id)

    return render_template("orders/share.html", order=order, result=result)


# =========================================================
# New order wizard
# =========================================================
def _draft():
    return order_service.load_draft(session)


def _save(draft) -> None:
    order_service.save_draft(session, draft)


def _resolved_customer(draft):
    if not draft.customer_id:
        return None
    cid = order_service.as_uuid(draft.customer_id)
    if cid is None:
        return None
    return owned(Customer).filter_by(id=cid).first()


@main.route("/orders/new", methods=["GET", "POST"])
@login_required
def order_new():
    """Step 1: identify the customer by mobile number."""
    if request.args.get("reset"):
        order_service.clear_draft(session)

    draft = _draft()
    state = LookupState.IDLE
    customer = _resolved_customer(draft)
    form = {"mobile": draft.mobile, "name": "", "address": ""}

    if request.method == "POST":
        action = request.form.get("action") or "lookup"
        form = {
            "mobile": order_service.normalize_mobile(request.form.get("mobile")),
            "name": (request.form.get("name") or "").strip(),
            "address": (request.form.get("address") or "").strip(),
        }

        if action == "create":
            try:
                customer = order_service.create_customer(
                    current_user.id, mobile=form["mobile"], name=form["name"], address=form["address"],
                )
            except OrderValidationError as exc:
                notify.enqueue(str(exc), "error")
                return render_template(
                    "orders/step_customer.html", draft=draft, state=LookupState.NEW, form=form,
                    customer=None, lookup_length=MOBILE_LOOKUP_LENGTH,
                ), 400
            except SQLAlchemyError:
                current_app.logger.exception("Customer create failed mobile=%s", form["mobile"])
                notify.enqueue("Could not save the customer. Please try again.", "error")
                return render_template(
                    "orders/step_customer.html", draft=draft, state=LookupState.NEW, form=form,
                    customer=None, lookup_length=MOBILE_LOOKUP_LENGTH,
                ), 500

            draft.resolve_customer(customer, order_service.measurement_drafts_for(customer))
            _save(draft)
            notify.enqueue("Customer added.", "success")
            return redirect(url_for("main.order_measurements"))

        state, customer = order_service.lookup_customer(current_user.id, form["mobile"])
        draft.mobile = form["mobile"]

        if state is LookupState.FOUND:
            draft.resolve_customer(customer, order_service.measurement_drafts_for(customer))
            _save(draft)
            return redirect(url_for("main.order_measurements"))

        draft.clear_customer()
        draft.mobile = form["mobile"]
        _save(draft)

    elif customer is not None:
        state = LookupState.FOUND

    return render_template(
        "orders/step_customer.html",
        draft=draft,
        state=state,
        form=form,
        customer=customer,
        lookup_length=MOBILE_LOOKUP_LENGTH,
    )


@main.route("/orders/new/lookup")
@login_required
def order_customer_lookup():
    """As-you-type lookup for step 1."""
    state, customer = order_service.lookup_customer(current_user.id, request.args.get("mobile"))
    return jsonify({
        "state": state.value,
        "customer": _customer_json(customer) if customer else None,
    })


@main.route("/orders/new/measurements", methods=["GET", "POST"])
@login_required
def order_measurements():
    """Step 2: per-garment measurements, edited in the draft only."""
    draft = _draft()
    customer = _resolved_customer(draft)
    if customer is None:
        notify.enqueue("Select or create a customer first.", "info")
        return redirect(url_for("main.order_new"))

    if request.method == "POST":
        current = GarmentType.parse(request.form.get("garment")) or GarmentType.parse(draft.current_tab)
        values = {
            key[2:]: val for key, val in request.form.items() if key.startswith("m:")
        }
        if current is not None:
            draft.set_measurements(current, values)

        action = request.form.get("action") or "save"
        if action.startswith("tab:"):
            target = GarmentType.parse(action[4:])
            if target is not None:
                draft.switch_tab(target)
            _save(draft)
            return redirect(url_for("main.order_measurements"))

        if action == "back":
            _save(draft)
            return redirect(url_for("main.order_new"))

        if action == "next":
            draft.step = 3
            draft.ensure_selection()
            _save(draft)
            return redirect(url_for("main.order_details"))

        _save(draft)
        return redirect(url_for("main.order_measurements"))

    draft.step = 2
    _save(draft)
    tab = GarmentType.parse(draft.current_tab) or GarmentType.SHIRT
    return render_template(
        "orders/step_measurements.html",
        draft=draft,
        customer=customer,
        tab=tab,
        garments=list(GarmentType),
        labels=MEASUREMENT_LABELS,
        values=draft.measurements.get(tab.value, {}),
    )


@main.route("/orders/new/details", methods=["GET", "POST"])
@login_required
def order_details():
    """Step 3: items, delivery date, money; commit."""
    draft = _draft()
    customer = _resolved_customer(draft)
    if customer is None:
        notify.enqueue("Select or create a customer first.", "info")
        return redirect(url_for("main.order_new"))

    if request.method == "POST":
        draft.selected_items = [g.value for g in map(GarmentType.parse, request.form.getlist("items")) if g]
        draft.delivery_date = (request.form.get("delivery_date") or "").strip()
        draft.total_amount = (request.form.get("total_amount") or "").strip()
        draft.advance_amount = (request.form.get("advance_amount") or "").strip()
        _save(draft)

        if request.form.get("action") == "back":
            return redirect(url_for("main.order_measurements"))

        try:
            order = order_service.commit_order(current_user.id, draft)
        except OrderValidationError as exc:
            notify.enqueue(str(exc), "error")
            return render_template(
                "orders/step_details.html", draft=draft, customer=customer, garments=list(GarmentType),
            ), 400
        except SQLAlchemyError:
            current_app.logger.exception("Order commit failed customer=%s", draft.customer_id)
            notify.enqueue("Failed to save order. Please try again.", "error")
            return render_template(
                "orders/step_details.html", draft=draft, customer=customer, garments=list(GarmentType),
            ), 500

        order_service.clear_draft(session)
        notify.enqueue("Order created successfully.", "success")
        return redirect(url_for("main.order_detail", order_id=order.id))

    draft.step = 3
    draft.ensure_selection()
    _save(draft)
    return render_template(
        "orders/step_details.html",
        draft=draft,
        customer=customer,
        garments=list(GarmentType),
    )


# =========================================================
# Reports
# =========================================================
@main.route("/reports")
@login_required
def reports():
    return render_template(
        "reports.html",
        report=load_report(current_user.id),
        generated_at=datetime.utcnow(),
    )
