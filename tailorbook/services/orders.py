# tailorbook/services/orders.py
"""
Order intake and order lifecycle.

- OrderDraft: the three-step wizard state (customer -> measurements -> details),
  kept in the user session between requests.
- commit_order: measurement upserts + order + items in ONE transaction, keyed
  by the draft's submission_key so a resubmitted form cannot create a second order.
- change_status / filter_orders / search_customers: order list behaviour.
"""
from __future__ import annotations

import enum
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, MutableMapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tailorbook.config.shop import DELIVERY_LEAD_DAYS, MOBILE_LOOKUP_LENGTH
from tailorbook.extensions import db
from tailorbook.models import (
    CLOSED_STATUSES,
    Customer,
    GarmentType,
    Measurement,
    Order,
    OrderItem,
    OrderStatus,
    can_transition,
)

DRAFT_SESSION_KEY = "order_draft"


# =========================================================
# Errors
# =========================================================
class OrderValidationError(ValueError):
    """Operator input is incomplete or invalid; nothing was written."""


class PaymentConfirmationRequired(Exception):
    """Delivering an order with an outstanding balance needs explicit confirmation."""

    def __init__(self, order: Order):
        self.order = order
        self.balance = order.balance_due
        super().__init__(f"Order {order.reference} has {self.balance} outstanding.")


# =========================================================
# Parsers / money
# =========================================================
def parse_amount(val) -> float | None:
    try:
        if val is None or str(val).strip() == "":
            return None
        amount = float(val)
    except (TypeError, ValueError):
        return None
    # "nan", "inf" and "1e999" parse as floats but are not amounts.
    return amount if math.isfinite(amount) else None


def parse_date(val) -> date | None:
    try:
        if not val:
            return None
        if isinstance(val, date):
            return val
        return date.fromisoformat(str(val).strip())
    except (TypeError, ValueError):
        return None


def normalize_mobile(raw: str | None) -> str:
    return "".join(ch for ch in (raw or "") if ch.isdigit())


def balance_due(total, advance) -> float:
    return max(0.0, (parse_amount(total) or 0.0) - (parse_amount(advance) or 0.0))


def split_total(total: float, parts: int) -> list[float]:
    """
    Split `total` evenly across `parts` items, rounded to 2 decimals.
    The last item absorbs the rounding remainder so the prices sum to `total`.
    """
    if parts <= 0:
        return []
    cents = int(round(float(total) * 100))
    base, remainder = divmod(cents, parts)
    shares = [base] * parts
    shares[-1] += remainder
    return [s / 100 for s in shares]


def default_delivery_date(today: date | None = None) -> date:
    return (today or datetime.utcnow().date()) + timedelta(days=DELIVERY_LEAD_DAYS)


# =========================================================
# Wizard draft
# =========================================================
def _empty_measurements() -> dict[str, dict[str, str]]:
    return {g.value: {} for g in GarmentType}


@dataclass
class OrderDraft:
    submission_key: str = field(default_factory=lambda: uuid.uuid4().hex)
    step: int = 1
    mobile: str = ""
    customer_id: str | None = None
    measurements: dict[str, dict[str, str]] = field(default_factory=_empty_measurements)
    current_tab: str = GarmentType.SHIRT.value
    selected_items: list[str] = field(default_factory=list)
    delivery_date: str = field(default_factory=lambda: default_delivery_date().isoformat())
    total_amount: str = ""
    advance_amount: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "OrderDraft":
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        draft = cls(**known)
        # Older drafts may miss a garment key.
        merged = _empty_measurements()
        for k, v in (draft.measurements or {}).items():
            if k in merged and isinstance(v, dict):
                merged[k] = {str(label): str(val) for label, val in v.items()}
        draft.measurements = merged
        return draft

    def to_dict(self) -> dict:
        return asdict(self)

    # ---- step 1
    def resolve_customer(self, customer: Customer, measurements: dict[str, dict[str, str]]) -> None:
        self.customer_id = str(customer.id)
        self.mobile = customer.mobile
        self.measurements = measurements

    def clear_customer(self) -> None:
        self.customer_id = None
        self.measurements = _empty_measurements()
        self.step = 1

    # ---- step 2
    def switch_tab(self, garment: GarmentType) -> None:
        self.current_tab = garment.value

    def set_measurements(self, garment: GarmentType, values: dict[str, str]) -> None:
        tab = self.measurements.setdefault(garment.value, {})
        for label, value in values.items():
            tab[str(label)] = "" if value is None else str(value).strip()

    def filled_measurements(self) -> dict[GarmentType, dict[str, str]]:
        """Garment types with at least one non-empty value, empty labels dropped."""
        out: dict[GarmentType, dict[str, str]] = {}
        for key, values in self.measurements.items():
            garment = GarmentType.parse(key)
            if garment is None:
                continue
            filled = {k: v for k, v in values.items() if v and str(v).strip()}
            if filled:
                out[garment] = filled
        return out

    # ---- step 3
    def ensure_selection(self) -> None:
        if not self.selected_items:
            self.selected_items = [self.current_tab]

    def toggle_item(self, garment: GarmentType) -> None:
        if garment.value in self.selected_items:
            self.selected_items = [g for g in self.selected_items if g != garment.value]
        else:
            self.selected_items = self.selected_items + [garment.value]

    def selected_garments(self) -> list[GarmentType]:
        seen: list[GarmentType] = []
        for raw in self.selected_items:
            garment = GarmentType.parse(raw)
            if garment is not None and garment not in seen:
                seen.append(garment)
        return seen

    @property
    def balance_due(self) -> float:
        return balance_due(self.total_amount, self.advance_amount)

    @property
    def can_commit(self) -> bool:
        return bool(
            self.customer_id
            and self.selected_garments()
            and parse_date(self.delivery_date)
            and parse_amount(self.total_amount) is not None
        )


def load_draft(store: MutableMapping) -> OrderDraft:
    return OrderDraft.from_dict(store.get(DRAFT_SESSION_KEY))


def save_draft(store: MutableMapping, draft: OrderDraft) -> None:
    store[DRAFT_SESSION_KEY] = draft.to_dict()


def clear_draft(store: MutableMapping) -> None:
    store.pop(DRAFT_SESSION_KEY, None)


# =========================================================
# Step 1: customer lookup / creation
# =========================================================
class LookupState(enum.Enum):
    FOUND = "found"
    NEW = "new"
    IDLE = "idle"


def owned_customers(profile_id: int):
    return Customer.query.filter(Customer.profile_id == profile_id)


def find_customer_by_mobile(profile_id: int, mobile: str) -> Customer | None:
    return (
        owned_customers(profile_id)
        .filter(Customer.mobile == mobile)
        .order_by(Customer.created_at.desc())
        .first()
    )


def lookup_customer(profile_id: int, raw_mobile: str) -> tuple[LookupState, Customer | None]:
    mobile = normalize_mobile(raw_mobile)
    if len(mobile) != MOBILE_LOOKUP_LENGTH:
        return LookupState.IDLE, None

    customer = find_customer_by_mobile(profile_id, mobile)
    if customer:
        return LookupState.FOUND, customer
    return LookupState.NEW, None


def create_customer(profile_id: int, *, mobile: str, name: str, address: str | None = None,
                    notes: str | None = None) -> Customer:
    mobile = normalize_mobile(mobile)
    name = (name or "").strip()

    if len(mobile) != MOBILE_LOOKUP_LENGTH:
        raise OrderValidationError(f"Mobile number must be {MOBILE_LOOKUP_LENGTH} digits.")
    if not name:
        raise OrderValidationError("Customer name is required.")

    customer = Customer(
        profile_id=profile_id,
        name=name,
        mobile=mobile,
        address=(address or "").strip() or None,
        notes=(notes or "").strip() or None,
    )
    db.session.add(customer)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return customer


def measurement_drafts_for(customer: Customer) -> dict[str, dict[str, str]]:
    """Latest stored values per garment, as editable draft strings."""
    drafts = _empty_measurements()
    for m in customer.measurements:
        drafts[m.garment_type.value] = {str(k): "" if v is None else str(v) for k, v in (m.values or {}).items()}
    return drafts


# =========================================================
# Commit
# =========================================================
def upsert_measurement(profile_id: int, customer_id, garment: GarmentType, values: dict[str, str],
                       notes: str | None = None) -> Measurement:
    """Overwrite the customer's set for this garment (no history). Does not commit."""
    m = Measurement.query.filter_by(customer_id=customer_id, garment_type=garment).first()
    if m is None:
        m = Measurement(profile_id=profile_id, customer_id=customer_id, garment_type=garment)
        db.session.add(m)
    m.values = dict(values)
    if notes is not None:
        m.notes = notes
    return m


def find_submitted_order(profile_id: int, submission_key: str | None) -> Order | None:
    if not submission_key:
        return None
    return Order.query.filter_by(profile_id=profile_id, submission_key=submission_key).first()


def commit_order(profile_id: int, draft: OrderDraft) -> Order:
    """
    Persist the wizard: measurements with any value, then the order with one
    item per selected garment. All-or-nothing; returns the existing order when
    this draft was already committed.
    """
    existing = find_submitted_order(profile_id, draft.submission_key)
    if existing:
        return existing

    if not draft.customer_id:
        raise OrderValidationError("Select or create a customer first.")

    customer = owned_customers(profile_id).filter(Customer.id == as_uuid(draft.customer_id)).first()
    if customer is None:
        raise OrderValidationError("Customer not found.")

    garments = draft.selected_garments()
    if not garments:
        raise OrderValidationError("Please select at least one item to order.")

    delivery = parse_date(draft.delivery_date)
    if delivery is None:
        raise OrderValidationError("Delivery date is required.")

    total = parse_amount(draft.total_amount)
    if total is None:
        if str(draft.total_amount or "").strip():
            raise OrderValidationError("Total amount must be a number.")
        raise OrderValidationError("Total amount is required.")
    if total < 0:
        raise OrderValidationError("Total amount cannot be negative.")

    advance = parse_amount(draft.advance_amount)
    if advance is None:
        if str(draft.advance_amount or "").strip():
            raise OrderValidationError("Advance amount must be a number.")
        advance = 0.0
    if advance < 0:
        raise OrderValidationError("Advance amount cannot be negative.")

    filled = draft.filled_measurements()

    try:
        for garment, values in filled.items():
            upsert_measurement(profile_id, customer.id, garment, values)

        order = Order(
            profile_id=profile_id,
            customer_id=customer.id,
            status=OrderStatus.RECEIVED,
            delivery_date=delivery,
            total_amount=total,
            advance_amount=advance,
            submission_key=draft.submission_key,
        )
        for position, (garment, price) in enumerate(zip(garments, split_total(total, len(garments)))):
            order.items.append(
                OrderItem(
                    position=position,
                    garment_type=garment,
                    qty=1,
                    price=price,
                    measurement_snapshot=dict(filled[garment]) if garment in filled else None,
                )
            )
        db.session.add(order)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # Same submission committed by a concurrent request.
        existing = find_submitted_order(profile_id, draft.submission_key)
        if existing:
            return existing
        raise
    except SQLAlchemyError:
        db.session.rollback()
        raise

    return order


def as_uuid(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


# =========================================================
# Order list
# =========================================================
ORDER_FILTERS = ("ALL", "PENDING", "DELIVERED")


def sort_recent(rows: Iterable) -> list:
    return sorted(rows, key=lambda r: r.created_at, reverse=True)


def _matches(customer: Customer | None, needle: str) -> bool:
    if customer is None:
        return False
    if not needle:
        return True
    return needle in (customer.name or "").lower() or needle in (customer.mobile or "").lower()


def search_customers(customers: Iterable[Customer], search: str | None) -> list[Customer]:
    needle = (search or "").strip().lower()
    return sort_recent(c for c in customers if _matches(c, needle))


def filter_orders(orders: Iterable[Order], search: str | None = None, status_filter: str = "ALL") -> list[Order]:
    needle = (search or "").strip().lower()
    status_filter = (status_filter or "ALL").upper()

    out = []
    for o in orders:
        if not _matches(o.customer, needle):
            continue
        if status_filter == "PENDING" and o.status in CLOSED_STATUSES:
            continue
        if status_filter == "DELIVERED" and o.status != OrderStatus.DELIVERED:
            continue
        out.append(o)
    return sort_recent(out)


def change_status(order: Order, target: OrderStatus, *, confirm_payment: bool = False) -> Order:
    """
    Set a new status. Delivering with a positive balance requires confirm_payment,
    which marks the order fully paid in the same commit.
    """
    if not can_transition(order.status, target):
        raise OrderValidationError(f"Order is already {target.value}.")

    if target == OrderStatus.DELIVERED and order.balance_due > 0:
        if not confirm_payment:
            raise PaymentConfirmationRequired(order)
        order.advance_amount = order.total_amount

    order.status = target
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return order


def delete_order(order: Order) -> None:
    db.session.delete(order)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
