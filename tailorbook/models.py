# tailorbook/models.py
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableDict

from .extensions import db


# Naive UTC everywhere: DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


# jsonb on Postgres, plain JSON elsewhere (SQLite in tests).
# MutableDict so in-place edits of the mapping are persisted.
JSONMapping = MutableDict.as_mutable(sa.JSON().with_variant(JSONB(), "postgresql"))


def _enum_column(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
        validate_strings=True,
    )


# =========================================================
# Enums
# =========================================================
class GarmentType(enum.Enum):
    SHIRT = "Shirt"
    PANT = "Pant"
    KURTA = "Kurta"
    SUIT = "Suit"

    @classmethod
    def parse(cls, value) -> "GarmentType | None":
        if isinstance(value, cls):
            return value
        for g in cls:
            if g.value.lower() == str(value or "").strip().lower():
                return g
        return None


class OrderStatus(enum.Enum):
    DRAFT = "Draft"
    RECEIVED = "Received"
    CUTTING = "Cutting"
    STITCHING = "Stitching"
    COMPLETED = "Completed"
    DELIVERED = "Delivered"

    @classmethod
    def parse(cls, value) -> "OrderStatus | None":
        if isinstance(value, cls):
            return value
        for s in cls:
            if s.value.lower() == str(value or "").strip().lower():
                return s
        return None


# Lifecycle order, used for display. Transitions themselves are not restricted.
ORDER_STATUS_FLOW = [
    OrderStatus.DRAFT,
    OrderStatus.RECEIVED,
    OrderStatus.CUTTING,
    OrderStatus.STITCHING,
    OrderStatus.COMPLETED,
    OrderStatus.DELIVERED,
]

# Orders in these states no longer count as pending deliveries.
CLOSED_STATUSES = {OrderStatus.COMPLETED, OrderStatus.DELIVERED}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Any status may be set from any other; only a no-op change is refused."""
    return isinstance(target, OrderStatus) and target != current


# Measurement labels per garment, as printed on the shop's paper forms.
MEASUREMENT_LABELS: dict[GarmentType, list[str]] = {
    GarmentType.SHIRT: [
        "લંબાઈ", "છાતી", "કમર", "સીટ", "શોલ્ડર",
        "બાહ", "કોલર", "કફ", "ફ્રન્ટ", "ફિટ",
    ],
    GarmentType.PANT: [
        "લંબાઈ", "કમર", "સીટ", "થાઈ", "ઘૂંટણ", "બોટમ", "રાઈઝ",
    ],
    GarmentType.KURTA: [
        "લંબાઈ", "છાતી", "કમર", "સીટ", "શોલ્ડર", "બાહ", "કોલર",
    ],
    GarmentType.SUIT: [
        "કોટ લંબાઈ", "છાતી", "કમર", "સીટ", "શોલ્ડર", "બાહ",
        "પેન્ટ લંબાઈ", "પેન્ટ કમર",
    ],
}


# =========================================================
# Profile (shop account + login identity)
# =========================================================
class Profile(UserMixin, db.Model):
    __tablename__ = "profile"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    owner_name = db.Column(db.String(120), nullable=True)
    shop_name = db.Column(db.String(160), nullable=False, default="My Tailor Shop")
    mobile = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    gst_in = db.Column(db.String(20), nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)

    # 4-digit unlock code, stored as a Werkzeug hash (see utils/passwords.py).
    pin_hash = db.Column(db.String(255), nullable=False)

    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    __table_args__ = (
        db.UniqueConstraint("email", name="profile_email_key"),
    )

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.email}>"


# =========================================================
# Customer
# =========================================================
class Customer(db.Model):
    __tablename__ = "customer"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    profile_id = db.Column(
        db.Integer,
        db.ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(160), nullable=False)
    # Lookup key for the order wizard; not unique.
    mobile = db.Column(db.String(30), nullable=False, index=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    measurements = db.relationship(
        "Measurement",
        back_populates="customer",
        lazy="select",
        cascade="all, delete-orphan",
    )
    orders = db.relationship(
        "Order",
        back_populates="customer",
        lazy="select",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.name}>"


# =========================================================
# Measurement (one current set per customer + garment)
# =========================================================
class Measurement(db.Model):
    __tablename__ = "measurement"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    profile_id = db.Column(
        db.Integer,
        db.ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = db.Column(
        sa.Uuid(as_uuid=True),
        db.ForeignKey("customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer = db.relationship("Customer", back_populates="measurements")

    garment_type = db.Column(_enum_column(GarmentType, "garment_type"), nullable=False)

    # label -> value, free text (shops write "40", "40.5", "40 1/2" ...)
    values = db.Column(JSONMapping, nullable=False, default=dict)
    notes = db.Column(db.Text, nullable=True)

    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    __table_args__ = (
        db.UniqueConstraint("customer_id", "garment_type", name="uq_measurement_customer_garment"),
    )

    def __repr__(self) -> str:
        return f"<Measurement {self.customer_id} {self.garment_type}>"


# =========================================================
# Order
# =========================================================
class Order(db.Model):
    __tablename__ = "order"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    profile_id = db.Column(
        db.Integer,
        db.ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = db.Column(
        sa.Uuid(as_uuid=True),
        db.ForeignKey("customer.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer = db.relationship("Customer", back_populates="orders", lazy="joined")

    status = db.Column(
        _enum_column(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.RECEIVED,
        index=True,
    )

    delivery_date = db.Column(db.Date, nullable=True)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    advance_amount = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text, nullable=True)

    # Wizard submissions carry a key so a retried commit cannot create a second order.
    submission_key = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    __table_args__ = (
        db.UniqueConstraint("profile_id", "submission_key", name="uq_order_profile_submission"),
        db.CheckConstraint("total_amount >= 0", name="ck_order_total_nonneg"),
        db.CheckConstraint("advance_amount >= 0", name="ck_order_advance_nonneg"),
    )

    @property
    def balance_due(self) -> float:
        return max(0.0, float(self.total_amount or 0) - float(self.advance_amount or 0))

    @property
    def reference(self) -> str:
        """Short receipt number shown to customers: last 5 characters of the id."""
        return str(self.id)[-5:]

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"


class OrderItem(db.Model):
    __tablename__ = "order_item"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    order_id = db.Column(
        sa.Uuid(as_uuid=True),
        db.ForeignKey("order.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order = db.relationship("Order", back_populates="items")

    position = db.Column(db.Integer, nullable=False, default=0)
    garment_type = db.Column(_enum_column(GarmentType, "garment_type"), nullable=False)
    qty = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Float, nullable=False, default=0.0)

    # Frozen copy of the measurement values at order time.
    measurement_snapshot = db.Column(JSONMapping, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)


# =========================================================
# Expense
# =========================================================
class Expense(db.Model):
    __tablename__ = "expense"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    profile_id = db.Column(
        db.Integer,
        db.ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    category = db.Column(db.String(40), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    note = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=False, default=date.today)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)


# =========================================================
# Design (catalog)
# =========================================================
class Design(db.Model):
    __tablename__ = "design"

    id = db.Column(sa.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    profile_id = db.Column(
        db.Integer,
        db.ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = db.Column(db.String(160), nullable=False)
    category = db.Column(db.String(40), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    storage_path = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
