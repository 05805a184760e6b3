"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

GARMENT_TYPES = ("Shirt", "Pant", "Kurta", "Suit")
ORDER_STATUSES = ("Draft", "Received", "Cutting", "Stitching", "Completed", "Delivered")

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _garment_type():
    return sa.Enum(*GARMENT_TYPES, name="garment_type", native_enum=False, create_constraint=False)


def upgrade():
    # =========================
    # profile (shop account + login)
    # =========================
    op.create_table(
        "profile",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("owner_name", sa.String(length=120), nullable=True),
        sa.Column("shop_name", sa.String(length=160), nullable=False),
        sa.Column("mobile", sa.String(length=30), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("gst_in", sa.String(length=20), nullable=True),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("pin_hash", sa.String(length=255), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="profile_email_key"),
    )

    # =========================
    # customer
    # =========================
    op.create_table(
        "customer",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("mobile", sa.String(length=30), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profile.id"], name="fk_customer_profile", ondelete="CASCADE"),
    )
    op.create_index("ix_customer_profile_id", "customer", ["profile_id"])
    op.create_index("ix_customer_mobile", "customer", ["mobile"])

    # =========================
    # measurement
    # one current set per (customer, garment)
    # =========================
    op.create_table(
        "measurement",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("garment_type", _garment_type(), nullable=False),
        sa.Column("values", JSON, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profile.id"], name="fk_measurement_profile", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customer.id"], name="fk_measurement_customer", ondelete="CASCADE"),
        sa.UniqueConstraint("customer_id", "garment_type", name="uq_measurement_customer_garment"),
    )
    op.create_index("ix_measurement_profile_id", "measurement", ["profile_id"])
    op.create_index("ix_measurement_customer_id", "measurement", ["customer_id"])

    # =========================
    # order
    # =========================
    op.create_table(
        "order",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*ORDER_STATUSES, name="order_status", native_enum=False, create_constraint=False),
            nullable=False,
        ),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("advance_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("submission_key", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profile.id"], name="fk_order_profile", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customer.id"], name="fk_order_customer", ondelete="CASCADE"),
        sa.UniqueConstraint("profile_id", "submission_key", name="uq_order_profile_submission"),
        sa.CheckConstraint("total_amount >= 0", name="ck_order_total_nonneg"),
        sa.CheckConstraint("advance_amount >= 0", name="ck_order_advance_nonneg"),
    )
    op.create_index("ix_order_profile_id", "order", ["profile_id"])
    op.create_index("ix_order_customer_id", "order", ["customer_id"])
    op.create_index("ix_order_status", "order", ["status"])
    op.create_index("ix_order_created_at", "order", ["created_at"])

    # =========================
    # order_item
    # =========================
    op.create_table(
        "order_item",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("garment_type", _garment_type(), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("measurement_snapshot", JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["order.id"], name="fk_order_item_order", ondelete="CASCADE"),
    )
    op.create_index("ix_order_item_order_id", "order_item", ["order_id"])

    # =========================
    # expense
    # =========================
    op.create_table(
        "expense",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profile.id"], name="fk_expense_profile", ondelete="CASCADE"),
    )
    op.create_index("ix_expense_profile_id", "expense", ["profile_id"])

    # =========================
    # design (catalog)
    # =========================
    op.create_table(
        "design",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=False),
        sa.Column("storage_path", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["profile_id"], ["profile.id"], name="fk_design_profile", ondelete="CASCADE"),
    )
    op.create_index("ix_design_profile_id", "design", ["profile_id"])


def downgrade():
    op.drop_index("ix_design_profile_id", table_name="design")
    op.drop_table("design")

    op.drop_index("ix_expense_profile_id", table_name="expense")
    op.drop_table("expense")

    op.drop_index("ix_order_item_order_id", table_name="order_item")
    op.drop_table("order_item")

    op.drop_index("ix_order_created_at", table_name="order")
    op.drop_index("ix_order_status", table_name="order")
    op.drop_index("ix_order_customer_id", table_name="order")
    op.drop_index("ix_order_profile_id", table_name="order")
    op.drop_table("order")

    op.drop_index("ix_measurement_customer_id", table_name="measurement")
    op.drop_index("ix_measurement_profile_id", table_name="measurement")
    op.drop_table("measurement")

    op.drop_index("ix_customer_mobile", table_name="customer")
    op.drop_index("ix_customer_profile_id", table_name="customer")
    op.drop_table("customer")

    op.drop_table("profile")
