"""Initial schema: drivers, bookings, payments, commissions, audit, review queue.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

BOOKING_STATUSES = (
    "draft",
    "pending_payment",
    "paid_deposit",
    "matched",
    "assigned",
    "driver_confirmed",
    "driver_departed",
    "driver_arrived",
    "trip_started",
    "trip_ended",
    "pending_balance",
    "completed",
    "cancelled",
    "refunded",
)
BOOKING_EVENTS = (
    "payment_completed",
    "payment_failed",
    "assign_driver",
    "driver_accept",
    "driver_reject",
    "driver_depart",
    "driver_arrive",
    "start_trip",
    "end_trip",
    "balance_paid",
    "complete_order",
    "cancel_order",
    "refund_order",
)
PAYMENT_TYPES = ("deposit", "balance")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")
COMMISSION_TYPES = ("fixed", "percent", "both")


def _enum(values, name):
    # Stored as VARCHAR + CHECK, matching the ORM's non-native enums
    return sa.Enum(*values, name=name, native_enum=False, length=32)


def _money(**kwargs):
    return sa.Column(sa.Numeric(12, 2), **kwargs)


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("completed_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_drivers_active", "drivers", ["is_active"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_number", sa.String(32), unique=True, nullable=False),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column(
            "driver_id", sa.String(36), sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column(
            "status",
            _enum(BOOKING_STATUSES, "bookingstatus"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("vehicle_type", sa.String(16), nullable=True),
        sa.Column("scheduled_start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_hours", sa.Integer, nullable=False, server_default="0"),
        _money(name="overtime_rate", nullable=True),
        _money(name="base_price", nullable=False, server_default="0"),
        _money(name="deposit_amount", nullable=False, server_default="0"),
        _money(name="balance_amount", nullable=False, server_default="0"),
        _money(name="overtime_fee_amount", nullable=False, server_default="0"),
        _money(name="tip_amount", nullable=False, server_default="0"),
        _money(name="total_amount", nullable=False, server_default="0"),
        sa.Column("promo_code", sa.String(32), nullable=True),
        sa.Column("influencer_id", sa.String(36), nullable=True),
        _money(name="commission_amount", nullable=False, server_default="0"),
        sa.Column(
            "commission_type", _enum(COMMISSION_TYPES, "commissiontype"), nullable=True
        ),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
        _money(name="commission_fixed_amount", nullable=True),
        sa.Column("needs_review", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("deposit_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("departed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_created", "bookings", ["created_at"])
    op.create_index("idx_bookings_driver", "bookings", ["driver_id"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False
        ),
        sa.Column("payment_type", _enum(PAYMENT_TYPES, "paymenttype"), nullable=False),
        sa.Column("transaction_id", sa.String(64), unique=True, nullable=False),
        sa.Column("order_no", sa.String(32), unique=True, nullable=True),
        sa.Column("external_transaction_id", sa.String(64), nullable=True),
        sa.Column("gateway_order_id", sa.String(64), nullable=True),
        _money(name="amount", nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="TWD"),
        sa.Column(
            "status",
            _enum(PAYMENT_STATUSES, "paymentstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_payments_attempt", "payments", ["booking_id", "payment_type", "id"]
    )
    op.create_index("idx_payments_status", "payments", ["status"])

    # ── commission_records ────────────────────────────────────────────
    op.create_table(
        "commission_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False
        ),
        sa.Column("tier", sa.Integer, nullable=False, server_default="1"),
        sa.Column("influencer_id", sa.String(36), nullable=False),
        sa.Column("promo_code", sa.String(32), nullable=True),
        _money(name="original_price", nullable=False),
        _money(name="discount_amount", nullable=False, server_default="0"),
        _money(name="final_price", nullable=False),
        _money(name="commission_amount", nullable=False, server_default="0"),
        sa.Column(
            "commission_type", _enum(COMMISSION_TYPES, "commissiontype"), nullable=False
        ),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
        _money(name="commission_fixed_amount", nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_commission_booking", "commission_records", ["booking_id"])

    # ── booking_transitions ───────────────────────────────────────────
    op.create_table(
        "booking_transitions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False
        ),
        sa.Column("from_status", _enum(BOOKING_STATUSES, "bookingstatus"), nullable=False),
        sa.Column("to_status", _enum(BOOKING_STATUSES, "bookingstatus"), nullable=False),
        sa.Column("event", _enum(BOOKING_EVENTS, "bookingevent"), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_transitions_booking", "booking_transitions", ["booking_id"])

    # ── review_items ──────────────────────────────────────────────────
    op.create_table(
        "review_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("order_no", sa.String(64), nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_review_items_open", "review_items", ["resolved"])
    op.create_index("idx_review_items_booking", "review_items", ["booking_id"])


def downgrade() -> None:
    op.drop_table("review_items")
    op.drop_table("booking_transitions")
    op.drop_table("commission_records")
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("drivers")
