"""
SQLAlchemy ORM models.

Tables
------
* ``drivers``             -- dispatchable drivers
* ``bookings``            -- customer reservations (state-machine governed)
* ``payments``            -- one row per payment attempt (deposit / balance)
* ``commission_records``  -- commission snapshots taken at booking time
* ``booking_transitions`` -- audit trail of every status change
* ``review_items``        -- anomalies queued for manual review

Indexes
-------
* ``(booking_id, payment_type, id)`` on ``payments`` for the "latest attempt"
  lookup on every gateway callback.
* Unique ``order_no`` on ``payments`` so the exact issued order number
  resolves without decoding.
* ``created_at`` on ``bookings`` for the recent-booking window.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from .database import Base
from charter.domain.enums import (
    BookingEvent,
    BookingStatus,
    CommissionType,
    PaymentStatus,
    PaymentType,
)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(cls):
    """Store enum *values* (``paid_deposit``) rather than member names."""
    return Enum(
        cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


Money = Numeric(12, 2)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    completed_trips = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("idx_drivers_active", "is_active"),)


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_number = Column(String(32), unique=True, nullable=False)
    customer_id = Column(String(64), nullable=False)
    driver_id = Column(String(36), ForeignKey("drivers.id"), nullable=True)
    status = Column(_enum(BookingStatus), default=BookingStatus.DRAFT, nullable=False)

    vehicle_type = Column(String(16), nullable=True)
    scheduled_start_at = Column(DateTime(timezone=True), nullable=True)
    duration_hours = Column(Integer, default=0, nullable=False)
    overtime_rate = Column(Money, nullable=True)

    # Money
    base_price = Column(Money, default=0, nullable=False)
    deposit_amount = Column(Money, default=0, nullable=False)
    balance_amount = Column(Money, default=0, nullable=False)
    overtime_fee_amount = Column(Money, default=0, nullable=False)
    tip_amount = Column(Money, default=0, nullable=False)
    total_amount = Column(Money, default=0, nullable=False)

    # Promo / commission snapshot (frozen at booking time)
    promo_code = Column(String(32), nullable=True)
    influencer_id = Column(String(36), nullable=True)
    commission_amount = Column(Money, default=0, nullable=False)
    commission_type = Column(_enum(CommissionType), nullable=True)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    commission_fixed_amount = Column(Money, nullable=True)

    needs_review = Column(Boolean, default=False, nullable=False)

    # Lifecycle milestones
    deposit_paid_at = Column(DateTime(timezone=True), nullable=True)
    departed_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    trip_started_at = Column(DateTime(timezone=True), nullable=True)
    trip_ended_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_created", "created_at"),
        Index("idx_bookings_driver", "driver_id"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False)
    payment_type = Column(_enum(PaymentType), nullable=False)
    transaction_id = Column(String(64), unique=True, nullable=False)
    order_no = Column(String(32), unique=True, nullable=True)
    external_transaction_id = Column(String(64), nullable=True)  # gateway auth code
    gateway_order_id = Column(String(64), nullable=True)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="TWD", nullable=False)
    status = Column(_enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    provider = Column(String(32), nullable=False)
    message = Column(Text, nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_payments_attempt", "booking_id", "payment_type", "id"),
        Index("idx_payments_status", "status"),
    )


class CommissionRecordModel(Base):
    __tablename__ = "commission_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False)
    tier = Column(Integer, default=1, nullable=False)
    influencer_id = Column(String(36), nullable=False)
    promo_code = Column(String(32), nullable=True)
    original_price = Column(Money, nullable=False)
    discount_amount = Column(Money, default=0, nullable=False)
    final_price = Column(Money, nullable=False)
    commission_amount = Column(Money, default=0, nullable=False)
    commission_type = Column(_enum(CommissionType), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=True)
    commission_fixed_amount = Column(Money, nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("idx_commission_booking", "booking_id"),)


class BookingTransitionModel(Base):
    __tablename__ = "booking_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False)
    from_status = Column(_enum(BookingStatus), nullable=False)
    to_status = Column(_enum(BookingStatus), nullable=False)
    event = Column(_enum(BookingEvent), nullable=False)
    source = Column(String(16), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_transitions_booking", "booking_id"),)


class ReviewItemModel(Base):
    __tablename__ = "review_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(64), nullable=False)
    booking_id = Column(String(36), nullable=True)
    order_no = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_review_items_open", "resolved"),
        Index("idx_review_items_booking", "booking_id"),
    )
