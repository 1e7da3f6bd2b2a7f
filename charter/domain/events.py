"""
Booking domain events.

Returned by the services after their transaction commits and handed to
``charter.services.outbox.EventDispatcher``; nothing here knows who listens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .enums import BookingEvent, BookingStatus, PaymentType


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BookingStatusChanged:
    booking_id: str
    from_status: BookingStatus
    to_status: BookingStatus
    event: BookingEvent
    occurred_at: datetime = field(default_factory=_now)

    event_type = "booking.status.changed"

    @classmethod
    def from_record(cls, record) -> "BookingStatusChanged":
        return cls(
            booking_id=record.booking_id,
            from_status=record.from_status,
            to_status=record.to_status,
            event=record.event,
            occurred_at=record.at,
        )


@dataclass(frozen=True)
class PaymentSettled:
    booking_id: str
    payment_id: str
    payment_type: PaymentType
    amount: Decimal
    tip_amount: Decimal
    occurred_at: datetime = field(default_factory=_now)

    event_type = "payment.completed"


@dataclass(frozen=True)
class PaymentFailed:
    booking_id: str
    payment_id: Optional[str]
    payment_type: PaymentType
    message: str
    occurred_at: datetime = field(default_factory=_now)

    event_type = "payment.failed"


@dataclass(frozen=True)
class ReceiptRequested:
    """Ask the notification collaborator to mail a payment receipt."""

    booking_id: str
    payment_type: PaymentType
    transaction_id: str
    amount: Decimal
    occurred_at: datetime = field(default_factory=_now)

    event_type = "receipt.requested"


@dataclass(frozen=True)
class ReviewFlagged:
    kind: str
    booking_id: Optional[str]
    details: dict[str, Any]
    occurred_at: datetime = field(default_factory=_now)

    event_type = "review.flagged"
