"""
Booking lifecycle state machine.

A pure function of ``(status, event)``: the machine holds no state of its
own, performs no I/O and publishes nothing.  Every successful transition
yields a ``TransitionRecord`` that the caller persists and/or turns into
outbound events.

    DRAFT / PENDING_PAYMENT --payment_completed--> PAID_DEPOSIT
        --assign_driver--> MATCHED --driver_accept--> DRIVER_CONFIRMED
        --driver_depart--> DRIVER_DEPARTED --driver_arrive--> DRIVER_ARRIVED
        --start_trip--> TRIP_STARTED --end_trip--> TRIP_ENDED
        --balance_paid--> PENDING_BALANCE --complete_order--> COMPLETED

Terminal statuses (COMPLETED, CANCELLED, REFUNDED) accept nothing except
CANCELLED --refund_order--> REFUNDED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    ALLOWED_EVENTS,
    EVENT_TARGETS,
    TERMINAL_STATES,
    BookingEvent,
    BookingStatus,
)
from .errors import InvalidTransition

_DISPLAY_NAMES = {
    BookingStatus.DRAFT: "Draft",
    BookingStatus.PENDING_PAYMENT: "Awaiting deposit",
    BookingStatus.PAID_DEPOSIT: "Deposit paid",
    BookingStatus.MATCHED: "Driver matched",
    BookingStatus.ASSIGNED: "Driver assigned",
    BookingStatus.DRIVER_CONFIRMED: "Driver confirmed",
    BookingStatus.DRIVER_DEPARTED: "Driver on the way",
    BookingStatus.DRIVER_ARRIVED: "Driver arrived",
    BookingStatus.TRIP_STARTED: "Trip in progress",
    BookingStatus.TRIP_ENDED: "Trip ended",
    BookingStatus.PENDING_BALANCE: "Awaiting balance",
    BookingStatus.COMPLETED: "Completed",
    BookingStatus.CANCELLED: "Cancelled",
    BookingStatus.REFUNDED: "Refunded",
}


@dataclass(frozen=True)
class TransitionRecord:
    booking_id: str
    from_status: BookingStatus
    to_status: BookingStatus
    event: BookingEvent
    at: datetime


class BookingStateMachine:
    """Stateless facade over the ``ALLOWED_EVENTS`` / ``EVENT_TARGETS`` tables."""

    @staticmethod
    def can_transition(status: BookingStatus, event: BookingEvent) -> bool:
        return BookingEvent(event) in ALLOWED_EVENTS[BookingStatus(status)]

    @classmethod
    def transition(
        cls,
        status: BookingStatus,
        event: BookingEvent,
        *,
        booking_id: str,
        at: Optional[datetime] = None,
    ) -> TransitionRecord:
        """Return the record for applying *event* in *status*, else raise."""
        status = BookingStatus(status)
        event = BookingEvent(event)
        if not cls.can_transition(status, event):
            raise InvalidTransition(status, event)
        return TransitionRecord(
            booking_id=booking_id,
            from_status=status,
            to_status=EVENT_TARGETS[event],
            event=event,
            at=at or datetime.now(timezone.utc),
        )

    @staticmethod
    def available_events(status: BookingStatus) -> frozenset[BookingEvent]:
        return ALLOWED_EVENTS[BookingStatus(status)]

    @staticmethod
    def is_terminal(status: BookingStatus) -> bool:
        return BookingStatus(status) in TERMINAL_STATES

    @staticmethod
    def path_between(
        from_status: BookingStatus, to_status: BookingStatus
    ) -> Optional[list[BookingEvent]]:
        """Single-hop path from one status to another, ``[]`` if equal."""
        from_status, to_status = BookingStatus(from_status), BookingStatus(to_status)
        if from_status == to_status:
            return []
        for event in sorted(ALLOWED_EVENTS[from_status], key=lambda e: e.value):
            if EVENT_TARGETS[event] == to_status:
                return [event]
        return None

    @staticmethod
    def display_name(status: BookingStatus) -> str:
        return _DISPLAY_NAMES.get(BookingStatus(status), "Unknown")
