"""
Trip lifecycle events from drivers, customers and operators.

Every event goes through the same per-booking lock and state machine as the
gateway callbacks, so a driver tapping "arrived" can never interleave with a
deposit settlement on the same booking.  Payment events are not accepted
here; only the reconciler moves a booking on money.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charter.domain.enums import BookingEvent, BookingStatus
from charter.domain.errors import BookingNotFound, EventNotPermitted, NoDriverAvailable
from charter.domain.events import BookingStatusChanged
from charter.domain.settlement import money, overtime_fee
from charter.domain.state_machine import BookingStateMachine
from charter.infrastructure.models import BookingModel
from charter.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    TransitionRepository,
)
from charter.services.dispatch import DispatchSelector

logger = logging.getLogger(__name__)

GATEWAY_ONLY_EVENTS = frozenset(
    {
        BookingEvent.PAYMENT_COMPLETED,
        BookingEvent.PAYMENT_FAILED,
        BookingEvent.BALANCE_PAID,
    }
)

EVENT_SOURCES = {
    BookingEvent.ASSIGN_DRIVER: "dispatch",
    BookingEvent.DRIVER_ACCEPT: "driver",
    BookingEvent.DRIVER_REJECT: "driver",
    BookingEvent.DRIVER_DEPART: "driver",
    BookingEvent.DRIVER_ARRIVE: "driver",
    BookingEvent.START_TRIP: "driver",
    BookingEvent.END_TRIP: "driver",
    BookingEvent.CANCEL_ORDER: "customer",
    BookingEvent.COMPLETE_ORDER: "admin",
    BookingEvent.REFUND_ORDER: "admin",
}

# Milestone column stamped when the event is applied
_TIMESTAMPS = {
    BookingEvent.DRIVER_DEPART: "departed_at",
    BookingEvent.DRIVER_ARRIVE: "arrived_at",
    BookingEvent.START_TRIP: "trip_started_at",
    BookingEvent.END_TRIP: "trip_ended_at",
    BookingEvent.COMPLETE_ORDER: "completed_at",
    BookingEvent.CANCEL_ORDER: "cancelled_at",
}


@dataclass
class TripEventResult:
    booking_id: str
    from_status: BookingStatus
    to_status: BookingStatus
    driver_id: Optional[str] = None
    overtime_fee: Decimal = Decimal("0.00")
    events: list = field(default_factory=list)


class TripEventService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        *,
        selector: Optional[DispatchSelector] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        overtime_grace_minutes: int = 10,
        default_overtime_rate: int = 800,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._selector = selector or DispatchSelector()
        self._clock = clock
        self._grace = overtime_grace_minutes
        self._default_rate = default_overtime_rate

    async def apply(
        self,
        booking_id: str,
        event: BookingEvent,
        *,
        driver_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TripEventResult:
        """Apply *event* to the booking.  Raises ``InvalidTransition`` when refused."""
        event = BookingEvent(event)
        if event in GATEWAY_ONLY_EVENTS:
            raise EventNotPermitted(
                f"{event.value} is applied by the payment gateway callback only"
            )

        async with self._locks.hold(booking_id):
            async with self._session_factory() as session:
                async with session.begin():
                    booking = await BookingRepository(session).get_for_update(booking_id)
                    if booking is None:
                        raise BookingNotFound(booking_id)

                    now = self._clock()
                    record = BookingStateMachine.transition(
                        booking.status, event, booking_id=booking.id, at=now
                    )
                    await self._apply_side_effects(session, booking, event, driver_id, now)

                    booking.status = record.to_status
                    await TransitionRepository(session).record(
                        record, source=EVENT_SOURCES[event]
                    )

        if reason:
            logger.info("Booking %s %s: %s", booking_id, event.value, reason)
        logger.info(
            "Booking %s: %s -> %s (%s)",
            booking_id,
            record.from_status.value,
            record.to_status.value,
            event.value,
        )
        return TripEventResult(
            booking_id=booking.id,
            from_status=record.from_status,
            to_status=record.to_status,
            driver_id=booking.driver_id,
            overtime_fee=money(booking.overtime_fee_amount),
            events=[BookingStatusChanged.from_record(record)],
        )

    async def _apply_side_effects(
        self,
        session: AsyncSession,
        booking: BookingModel,
        event: BookingEvent,
        driver_id: Optional[str],
        now: datetime,
    ) -> None:
        column = _TIMESTAMPS.get(event)
        if column:
            setattr(booking, column, now)

        if event is BookingEvent.ASSIGN_DRIVER:
            booking.driver_id = await self._pick_driver(session, booking, driver_id)
        elif event is BookingEvent.DRIVER_REJECT:
            logger.info("Driver %s rejected booking %s", booking.driver_id, booking.id)
            booking.driver_id = None
        elif event is BookingEvent.END_TRIP:
            booking.overtime_fee_amount = self._overtime(booking, now)
            if booking.driver_id:
                driver = await DriverRepository(session).get_by_id(booking.driver_id)
                if driver is not None:
                    driver.completed_trips += 1

    async def _pick_driver(
        self, session: AsyncSession, booking: BookingModel, driver_id: Optional[str]
    ) -> str:
        if driver_id:
            driver = await DriverRepository(session).get_by_id(driver_id)
            if driver is None or not driver.is_active:
                raise NoDriverAvailable(booking.id)
            return driver.id

        selected, ok = await self._selector.select(session, booking.id)
        if not ok:
            raise NoDriverAvailable(booking.id)
        return selected

    def _overtime(self, booking: BookingModel, ended_at: datetime) -> Decimal:
        if booking.scheduled_start_at is None or not booking.duration_hours:
            return money(0)
        scheduled_end = booking.scheduled_start_at + timedelta(hours=booking.duration_hours)
        rate = booking.overtime_rate if booking.overtime_rate is not None else self._default_rate
        fee = overtime_fee(scheduled_end, ended_at, rate, self._grace)
        if fee > 0:
            logger.info("Booking %s overtime fee %s", booking.id, fee)
        return fee
