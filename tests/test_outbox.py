"""Event dispatcher tests."""

import logging
from decimal import Decimal

import pytest

from charter.domain.enums import BookingEvent, BookingStatus, PaymentType
from charter.domain.events import BookingStatusChanged, ReceiptRequested
from charter.services.outbox import EventDispatcher, default_dispatcher


def _status_changed():
    return BookingStatusChanged(
        booking_id="b-1",
        from_status=BookingStatus.PENDING_PAYMENT,
        to_status=BookingStatus.PAID_DEPOSIT,
        event=BookingEvent.PAYMENT_COMPLETED,
    )


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_handlers_run_in_registration_order(self):
        calls = []
        dispatcher = EventDispatcher()

        async def first(event):
            calls.append(("first", event.booking_id))

        async def second(event):
            calls.append(("second", event.booking_id))

        dispatcher.register(BookingStatusChanged, first)
        dispatcher.register(BookingStatusChanged, second)

        assert await dispatcher.dispatch([_status_changed()]) == 0
        assert calls == [("first", "b-1"), ("second", "b-1")]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, caplog):
        calls = []
        dispatcher = EventDispatcher()

        async def broken(event):
            raise ConnectionError("mail server down")

        async def working(event):
            calls.append(event.event_type)

        dispatcher.register(BookingStatusChanged, broken)
        dispatcher.register(BookingStatusChanged, working)

        with caplog.at_level(logging.ERROR, logger="charter.services.outbox"):
            failures = await dispatcher.dispatch([_status_changed()])

        assert failures == 1
        assert calls == ["booking.status.changed"]
        assert "booking.status.changed" in caplog.text

    @pytest.mark.asyncio
    async def test_unhandled_events_are_ignored(self):
        assert await EventDispatcher().dispatch([_status_changed()]) == 0


class TestLoggingNotifier:
    @pytest.mark.asyncio
    async def test_receipt_is_logged(self, caplog):
        event = ReceiptRequested(
            booking_id="b-1",
            payment_type=PaymentType.BALANCE,
            transaction_id="txn-1",
            amount=Decimal("1500.00"),
        )

        with caplog.at_level(logging.INFO, logger="charter.services.outbox"):
            await default_dispatcher().dispatch([event, _status_changed()])

        assert "Send balance receipt for booking b-1" in caplog.text
        assert "Deposit paid" in caplog.text
