"""
Outbound event dispatch.

Services return domain events once their transaction has committed; the API
layer hands them to an ``EventDispatcher`` in a background task so the HTTP
response (most importantly the gateway acknowledgement) never waits on
notification delivery.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Awaitable, Callable, Iterable

from charter.domain.events import (
    BookingStatusChanged,
    PaymentFailed,
    ReceiptRequested,
    ReviewFlagged,
)
from charter.domain.state_machine import BookingStateMachine

logger = logging.getLogger(__name__)

Handler = Callable[[object], Awaitable[None]]


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def register(self, event_cls: type, handler: Handler) -> None:
        self._handlers[event_cls].append(handler)

    def handlers_for(self, event) -> list[Handler]:
        return list(self._handlers.get(type(event), ()))

    async def dispatch(self, events: Iterable) -> int:
        """Deliver *events* in order.  Returns the number of failed handlers."""
        failures = 0
        for event in events:
            for handler in self.handlers_for(event):
                try:
                    await handler(event)
                except Exception:
                    failures += 1
                    logger.exception(
                        "Handler %r failed for %s (booking %s)",
                        handler,
                        event.event_type,
                        getattr(event, "booking_id", None),
                    )
        return failures


class LoggingNotifier:
    """Stand-in notification channel: writes what would be sent to the log."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    async def on_status_changed(self, event: BookingStatusChanged) -> None:
        self.log.info(
            "Notify booking %s: %s",
            event.booking_id,
            BookingStateMachine.display_name(event.to_status),
        )

    async def on_receipt(self, event: ReceiptRequested) -> None:
        self.log.info(
            "Send %s receipt for booking %s: %s (txn %s)",
            event.payment_type.value,
            event.booking_id,
            event.amount,
            event.transaction_id,
        )

    async def on_payment_failed(self, event: PaymentFailed) -> None:
        self.log.info(
            "Notify booking %s: %s payment failed (%s)",
            event.booking_id,
            event.payment_type.value,
            event.message,
        )

    async def on_review(self, event: ReviewFlagged) -> None:
        self.log.warning(
            "Review item %s for booking %s: %s",
            event.kind,
            event.booking_id,
            event.details.get("message"),
        )

    def attach(self, dispatcher: EventDispatcher) -> EventDispatcher:
        dispatcher.register(BookingStatusChanged, self.on_status_changed)
        dispatcher.register(ReceiptRequested, self.on_receipt)
        dispatcher.register(PaymentFailed, self.on_payment_failed)
        dispatcher.register(ReviewFlagged, self.on_review)
        return dispatcher


def default_dispatcher() -> EventDispatcher:
    return LoggingNotifier().attach(EventDispatcher())
