"""
Domain error taxonomy.

Which of these abort a gateway callback and which are merely recorded for
manual review is decided by the reconciler, not here.
"""

from __future__ import annotations


class CharterError(Exception):
    """Base class for every domain error raised by this package."""


class InvalidTransition(CharterError):
    """Raised when an event is not accepted in the booking's current status."""

    def __init__(self, status, event):
        self.status = status
        self.event = event
        super().__init__(
            f"Cannot apply {getattr(event, 'value', event)} "
            f"in status {getattr(status, 'value', status)}"
        )


class UnrecognizedOrderFormat(CharterError):
    """The order number matches none of the known encodings."""

    def __init__(self, order_no: str):
        self.order_no = order_no
        super().__init__(f"Unrecognized order number format: {order_no!r}")


class AmbiguousReference(CharterError):
    """A truncated booking id matched zero or several recent bookings."""

    def __init__(self, prefix: str, matches: int):
        self.prefix = prefix
        self.matches = matches
        super().__init__(
            f"Booking id prefix {prefix!r} matched {matches} recent bookings"
        )


class BookingNotFound(CharterError):
    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Booking not found: {reference}")


class AmountMismatch(CharterError):
    """Paid amount is lower than what the booking expects."""

    def __init__(self, expected, paid):
        self.expected = expected
        self.paid = paid
        super().__init__(f"Expected at least {expected}, received {paid}")


class SignatureMismatch(CharterError):
    def __init__(self, order_no: str):
        self.order_no = order_no
        super().__init__(f"Check value mismatch for order {order_no}")


class MalformedCallback(CharterError):
    """The callback cannot be parsed; nothing has been touched yet."""


class MissingField(MalformedCallback):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required callback field: {field}")


class OrderNumberTooLong(CharterError):
    def __init__(self, order_no: str, limit: int):
        self.order_no = order_no
        self.limit = limit
        super().__init__(
            f"Order number {order_no!r} exceeds the {limit}-character limit"
        )


class PaymentNotAllowed(CharterError):
    """A payment attempt was requested for a booking that cannot take it."""


class LockTimeout(CharterError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Timed out waiting for lock: {key}")


class NoDriverAvailable(CharterError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"No active driver available for booking {booking_id}")


class EventNotPermitted(CharterError):
    """The event is real but may not be submitted through this channel."""
