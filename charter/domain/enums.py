"""Domain enumerations and state-transition rules."""

import enum


class BookingStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    PAID_DEPOSIT = "paid_deposit"
    MATCHED = "matched"
    ASSIGNED = "assigned"  # kept for bookings dispatched before "matched" existed
    DRIVER_CONFIRMED = "driver_confirmed"
    DRIVER_DEPARTED = "driver_departed"
    DRIVER_ARRIVED = "driver_arrived"
    TRIP_STARTED = "trip_started"
    TRIP_ENDED = "trip_ended"
    PENDING_BALANCE = "pending_balance"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class BookingEvent(str, enum.Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    ASSIGN_DRIVER = "assign_driver"
    DRIVER_ACCEPT = "driver_accept"
    DRIVER_REJECT = "driver_reject"
    DRIVER_DEPART = "driver_depart"
    DRIVER_ARRIVE = "driver_arrive"
    START_TRIP = "start_trip"
    END_TRIP = "end_trip"
    BALANCE_PAID = "balance_paid"
    COMPLETE_ORDER = "complete_order"
    CANCEL_ORDER = "cancel_order"
    REFUND_ORDER = "refund_order"


# State machine: maps current status -> events accepted in that status
ALLOWED_EVENTS: dict[BookingStatus, frozenset[BookingEvent]] = {
    BookingStatus.DRAFT: frozenset(
        {BookingEvent.PAYMENT_COMPLETED, BookingEvent.CANCEL_ORDER}
    ),
    BookingStatus.PENDING_PAYMENT: frozenset(
        {
            BookingEvent.PAYMENT_COMPLETED,
            BookingEvent.PAYMENT_FAILED,
            BookingEvent.CANCEL_ORDER,
        }
    ),
    BookingStatus.PAID_DEPOSIT: frozenset(
        {
            BookingEvent.ASSIGN_DRIVER,
            BookingEvent.CANCEL_ORDER,
            BookingEvent.REFUND_ORDER,
        }
    ),
    BookingStatus.MATCHED: frozenset(
        {
            BookingEvent.DRIVER_ACCEPT,
            BookingEvent.DRIVER_REJECT,
            BookingEvent.CANCEL_ORDER,
        }
    ),
    BookingStatus.ASSIGNED: frozenset(
        {
            BookingEvent.DRIVER_ACCEPT,
            BookingEvent.DRIVER_REJECT,
            BookingEvent.CANCEL_ORDER,
        }
    ),
    BookingStatus.DRIVER_CONFIRMED: frozenset(
        {BookingEvent.DRIVER_DEPART, BookingEvent.CANCEL_ORDER}
    ),
    BookingStatus.DRIVER_DEPARTED: frozenset(
        {BookingEvent.DRIVER_ARRIVE, BookingEvent.CANCEL_ORDER}
    ),
    BookingStatus.DRIVER_ARRIVED: frozenset(
        {BookingEvent.START_TRIP, BookingEvent.CANCEL_ORDER}
    ),
    BookingStatus.TRIP_STARTED: frozenset({BookingEvent.END_TRIP}),
    BookingStatus.TRIP_ENDED: frozenset(
        {BookingEvent.BALANCE_PAID, BookingEvent.COMPLETE_ORDER}
    ),
    BookingStatus.PENDING_BALANCE: frozenset(
        {BookingEvent.BALANCE_PAID, BookingEvent.COMPLETE_ORDER}
    ),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset({BookingEvent.REFUND_ORDER}),
    BookingStatus.REFUNDED: frozenset(),
}

# Each event lands in exactly one status, whatever status it left
EVENT_TARGETS: dict[BookingEvent, BookingStatus] = {
    BookingEvent.PAYMENT_COMPLETED: BookingStatus.PAID_DEPOSIT,
    BookingEvent.PAYMENT_FAILED: BookingStatus.PENDING_PAYMENT,
    BookingEvent.ASSIGN_DRIVER: BookingStatus.MATCHED,
    BookingEvent.DRIVER_ACCEPT: BookingStatus.DRIVER_CONFIRMED,
    BookingEvent.DRIVER_REJECT: BookingStatus.PAID_DEPOSIT,
    BookingEvent.DRIVER_DEPART: BookingStatus.DRIVER_DEPARTED,
    BookingEvent.DRIVER_ARRIVE: BookingStatus.DRIVER_ARRIVED,
    BookingEvent.START_TRIP: BookingStatus.TRIP_STARTED,
    BookingEvent.END_TRIP: BookingStatus.TRIP_ENDED,
    BookingEvent.BALANCE_PAID: BookingStatus.PENDING_BALANCE,
    BookingEvent.COMPLETE_ORDER: BookingStatus.COMPLETED,
    BookingEvent.CANCEL_ORDER: BookingStatus.CANCELLED,
    BookingEvent.REFUND_ORDER: BookingStatus.REFUNDED,
}

TERMINAL_STATES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REFUNDED}
)


class PaymentType(str, enum.Enum):
    DEPOSIT = "deposit"
    BALANCE = "balance"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Attempts still waiting on the gateway; superseded by a new attempt
OPEN_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})


class CommissionType(str, enum.Enum):
    FIXED = "fixed"
    PERCENT = "percent"
    BOTH = "both"


class CommissionTier(int, enum.Enum):
    INFLUENCER = 1  # promo-code owner
    DRIVER_REFERRAL = 2  # driver who referred the customer
