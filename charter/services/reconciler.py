"""
Settlement Reconciler
=====================

Applies payment-gateway callbacks to bookings exactly once.

The gateway retries every delivery until it sees a 2xx, may deliver the same
callback more than once and in any order, and encodes our order number in
whichever format was current when the payment link was issued.

Pipeline per callback
---------------------
1. Parse the form fields (``MissingField`` / ``MalformedCallback`` -> HTTP 400,
   nothing touched).
2. Authenticate ``str_check`` (reject or log, per ``GatewayConfig``).
3. Locate the booking: the exact issued ``order_no`` first, then the order
   number decoders (current, legacy, compact + recent-booking prefix match).
4. Under the per-booking lock, in one transaction:

   * reload the booking ``FOR UPDATE`` and the latest attempt for the pair
   * failure result  -> attempt marked ``failed``, booking untouched
   * already settled -> duplicate, no writes
   * otherwise derive the settlement, run the state machine, complete the
     attempt, persist booking fields + transition audit rows

Anything that cannot be resolved (bad order number, unknown booking,
signature mismatch in reject mode) is queued in ``review_items`` and still
acknowledged with a 200 so the gateway stops retrying.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charter.config import GatewayConfig, SignaturePolicy
from charter.domain.enums import (
    OPEN_PAYMENT_STATUSES,
    BookingEvent,
    PaymentStatus,
    PaymentType,
)
from charter.domain.errors import (
    AmbiguousReference,
    AmountMismatch,
    BookingNotFound,
    InvalidTransition,
    MalformedCallback,
    MissingField,
    SignatureMismatch,
    UnrecognizedOrderFormat,
)
from charter.domain.events import (
    BookingStatusChanged,
    PaymentFailed,
    PaymentSettled,
    ReceiptRequested,
    ReviewFlagged,
)
from charter.domain.order_codec import OrderIdentifierCodec, ReferenceKind, resolve_prefix
from charter.domain.settlement import (
    Settlement,
    derive_settlement,
    snapshot_commission,
    total_commission,
)
from charter.domain.signing import CallbackAuthenticator
from charter.domain.state_machine import BookingStateMachine, TransitionRecord
from charter.infrastructure.models import BookingModel, PaymentModel
from charter.infrastructure.repositories import (
    BookingRepository,
    CommissionRepository,
    PaymentRepository,
    ReviewRepository,
    TransitionRepository,
)

logger = logging.getLogger(__name__)

SUCCESS_RESULT = "1"

_SETTLEMENT_EVENTS = {
    PaymentType.DEPOSIT: (BookingEvent.PAYMENT_COMPLETED,),
    PaymentType.BALANCE: (BookingEvent.BALANCE_PAID, BookingEvent.COMPLETE_ORDER),
}


class CallbackOutcome(str, enum.Enum):
    SETTLED = "settled"
    DUPLICATE = "duplicate"
    FAILED_RECORDED = "failed_recorded"
    REJECTED = "rejected"
    UNRESOLVED = "unresolved"
    TRANSITION_FLAGGED = "transition_flagged"


@dataclass
class CallbackAck:
    outcome: CallbackOutcome
    body: str = "OK"
    status_code: int = 200
    booking_id: Optional[str] = None
    events: list = field(default_factory=list)


@dataclass(frozen=True)
class GatewayCallback:
    result: str
    order_no: str
    message: str = ""
    gateway_order_id: Optional[str] = None
    raw_amount: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    auth_code: Optional[str] = None
    check_value: Optional[str] = None
    send_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result == SUCCESS_RESULT

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "GatewayCallback":
        def text(*names: str) -> Optional[str]:
            for name in names:
                value = raw.get(name)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return None

        result = text("result")
        if result is None:
            raise MissingField("result")
        order_no = text("e_orderno", "Order_No", "booking_order_no")
        if order_no is None:
            raise MissingField("e_orderno")

        raw_amount = text("e_money")
        paid_amount = None
        if raw_amount is not None:
            try:
                paid_amount = Decimal(raw_amount)
            except InvalidOperation:
                raise MalformedCallback(f"e_money is not a number: {raw_amount!r}") from None
            if not paid_amount.is_finite() or paid_amount < 0:
                raise MalformedCallback(f"e_money is not a valid amount: {raw_amount!r}")

        return cls(
            result=result,
            order_no=order_no,
            message=text("ret_msg") or "",
            gateway_order_id=text("OrderID"),
            raw_amount=raw_amount,
            paid_amount=paid_amount,
            auth_code=text("AvCode", "avcode"),
            check_value=text("str_check", "Str_Check"),
            send_type=text("Send_Type", "send_type"),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SettlementReconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        config: GatewayConfig,
        *,
        codec: Optional[OrderIdentifierCodec] = None,
        authenticator: Optional[CallbackAuthenticator] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._config = config
        self._codec = codec or OrderIdentifierCodec(config.order_no_max_length)
        self._authenticator = authenticator or CallbackAuthenticator(
            config.merchant_id, config.secret
        )
        self._clock = clock

    # ── Public API ────────────────────────────────────────────────────

    async def handle_callback(self, raw: Mapping[str, Any]) -> CallbackAck:
        """Apply one gateway delivery.  Raises only ``MalformedCallback``."""
        callback = GatewayCallback.parse(raw)
        logger.info(
            "Gateway callback order=%s result=%s amount=%s gateway_order=%s",
            callback.order_no,
            callback.result,
            callback.raw_amount,
            callback.gateway_order_id,
        )

        pending_flags: list[ReviewFlagged] = []
        if not self._authenticator.verify(
            callback.order_no,
            callback.raw_amount or "",
            callback.check_value,
            callback.send_type,
        ):
            flag = self._anomaly(
                SignatureMismatch(callback.order_no),
                None,
                order_no=callback.order_no,
                policy=self._config.signature_policy.value,
            )
            if self._config.signature_policy is SignaturePolicy.REJECT:
                logger.warning("Rejected callback %s: check value mismatch", callback.order_no)
                await self._flag_detached(flag, callback.order_no)
                return CallbackAck(
                    CallbackOutcome.REJECTED, body="Signature mismatch", events=[flag]
                )
            logger.warning(
                "Check value mismatch for %s; processing anyway (policy=log)",
                callback.order_no,
            )
            pending_flags.append(flag)

        try:
            booking_id, payment_type = await self._locate(callback.order_no)
        except (UnrecognizedOrderFormat, AmbiguousReference, BookingNotFound) as exc:
            logger.warning("Unresolvable callback %s: %s", callback.order_no, exc)
            flag = self._anomaly(exc, None, order_no=callback.order_no)
            await self._flag_detached(flag, callback.order_no)
            for pending in pending_flags:
                await self._flag_detached(pending, callback.order_no)
            return CallbackAck(
                CallbackOutcome.UNRESOLVED,
                body="Order not found",
                events=pending_flags + [flag],
            )

        async with self._locks.hold(booking_id):
            async with self._session_factory() as session:
                async with session.begin():
                    ack = await self._apply(
                        session, booking_id, payment_type, callback, pending_flags
                    )

        for event in ack.events:
            if isinstance(event, BookingStatusChanged):
                logger.info(
                    "Booking %s: %s -> %s (%s)",
                    event.booking_id,
                    event.from_status.value,
                    event.to_status.value,
                    event.event.value,
                )
        return ack

    # ── Resolution ────────────────────────────────────────────────────

    async def _locate(self, order_no: str) -> tuple[str, PaymentType]:
        async with self._session_factory() as session:
            issued = await PaymentRepository(session).get_by_order_no(order_no)
            if issued is not None:
                return issued.booking_id, PaymentType(issued.payment_type)

            decoded = self._codec.decode(order_no)
            bookings = BookingRepository(session)
            if decoded.kind is ReferenceKind.ID_PREFIX:
                recent = await bookings.recent_ids(self._config.recent_booking_window)
                return resolve_prefix(decoded.reference, recent), decoded.payment_type

            if decoded.kind is ReferenceKind.BOOKING_NUMBER:
                booking = await bookings.get_by_number(decoded.reference)
            else:
                booking = await bookings.get_by_id(decoded.reference)
            if booking is None:
                raise BookingNotFound(decoded.reference)
            return booking.id, decoded.payment_type

    # ── Locked section ────────────────────────────────────────────────

    async def _apply(
        self,
        session: AsyncSession,
        booking_id: str,
        payment_type: PaymentType,
        callback: GatewayCallback,
        flags: list[ReviewFlagged],
    ) -> CallbackAck:
        booking = await BookingRepository(session).get_for_update(booking_id)
        if booking is None:
            # Resolved a moment ago; only a concurrent hard delete gets here.
            flag = self._anomaly(BookingNotFound(booking_id), None, order_no=callback.order_no)
            await self._persist_flags(session, [flag], callback.order_no)
            return CallbackAck(CallbackOutcome.UNRESOLVED, body="Order not found", events=[flag])

        payments = PaymentRepository(session)
        payment = await payments.get_by_order_no(callback.order_no)
        if payment is None:
            payment = await payments.latest_for(booking.id, payment_type)

        if not callback.succeeded:
            ack = await self._record_failure(booking, payment, payment_type, callback)
        elif await payments.has_completed(booking.id, payment_type):
            logger.warning(
                "Duplicate callback for booking %s (%s) order %s; already settled",
                booking.id,
                payment_type.value,
                callback.order_no,
            )
            ack = CallbackAck(CallbackOutcome.DUPLICATE, booking_id=booking.id)
        else:
            ack = await self._settle(session, booking, payment, payment_type, callback)

        ack.events = flags + ack.events
        await self._persist_flags(
            session,
            [e for e in ack.events if isinstance(e, ReviewFlagged)],
            callback.order_no,
        )
        return ack

    async def _record_failure(
        self,
        booking: BookingModel,
        payment: Optional[PaymentModel],
        payment_type: PaymentType,
        callback: GatewayCallback,
    ) -> CallbackAck:
        now = self._clock()
        if payment is not None and PaymentStatus(payment.status) in OPEN_PAYMENT_STATUSES:
            payment.status = PaymentStatus.FAILED
            payment.message = callback.message
            payment.processed_at = now
            logger.info(
                "Payment %s for booking %s failed: %s",
                payment.id,
                booking.id,
                callback.message,
            )
        else:
            logger.info(
                "Failure callback for booking %s (%s) with no open attempt",
                booking.id,
                payment_type.value,
            )
        # The booking stays payable so the customer can retry.
        return CallbackAck(
            CallbackOutcome.FAILED_RECORDED,
            body="Payment failed",
            booking_id=booking.id,
            events=[
                PaymentFailed(
                    booking_id=booking.id,
                    payment_id=str(payment.id) if payment is not None else None,
                    payment_type=payment_type,
                    message=callback.message,
                    occurred_at=now,
                )
            ],
        )

    async def _settle(
        self,
        session: AsyncSession,
        booking: BookingModel,
        payment: Optional[PaymentModel],
        payment_type: PaymentType,
        callback: GatewayCallback,
    ) -> CallbackAck:
        now = self._clock()
        events: list = []
        settlement = derive_settlement(booking, payment_type, callback.paid_amount)
        if settlement.is_short:
            logger.warning(
                "Booking %s %s underpaid: expected %s, received %s",
                booking.id,
                payment_type.value,
                settlement.expected,
                settlement.paid,
            )
            events.append(
                self._anomaly(
                    AmountMismatch(settlement.expected, settlement.paid),
                    booking.id,
                    order_no=callback.order_no,
                    payment_type=payment_type.value,
                    expected=str(settlement.expected),
                    paid=str(settlement.paid),
                )
            )

        records: list[TransitionRecord] = []
        try:
            records = self._plan(booking, payment_type, now)
        except InvalidTransition as exc:
            logger.warning(
                "Booking %s settled %s in status %s; left for manual review",
                booking.id,
                payment_type.value,
                booking.status,
            )
            booking.needs_review = True
            events.append(
                self._anomaly(
                    exc,
                    booking.id,
                    order_no=callback.order_no,
                    status=exc.status.value,
                    event=exc.event.value,
                )
            )

        payment = await self._complete_payment(
            session, booking, payment, payment_type, settlement, callback, now
        )
        if payment_type is PaymentType.BALANCE and settlement.tip > 0:
            booking.tip_amount = settlement.tip

        if records:
            await self._apply_to_booking(session, booking, payment_type, now)
            transitions = TransitionRepository(session)
            for record in records:
                await transitions.record(record, source="gateway")
            booking.status = records[-1].to_status
            events.extend(BookingStatusChanged.from_record(r) for r in records)

        events.append(
            PaymentSettled(
                booking_id=booking.id,
                payment_id=str(payment.id),
                payment_type=payment_type,
                amount=settlement.paid,
                tip_amount=settlement.tip,
                occurred_at=now,
            )
        )
        events.append(
            ReceiptRequested(
                booking_id=booking.id,
                payment_type=payment_type,
                transaction_id=payment.transaction_id,
                amount=settlement.paid,
                occurred_at=now,
            )
        )
        logger.info(
            "Settled %s for booking %s: paid=%s tip=%s",
            payment_type.value,
            booking.id,
            settlement.paid,
            settlement.tip,
        )
        outcome = CallbackOutcome.SETTLED if records else CallbackOutcome.TRANSITION_FLAGGED
        return CallbackAck(outcome, booking_id=booking.id, events=events)

    @staticmethod
    def _plan(
        booking: BookingModel, payment_type: PaymentType, now: datetime
    ) -> list[TransitionRecord]:
        """All transitions for the settlement, or ``InvalidTransition``."""
        records, status = [], booking.status
        for event in _SETTLEMENT_EVENTS[payment_type]:
            record = BookingStateMachine.transition(
                status, event, booking_id=booking.id, at=now
            )
            records.append(record)
            status = record.to_status
        return records

    async def _complete_payment(
        self,
        session: AsyncSession,
        booking: BookingModel,
        payment: Optional[PaymentModel],
        payment_type: PaymentType,
        settlement: Settlement,
        callback: GatewayCallback,
        now: datetime,
    ) -> PaymentModel:
        if payment is None:
            payment = await PaymentRepository(session).create(
                PaymentModel(
                    booking_id=booking.id,
                    payment_type=payment_type,
                    transaction_id=uuid.uuid4().hex,
                    order_no=callback.order_no,
                    amount=settlement.paid,
                    currency=self._config.currency,
                    status=PaymentStatus.PENDING,
                    provider=self._config.provider_name,
                )
            )
        payment.status = PaymentStatus.COMPLETED
        payment.amount = settlement.paid
        payment.external_transaction_id = callback.auth_code
        payment.gateway_order_id = callback.gateway_order_id
        payment.message = callback.message or None
        payment.confirmed_at = now
        payment.processed_at = now
        return payment

    async def _apply_to_booking(
        self,
        session: AsyncSession,
        booking: BookingModel,
        payment_type: PaymentType,
        now: datetime,
    ) -> None:
        if payment_type is PaymentType.DEPOSIT:
            booking.deposit_paid_at = now
            return

        booking.completed_at = now

        snapshots = await CommissionRepository(session).for_booking(booking.id)
        for snapshot in snapshots:
            if snapshot.settled_at is None:
                snapshot.commission_amount = snapshot_commission(snapshot)
                snapshot.settled_at = now
        commission_total = total_commission(snapshots)
        if commission_total > 0:
            booking.commission_amount = commission_total

    # ── Review queue ──────────────────────────────────────────────────

    def _anomaly(
        self, exc: Exception, booking_id: Optional[str], **details: Any
    ) -> ReviewFlagged:
        return ReviewFlagged(
            kind=type(exc).__name__,
            booking_id=booking_id,
            details={"message": str(exc), **details},
            occurred_at=self._clock(),
        )

    async def _persist_flags(
        self, session: AsyncSession, flags: list[ReviewFlagged], order_no: str
    ) -> None:
        reviews = ReviewRepository(session)
        for flag in flags:
            await reviews.flag(
                flag.kind,
                booking_id=flag.booking_id,
                order_no=order_no,
                details=flag.details,
            )

    async def _flag_detached(self, flag: ReviewFlagged, order_no: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await self._persist_flags(session, [flag], order_no)
