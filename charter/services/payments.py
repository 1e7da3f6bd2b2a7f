"""
Payment initiation
==================

Creates a payment attempt for a booking and builds the signed gateway link
the customer app opens.

Each attempt gets its own ``Order_No`` (the gateway refuses numbers it has
seen) and is persisted verbatim on the payment row, so the callback resolves
by exact lookup before any decoding is attempted.  Opening a new attempt
cancels every attempt still waiting on the gateway for the same booking and
payment type; a late success for a cancelled attempt is still honoured by the
reconciler.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charter.config import GatewayConfig
from charter.domain.enums import BookingStatus, PaymentStatus, PaymentType
from charter.domain.errors import BookingNotFound, PaymentNotAllowed
from charter.domain.order_codec import OrderIdentifierCodec
from charter.domain.settlement import expected_amount
from charter.domain.signing import DEFAULT_SEND_TYPE, CallbackAuthenticator, format_amount
from charter.infrastructure.models import PaymentModel
from charter.infrastructure.repositories import BookingRepository, PaymentRepository

logger = logging.getLogger(__name__)

PAYABLE_FROM = {
    PaymentType.DEPOSIT: frozenset(
        {BookingStatus.DRAFT, BookingStatus.PENDING_PAYMENT}
    ),
    PaymentType.BALANCE: frozenset(
        {BookingStatus.TRIP_ENDED, BookingStatus.PENDING_BALANCE}
    ),
}

CREDIT_CARD_PAY_MODE = "2"


@dataclass(frozen=True)
class BuyerInfo:
    name: str = ""
    phone: str = ""
    email: str = ""
    memo: str = ""


@dataclass(frozen=True)
class PaymentLink:
    payment_id: int
    transaction_id: str
    order_no: str
    amount: Decimal
    url: str
    expires_at: datetime
    params: dict[str, str] = field(default_factory=dict)


class PaymentInitiator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        config: GatewayConfig,
        *,
        codec: Optional[OrderIdentifierCodec] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._locks = locks
        self._config = config
        self._codec = codec or OrderIdentifierCodec(config.order_no_max_length)
        self._signer = CallbackAuthenticator(config.merchant_id, config.secret)
        self._clock = clock

    async def initiate(
        self,
        booking_id: str,
        payment_type: PaymentType,
        *,
        buyer: Optional[BuyerInfo] = None,
    ) -> PaymentLink:
        payment_type = PaymentType(payment_type)
        buyer = buyer or BuyerInfo()

        async with self._locks.hold(booking_id):
            async with self._session_factory() as session:
                async with session.begin():
                    booking = await BookingRepository(session).get_for_update(booking_id)
                    if booking is None:
                        raise BookingNotFound(booking_id)

                    status = BookingStatus(booking.status)
                    if status not in PAYABLE_FROM[payment_type]:
                        raise PaymentNotAllowed(
                            f"Booking {booking.booking_number} cannot take a "
                            f"{payment_type.value} payment in status {status.value}"
                        )

                    payments = PaymentRepository(session)
                    if await payments.has_completed(booking.id, payment_type):
                        raise PaymentNotAllowed(
                            f"{payment_type.value} for booking "
                            f"{booking.booking_number} is already paid"
                        )

                    previous = await payments.attempts_for(booking.id, payment_type)
                    superseded = await payments.supersede_open_attempts(
                        booking.id, payment_type
                    )
                    if superseded:
                        logger.info(
                            "Superseded %d open %s attempt(s) for booking %s",
                            superseded,
                            payment_type.value,
                            booking.id,
                        )

                    order_no = self._codec.encode(
                        booking.booking_number, payment_type, retry=bool(previous)
                    )
                    amount = expected_amount(booking, payment_type)
                    payment = await payments.create(
                        PaymentModel(
                            booking_id=booking.id,
                            payment_type=payment_type,
                            transaction_id=uuid.uuid4().hex,
                            order_no=order_no,
                            amount=amount,
                            currency=self._config.currency,
                            status=PaymentStatus.PENDING,
                            provider=self._config.provider_name,
                        )
                    )

        params = self._link_params(order_no, amount, buyer)
        logger.info(
            "Payment link issued: booking=%s type=%s order=%s amount=%s",
            booking_id,
            payment_type.value,
            order_no,
            amount,
        )
        return PaymentLink(
            payment_id=payment.id,
            transaction_id=payment.transaction_id,
            order_no=order_no,
            amount=amount,
            url=f"{self._config.payment_url}?{urlencode(params)}",
            expires_at=self._clock() + timedelta(minutes=self._config.link_ttl_minutes),
            params=params,
        )

    def _link_params(self, order_no: str, amount: Decimal, buyer: BuyerInfo) -> dict[str, str]:
        return_url = self._config.return_url
        if return_url:
            separator = "&" if "?" in return_url else "?"
            return_url = f"{return_url}{separator}{urlencode({'booking_order_no': order_no})}"
        return {
            "Send_Type": DEFAULT_SEND_TYPE,
            "Pay_Mode_No": CREDIT_CARD_PAY_MODE,
            "CustomerId": self._config.merchant_id,
            "Order_No": order_no,
            "Amount": format_amount(amount),
            "TransCode": "00",
            "TransMode": "1",
            "Installment": "0",
            "Buyer_Name": buyer.name,
            "Buyer_Telm": buyer.phone,
            "Buyer_Mail": buyer.email,
            "Buyer_Memo": buyer.memo,
            "Return_url": return_url,
            "Str_Check": self._signer.sign(order_no, amount, DEFAULT_SEND_TYPE),
        }
