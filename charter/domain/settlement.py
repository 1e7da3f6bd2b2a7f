"""
Settlement arithmetic
=====================

Balance settlement
------------------
  expected = balance_amount + overtime_fee_amount
  tip      = paid - expected            (stored only when > 0)
  shortfall = expected - paid           (> 0 is an AmountMismatch, non-blocking)

Overtime
--------
  overtime_fee = ceil(max(0, minutes_over - grace) / 60) x hourly_rate

Commission
----------
Computed from the snapshot taken when the booking was made, never from the
influencer's current configuration:

  fixed   -> commission_fixed_amount
  percent -> final_price x commission_rate / 100
  both    -> fixed + percent

All amounts are ``Decimal`` quantised to 0.01 (ROUND_HALF_UP).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol

from .enums import CommissionType, PaymentType

CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(value) -> Decimal:
    if value is None:
        return ZERO.quantize(CENT)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class _BookingAmounts(Protocol):
    deposit_amount: Optional[Decimal]
    balance_amount: Optional[Decimal]
    overtime_fee_amount: Optional[Decimal]


class _CommissionSnapshot(Protocol):
    commission_amount: Optional[Decimal]
    commission_type: str
    commission_rate: Optional[Decimal]
    commission_fixed_amount: Optional[Decimal]
    final_price: Optional[Decimal]


@dataclass(frozen=True)
class Settlement:
    payment_type: PaymentType
    expected: Decimal
    paid: Decimal
    tip: Decimal = ZERO
    shortfall: Decimal = ZERO

    @property
    def is_short(self) -> bool:
        return self.shortfall > 0


def expected_amount(booking: _BookingAmounts, payment_type: PaymentType) -> Decimal:
    if PaymentType(payment_type) is PaymentType.DEPOSIT:
        return money(booking.deposit_amount)
    return money(booking.balance_amount) + money(booking.overtime_fee_amount)


def derive_settlement(
    booking: _BookingAmounts,
    payment_type: PaymentType,
    paid_amount: Optional[Decimal] = None,
) -> Settlement:
    """Split a received lump sum into what was owed and what was extra.

    A missing *paid_amount* means the gateway did not report one; the
    booking's expected amount is used instead.
    """
    payment_type = PaymentType(payment_type)
    expected = expected_amount(booking, payment_type)
    paid = expected if paid_amount is None else money(paid_amount)

    if payment_type is PaymentType.DEPOSIT:
        return Settlement(payment_type, expected, paid)

    difference = paid - expected
    return Settlement(
        payment_type,
        expected,
        paid,
        tip=difference if difference > 0 else ZERO,
        shortfall=-difference if difference < 0 else ZERO,
    )


def commission_for(snapshot: _CommissionSnapshot) -> Decimal:
    kind = CommissionType(snapshot.commission_type)
    fixed = money(snapshot.commission_fixed_amount)
    percent = money(
        money(snapshot.final_price) * Decimal(str(snapshot.commission_rate or 0)) / 100
    )
    if kind is CommissionType.FIXED:
        return fixed
    if kind is CommissionType.PERCENT:
        return percent
    return fixed + percent


def snapshot_commission(snapshot: _CommissionSnapshot) -> Decimal:
    """Amount fixed at booking time, derived from the stored terms only when none was kept."""
    stored = money(snapshot.commission_amount)
    return stored if stored > 0 else commission_for(snapshot)


def total_commission(snapshots: Iterable[_CommissionSnapshot]) -> Decimal:
    return sum((snapshot_commission(s) for s in snapshots), money(0))


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def overtime_fee(
    scheduled_end: datetime,
    actual_end: datetime,
    hourly_rate,
    grace_minutes: int = 10,
) -> Decimal:
    scheduled_end, actual_end = _aware(scheduled_end), _aware(actual_end)
    minutes_over = math.floor((actual_end - scheduled_end).total_seconds() / 60)
    billable = max(0, minutes_over - grace_minutes)
    if billable <= 0:
        return money(0)
    return money(Decimal(math.ceil(billable / 60)) * Decimal(str(hourly_rate)))
