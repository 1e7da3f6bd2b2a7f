"""
Gateway order-number encoding
=============================

The gateway caps ``Order_No`` at 25 characters and refuses a number it has
already seen, so every payment attempt needs a fresh, short identifier that
still leads back to the booking when the callback arrives.

Current format (issued today)
-----------------------------
* ``BK<unixMillis>-DEPOSIT`` / ``BK<unixMillis>-BALANCE``  (23 chars)
* retry of a failed attempt: ``BK<unixMillis>-D<6 random>`` / ``-B<6 random>``

Accepted on decode, in priority order
-------------------------------------
1. ``BK...``                     -- booking number, optional suffix (none => deposit)
2. ``BOOKING_<id>_<type>_<ts>``  -- full booking id
3. 25 chars, no known prefix     -- compact: truncated booking id + D/B + filler

   * ``D``/``B`` at offset 16: 16-char id + type + 8-char suffix
   * ``D``/``B`` at offset 20: 20-char id + type + 4-char suffix

   The truncated id dropped the tail of the UUID, so it only resolves by
   prefix match against recent bookings (``resolve_prefix``).
"""

from __future__ import annotations

import enum
import re
import secrets
import string
from dataclasses import dataclass
from typing import Iterable

from .enums import PaymentType
from .errors import AmbiguousReference, OrderNumberTooLong, UnrecognizedOrderFormat

ORDER_NO_MAX_LENGTH = 25
COMPACT_LENGTH = 25

BOOKING_NUMBER_PREFIX = "BK"
LEGACY_PREFIX = "BOOKING_"

_SUFFIXES = {
    PaymentType.DEPOSIT: "-DEPOSIT",
    PaymentType.BALANCE: "-BALANCE",
}
_TYPE_MARKERS = {"D": PaymentType.DEPOSIT, "B": PaymentType.BALANCE}
_MARKER_OF = {v: k for k, v in _TYPE_MARKERS.items()}

_RETRY_ALPHABET = string.ascii_uppercase + string.digits
_RETRY_TOKEN_LENGTH = 6
_RETRY_SUFFIX = re.compile(r"-([DB])[0-9A-Z]{%d}$" % _RETRY_TOKEN_LENGTH)
_HEX = re.compile(r"^[0-9a-fA-F]+$")

# offset of the type marker -> (id length, hyphen grouping of the id prefix)
_COMPACT_LAYOUTS = (
    (16, (8, 4, 4)),
    (20, (8, 4, 4, 4)),
)


class ReferenceKind(str, enum.Enum):
    BOOKING_NUMBER = "booking_number"
    BOOKING_ID = "booking_id"
    ID_PREFIX = "id_prefix"


@dataclass(frozen=True)
class DecodedOrder:
    reference: str
    payment_type: PaymentType
    kind: ReferenceKind


class OrderIdentifierCodec:
    def __init__(self, max_length: int = ORDER_NO_MAX_LENGTH):
        self.max_length = max_length

    # ── Encoding ──────────────────────────────────────────────────────

    def encode(
        self, booking_number: str, payment_type: PaymentType, *, retry: bool = False
    ) -> str:
        """Order number for a new attempt; *retry* adds a random disambiguator."""
        payment_type = PaymentType(payment_type)
        if retry:
            token = "".join(
                secrets.choice(_RETRY_ALPHABET) for _ in range(_RETRY_TOKEN_LENGTH)
            )
            order_no = f"{booking_number}-{_MARKER_OF[payment_type]}{token}"
        else:
            order_no = f"{booking_number}{_SUFFIXES[payment_type]}"
        if len(order_no) > self.max_length:
            raise OrderNumberTooLong(order_no, self.max_length)
        return order_no

    # ── Decoding ──────────────────────────────────────────────────────

    def decode(self, order_no: str) -> DecodedOrder:
        order_no = (order_no or "").strip()
        if order_no.startswith(BOOKING_NUMBER_PREFIX):
            return self._decode_booking_number(order_no)
        if order_no.startswith(LEGACY_PREFIX):
            return self._decode_legacy(order_no)
        if len(order_no) == COMPACT_LENGTH:
            return self._decode_compact(order_no)
        raise UnrecognizedOrderFormat(order_no)

    def booking_number_of(self, order_no: str) -> str:
        """Strip any payment suffix from a ``BK`` order number."""
        return self._decode_booking_number(order_no).reference

    @staticmethod
    def _decode_booking_number(order_no: str) -> DecodedOrder:
        for payment_type, suffix in _SUFFIXES.items():
            if order_no.endswith(suffix):
                return DecodedOrder(
                    order_no[: -len(suffix)], payment_type, ReferenceKind.BOOKING_NUMBER
                )
        match = _RETRY_SUFFIX.search(order_no)
        if match:
            return DecodedOrder(
                order_no[: match.start()],
                _TYPE_MARKERS[match.group(1)],
                ReferenceKind.BOOKING_NUMBER,
            )
        # Numbers issued before suffixes existed were always deposits
        return DecodedOrder(order_no, PaymentType.DEPOSIT, ReferenceKind.BOOKING_NUMBER)

    @staticmethod
    def _decode_legacy(order_no: str) -> DecodedOrder:
        parts = order_no.split("_")
        if len(parts) < 3 or not parts[1]:
            raise UnrecognizedOrderFormat(order_no)
        try:
            payment_type = PaymentType(parts[2].lower())
        except ValueError:
            raise UnrecognizedOrderFormat(order_no) from None
        return DecodedOrder(parts[1], payment_type, ReferenceKind.BOOKING_ID)

    @staticmethod
    def _decode_compact(order_no: str) -> DecodedOrder:
        for offset, groups in _COMPACT_LAYOUTS:
            marker = order_no[offset]
            if marker not in _TYPE_MARKERS:
                continue
            truncated = order_no[:offset]
            if not _HEX.match(truncated):
                raise UnrecognizedOrderFormat(order_no)
            return DecodedOrder(
                rehyphenate(truncated, groups),
                _TYPE_MARKERS[marker],
                ReferenceKind.ID_PREFIX,
            )
        raise UnrecognizedOrderFormat(order_no)


def rehyphenate(truncated: str, groups: tuple[int, ...]) -> str:
    """``1d02b271d3a24db1`` -> ``1d02b271-d3a2-4db1-`` (UUID prefix form)."""
    parts, pos = [], 0
    for size in groups:
        parts.append(truncated[pos : pos + size])
        pos += size
    return "-".join(parts) + "-"


def resolve_prefix(prefix: str, candidate_ids: Iterable[str]) -> str:
    """Return the single candidate id starting with *prefix*, else raise."""
    needle = prefix.lower()
    matches = [c for c in candidate_ids if str(c).lower().startswith(needle)]
    if len(matches) != 1:
        raise AmbiguousReference(prefix, len(matches))
    return matches[0]
