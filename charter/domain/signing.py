"""
Gateway check value (``Str_Check`` / ``str_check``).

    upperHex(MD5(merchant_id + order_no + amount + send_type + secret))

The same concatenation signs the outbound payment link and authenticates the
inbound callback, using the ``Send_Type`` echoed by the gateway ("0" when it
is omitted).
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

DEFAULT_SEND_TYPE = "0"  # credit card

Amount = Union[str, int, Decimal]


def format_amount(amount: Amount) -> str:
    """Render an amount the way the gateway signs it: ``500.00`` -> ``500``."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        return str(amount)
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def compute_check_value(
    merchant_id: str, order_no: str, amount: Amount, send_type: str, secret: str
) -> str:
    raw = f"{merchant_id}{order_no}{format_amount(amount)}{send_type}{secret}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest().upper()


class CallbackAuthenticator:
    def __init__(self, merchant_id: str, secret: str):
        self.merchant_id = merchant_id
        self.secret = secret

    def sign(self, order_no: str, amount: Amount, send_type: str = DEFAULT_SEND_TYPE) -> str:
        return compute_check_value(
            self.merchant_id, order_no, amount, send_type, self.secret
        )

    def verify(
        self,
        order_no: str,
        amount: Amount,
        check_value: Optional[str],
        send_type: Optional[str] = None,
    ) -> bool:
        if not check_value:
            return False
        expected = self.sign(order_no, amount, send_type or DEFAULT_SEND_TYPE)
        return hmac.compare_digest(expected, check_value.strip().upper())
