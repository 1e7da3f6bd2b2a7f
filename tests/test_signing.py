"""Unit tests for the gateway check value."""

import hashlib
from decimal import Decimal

import pytest

from charter.domain.signing import CallbackAuthenticator, compute_check_value, format_amount


@pytest.fixture
def authenticator():
    return CallbackAuthenticator("478A0001", "test-api-key")


class TestCheckValue:
    def test_matches_documented_concatenation(self):
        raw = "478A0001BK1700000000000-DEPOSIT5000test-api-key"
        expected = hashlib.md5(raw.encode("utf-8")).hexdigest().upper()
        assert compute_check_value(
            "478A0001", "BK1700000000000-DEPOSIT", "500", "0", "test-api-key"
        ) == expected

    def test_is_upper_hex(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500")
        assert len(value) == 32
        assert value == value.upper()

    @pytest.mark.parametrize(
        "amount, rendered",
        [("500", "500"), ("500.00", "500"), (Decimal("1500.0"), "1500"), (300, "300"),
         ("12.50", "12.5"), ("abc", "abc")],
    )
    def test_amount_formatting(self, amount, rendered):
        assert format_amount(amount) == rendered


class TestVerify:
    def test_valid_value_verifies(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500")
        assert authenticator.verify("BK1700000000000-DEPOSIT", "500", value)

    def test_decimal_amount_signs_like_integer(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500")
        assert authenticator.verify("BK1700000000000-DEPOSIT", "500.00", value)

    def test_lowercase_value_verifies(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500").lower()
        assert authenticator.verify("BK1700000000000-DEPOSIT", "500", value)

    def test_tampered_amount_fails(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500")
        assert not authenticator.verify("BK1700000000000-DEPOSIT", "5", value)

    def test_other_send_type_fails(self, authenticator):
        value = authenticator.sign("BK1700000000000-DEPOSIT", "500", send_type="0")
        assert not authenticator.verify("BK1700000000000-DEPOSIT", "500", value, send_type="1")

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_value_fails(self, authenticator, value):
        assert not authenticator.verify("BK1700000000000-DEPOSIT", "500", value)
