"""Unit tests for gateway order-number encoding and decoding."""

import re

import pytest

from charter.domain.enums import PaymentType
from charter.domain.errors import (
    AmbiguousReference,
    OrderNumberTooLong,
    UnrecognizedOrderFormat,
)
from charter.domain.order_codec import (
    OrderIdentifierCodec,
    ReferenceKind,
    rehyphenate,
    resolve_prefix,
)


@pytest.fixture
def codec():
    return OrderIdentifierCodec()


class TestEncode:
    def test_deposit_order_number(self, codec):
        assert codec.encode("BK1700000000000", PaymentType.DEPOSIT) == "BK1700000000000-DEPOSIT"

    def test_balance_order_number(self, codec):
        assert codec.encode("BK1700000000000", PaymentType.BALANCE) == "BK1700000000000-BALANCE"

    def test_canonical_numbers_fit_gateway_limit(self, codec):
        assert len(codec.encode("BK1700000000000", PaymentType.DEPOSIT)) <= 25

    def test_retry_numbers_are_fresh_and_short(self, codec):
        first = codec.encode("BK1700000000000", PaymentType.BALANCE, retry=True)
        second = codec.encode("BK1700000000000", PaymentType.BALANCE, retry=True)
        assert re.fullmatch(r"BK1700000000000-B[0-9A-Z]{6}", first)
        assert first != second
        assert len(first) <= 25

    def test_too_long_is_refused(self, codec):
        with pytest.raises(OrderNumberTooLong):
            codec.encode("BK17000000000001234567", PaymentType.DEPOSIT)


class TestDecode:
    @pytest.mark.parametrize("payment_type", list(PaymentType))
    @pytest.mark.parametrize("retry", [False, True])
    def test_encoded_numbers_decode_back(self, codec, payment_type, retry):
        order_no = codec.encode("BK1700000000000", payment_type, retry=retry)
        decoded = codec.decode(order_no)
        assert decoded.reference == "BK1700000000000"
        assert decoded.payment_type == payment_type
        assert decoded.kind == ReferenceKind.BOOKING_NUMBER

    def test_bare_booking_number_is_a_deposit(self, codec):
        decoded = codec.decode("BK1700000000000")
        assert decoded.reference == "BK1700000000000"
        assert decoded.payment_type == PaymentType.DEPOSIT

    def test_legacy_booking_id_format(self, codec):
        decoded = codec.decode(
            "BOOKING_1d02b271-d3a2-4db1-9a55-0f6e8c1f2a3b_balance_1700000000000"
        )
        assert decoded.reference == "1d02b271-d3a2-4db1-9a55-0f6e8c1f2a3b"
        assert decoded.payment_type == PaymentType.BALANCE
        assert decoded.kind == ReferenceKind.BOOKING_ID

    def test_legacy_format_with_unknown_type_is_refused(self, codec):
        with pytest.raises(UnrecognizedOrderFormat):
            codec.decode("BOOKING_abc_refund_1700000000000")

    def test_legacy_format_too_few_parts_is_refused(self, codec):
        with pytest.raises(UnrecognizedOrderFormat):
            codec.decode("BOOKING_abc")

    def test_compact_sixteen_char_id(self, codec):
        decoded = codec.decode("d9a63c27914d44deB70517422")
        assert decoded.reference == "d9a63c27-914d-44de-"
        assert decoded.payment_type == PaymentType.BALANCE
        assert decoded.kind == ReferenceKind.ID_PREFIX

    def test_compact_twenty_char_id(self, codec):
        decoded = codec.decode("6ee49212c05e4ccf9093D8737")
        assert decoded.reference == "6ee49212-c05e-4ccf-9093-"
        assert decoded.payment_type == PaymentType.DEPOSIT

    def test_compact_with_non_hex_id_is_refused(self, codec):
        with pytest.raises(UnrecognizedOrderFormat):
            codec.decode("zzzz3c27914d44deB70517422")

    @pytest.mark.parametrize("order_no", ["", "ORDER-1", "x" * 25, "12345"])
    def test_unknown_formats_are_refused(self, codec, order_no):
        with pytest.raises(UnrecognizedOrderFormat):
            codec.decode(order_no)

    def test_booking_number_of_strips_suffix(self, codec):
        assert codec.booking_number_of("BK1700000000000-BALANCE") == "BK1700000000000"


class TestPrefixResolution:
    def test_rehyphenate(self):
        assert rehyphenate("1d02b271d3a24db1", (8, 4, 4)) == "1d02b271-d3a2-4db1-"

    def test_single_match_resolves(self):
        ids = [
            "d9a63c27-914d-44de-8c1a-000000000001",
            "11111111-2222-3333-4444-555555555555",
        ]
        assert resolve_prefix("d9a63c27-914d-44de-", ids) == ids[0]

    def test_match_is_case_insensitive(self):
        ids = ["D9A63C27-914D-44DE-8C1A-000000000001"]
        assert resolve_prefix("d9a63c27-914d-44de-", ids) == ids[0]

    def test_no_match_is_ambiguous(self):
        with pytest.raises(AmbiguousReference) as excinfo:
            resolve_prefix("d9a63c27-914d-44de-", ["11111111-2222-3333-4444-555555555555"])
        assert excinfo.value.matches == 0

    def test_two_matches_are_ambiguous(self):
        ids = [
            "d9a63c27-914d-44de-8c1a-000000000001",
            "d9a63c27-914d-44de-8c1a-000000000002",
        ]
        with pytest.raises(AmbiguousReference) as excinfo:
            resolve_prefix("d9a63c27-914d-44de-", ids)
        assert excinfo.value.matches == 2
