"""Unit tests for settlement, commission and overtime arithmetic."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from charter.domain.enums import CommissionType, PaymentType
from charter.domain.settlement import (
    commission_for,
    derive_settlement,
    expected_amount,
    money,
    overtime_fee,
    snapshot_commission,
    total_commission,
)


def _booking(deposit="500", balance="1000", overtime="0"):
    return SimpleNamespace(
        deposit_amount=Decimal(deposit),
        balance_amount=Decimal(balance),
        overtime_fee_amount=Decimal(overtime),
    )


def _snapshot(kind, rate=None, fixed=None, final_price="6000", amount=None):
    return SimpleNamespace(
        commission_amount=None if amount is None else Decimal(amount),
        commission_type=kind,
        commission_rate=None if rate is None else Decimal(rate),
        commission_fixed_amount=None if fixed is None else Decimal(fixed),
        final_price=Decimal(final_price),
    )


class TestSettlement:
    def test_expected_balance_includes_overtime(self):
        assert expected_amount(_booking(overtime="200"), PaymentType.BALANCE) == Decimal("1200.00")

    def test_exact_balance_has_no_tip(self):
        s = derive_settlement(_booking(overtime="200"), PaymentType.BALANCE, Decimal("1200"))
        assert s.tip == 0
        assert not s.is_short

    def test_overpayment_is_a_tip(self):
        s = derive_settlement(_booking(overtime="200"), PaymentType.BALANCE, Decimal("1500"))
        assert s.tip == Decimal("300.00")
        assert s.paid == Decimal("1500.00")

    def test_underpayment_is_a_shortfall(self):
        s = derive_settlement(_booking(overtime="200"), PaymentType.BALANCE, Decimal("1100"))
        assert s.is_short
        assert s.shortfall == Decimal("100.00")
        assert s.tip == 0

    def test_missing_amount_means_expected(self):
        s = derive_settlement(_booking(), PaymentType.DEPOSIT, None)
        assert s.paid == Decimal("500.00")

    def test_deposit_never_has_a_tip(self):
        s = derive_settlement(_booking(), PaymentType.DEPOSIT, Decimal("800"))
        assert s.tip == 0

    def test_money_rounds_half_up(self):
        assert money("10.005") == Decimal("10.01")
        assert money(None) == Decimal("0.00")


class TestCommission:
    def test_fixed(self):
        assert commission_for(_snapshot(CommissionType.FIXED, fixed="150")) == Decimal("150.00")

    def test_percent_of_final_price(self):
        assert commission_for(_snapshot(CommissionType.PERCENT, rate="5")) == Decimal("300.00")

    def test_both_adds_up(self):
        snapshot = _snapshot(CommissionType.BOTH, rate="5", fixed="100")
        assert commission_for(snapshot) == Decimal("400.00")

    def test_total_over_tiers(self):
        snapshots = [
            _snapshot(CommissionType.BOTH, rate="5", fixed="100"),
            _snapshot("percent", rate="2"),
        ]
        assert total_commission(snapshots) == Decimal("520.00")

    def test_stored_amount_wins_over_terms(self):
        snapshot = _snapshot(CommissionType.FIXED, amount="100")
        assert commission_for(snapshot) == Decimal("0.00")
        assert snapshot_commission(snapshot) == Decimal("100.00")

    def test_total_mixes_stored_and_derived(self):
        snapshots = [
            _snapshot(CommissionType.FIXED, amount="100"),
            _snapshot(CommissionType.PERCENT, rate="1", amount="0"),
        ]
        assert total_commission(snapshots) == Decimal("160.00")

    def test_total_of_nothing(self):
        assert total_commission([]) == Decimal("0.00")


class TestOvertime:
    END = datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc)

    def test_within_grace_is_free(self):
        assert overtime_fee(self.END, self.END + timedelta(minutes=10), 800) == 0

    def test_just_past_grace_bills_a_full_hour(self):
        assert overtime_fee(self.END, self.END + timedelta(minutes=11), 800) == Decimal("800.00")

    def test_partial_hours_round_up(self):
        assert overtime_fee(self.END, self.END + timedelta(minutes=80), 800) == Decimal("1600.00")

    def test_early_finish_is_free(self):
        assert overtime_fee(self.END, self.END - timedelta(hours=1), 800) == 0

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_end = self.END.replace(tzinfo=None)
        assert overtime_fee(naive_end, self.END + timedelta(minutes=70), 800) == Decimal("800.00")
