"""Tests for the fee / reserve / net split."""

from decimal import Decimal

import pytest


class TestCompute:
    """Tests for compute()."""

    def test_standard_split(self):
        from settlement.calculator import compute

        split = compute(Decimal("100.00"), Decimal("0.05"), Decimal("0.10"))
        assert (split.fee, split.reserve, split.net) == (Decimal("5.00"), Decimal("10.00"), Decimal("85.00"))

    def test_one_cent_rounds_fee_and_reserve_to_zero(self):
        from settlement.calculator import compute

        split = compute("0.01", "0.05", "0.10")
        assert (split.fee, split.reserve, split.net) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.01"))

    def test_half_cent_rounds_up(self):
        from settlement.calculator import compute

        split = compute("33.33", "0.05", "0.10")
        assert split.fee == Decimal("1.67")      # 1.6665
        assert split.reserve == Decimal("3.33")  # 3.333
        assert split.net == Decimal("28.33")

    @pytest.mark.parametrize("gross", ["0.01", "0.99", "19.99", "123.45", "600.00", "98765.43"])
    def test_parts_always_sum_to_gross(self, gross):
        from settlement.calculator import compute

        split = compute(gross, "0.029", "0.075")
        assert split.fee + split.reserve + split.net == split.gross
        assert min(split.fee, split.reserve, split.net) >= Decimal("0")

    def test_net_never_negative(self):
        """Fee and reserve both rounding up on one cent leave nothing; reserve gives way."""
        from settlement.calculator import compute

        split = compute("0.01", "0.5", "0.5")
        assert split.fee == Decimal("0.01")
        assert split.reserve == Decimal("0.00")
        assert split.net == Decimal("0.00")

    def test_deterministic(self):
        from settlement.calculator import compute

        assert compute("47.11", "0.05", "0.10") == compute(Decimal("47.11"), Decimal("0.05"), Decimal("0.10"))

    def test_float_input_is_not_binary_expanded(self):
        from settlement.calculator import compute

        assert compute(100.1, 0.05, 0.10).gross == Decimal("100.10")

    @pytest.mark.parametrize("gross", ["0", "0.004", "-5", "abc"])
    def test_rejects_bad_gross(self, gross):
        from core.exceptions import ValidationError
        from settlement.calculator import compute

        with pytest.raises(ValidationError):
            compute(gross, "0.05", "0.10")

    @pytest.mark.parametrize("fee_rate,reserve_rate", [("-0.01", "0.10"), ("1.01", "0"), ("0.60", "0.50")])
    def test_rejects_bad_rates(self, fee_rate, reserve_rate):
        from core.exceptions import ValidationError
        from settlement.calculator import compute

        with pytest.raises(ValidationError):
            compute("100.00", fee_rate, reserve_rate)


class TestMoney:
    """Tests for the Decimal helpers."""

    def test_money_rounds_half_up(self):
        from core.money import money

        assert money("0.005") == Decimal("0.01")
        assert money("100.995") == Decimal("101.00")
        assert money(2) == Decimal("2.00")

    def test_format_money(self):
        from core.money import format_money

        assert format_money("1234.5") == "$1,234.50"

    def test_booleans_are_not_amounts(self):
        from core.money import to_decimal

        with pytest.raises(ValueError):
            to_decimal(True)
