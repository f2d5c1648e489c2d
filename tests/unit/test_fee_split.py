"""Tests for the platform fee split (marketplace_kernel/domain/fees.py)."""

from decimal import Decimal

import pytest

from marketplace_kernel.domain.fees import FeeSplit, compute_fee_split
from marketplace_kernel.exceptions import InvalidInputError


class TestComputeFeeSplit:

    @pytest.mark.parametrize(
        "gross, fee, net",
        [
            (10000, 1200, 8800),
            (123400, 14808, 108592),
            (999900, 119988, 879912),
        ],
    )
    def test_reference_amounts_at_twelve_percent(self, gross, fee, net):
        assert compute_fee_split(gross, Decimal("12")) == FeeSplit(gross=gross, fee=fee, net=net)

    def test_fee_rounds_up_to_next_minor_unit(self):
        # 12% of 1001 = 120.12
        split = compute_fee_split(1001, Decimal("12"))
        assert split.fee == 121
        assert split.net == 880

    def test_fractional_percentage_is_exact(self):
        # 12.5% of 1000 = 125.0 exactly, no float noise
        split = compute_fee_split(1000, Decimal("12.5"))
        assert (split.fee, split.net) == (125, 875)

    def test_accepts_string_percentage(self):
        assert compute_fee_split(10000, "12.00").fee == 1200

    def test_zero_gross(self):
        assert compute_fee_split(0, Decimal("12")) == FeeSplit(0, 0, 0)

    def test_zero_percent_gives_everything_to_payee(self):
        assert compute_fee_split(5000, 0) == FeeSplit(5000, 0, 5000)

    def test_hundred_percent_gives_everything_to_platform(self):
        assert compute_fee_split(5000, 100) == FeeSplit(5000, 5000, 0)

    @pytest.mark.parametrize("gross", [-1, 10.5, "100", True, None])
    def test_rejects_non_integer_or_negative_gross(self, gross):
        with pytest.raises(InvalidInputError) as exc_info:
            compute_fee_split(gross, Decimal("12"))
        assert exc_info.value.field == "gross"

    @pytest.mark.parametrize("percent", [Decimal("-0.01"), Decimal("100.01")])
    def test_rejects_percentage_out_of_range(self, percent):
        with pytest.raises(InvalidInputError) as exc_info:
            compute_fee_split(1000, percent)
        assert exc_info.value.field == "fee_percent"
