"""Tests for the settlement split."""

from decimal import Decimal

import pytest

from bookrail.services.pricing_service import compute_split, round2


class TestComputeSplit:
    def test_ten_percent_fee(self):
        split = compute_split(Decimal("120.00"), Decimal("10"))
        assert split.provider_amount == Decimal("120.00")
        assert split.platform_fee == Decimal("12.00")
        assert split.total_amount == Decimal("132.00")

    def test_fee_rounds_half_up(self):
        split = compute_split(Decimal("33.35"), Decimal("10"))
        # 3.335 -> 3.34
        assert split.platform_fee == Decimal("3.34")
        assert split.total_amount == split.provider_amount + split.platform_fee

    def test_zero_fee(self):
        split = compute_split("50", "0")
        assert split.platform_fee == Decimal("0.00")
        assert split.total_amount == Decimal("50.00")

    def test_rejects_floats(self):
        with pytest.raises(TypeError):
            compute_split(99.99, Decimal("10"))

    @pytest.mark.parametrize(
        "price,percent", [("-1", "10"), ("10", "-1"), ("10", "101"), ("abc", "10"), ("NaN", "10")]
    )
    def test_rejects_invalid_inputs(self, price, percent):
        with pytest.raises(ValueError):
            compute_split(price, percent)

    @pytest.mark.parametrize("percent", ["0", "2.5", "7.25", "10", "12.5", "15", "33.333", "99.99", "100"])
    def test_total_is_exact_sum_across_prices(self, percent):
        for cents in range(0, 100_000, 37):
            price = Decimal(cents) / 100
            split = compute_split(price, percent)
            assert split.total_amount == split.provider_amount + split.platform_fee
            assert split.provider_amount == price
            assert split.platform_fee == round2(price * Decimal(percent) / 100)
            assert split.total_amount.as_tuple().exponent == -2

    @pytest.mark.parametrize("price", ["0.01", "0.05", "1.005", "19.999", "33.35", "120", "9999.99"])
    def test_sub_cent_prices_round_before_summing(self, price):
        split = compute_split(price, "10")
        assert split.provider_amount == round2(Decimal(price))
        assert split.total_amount == split.provider_amount + split.platform_fee

    def test_as_metadata_is_string_valued(self):
        metadata = compute_split("120.00", "10").as_metadata()
        assert all(isinstance(v, str) for v in metadata.values())


def test_round2():
    assert round2(Decimal("1.005")) == Decimal("1.01")
    assert round2(Decimal("1.004")) == Decimal("1.00")
