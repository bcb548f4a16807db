"""Tests for the pricing calculator."""

import pytest
from ordering.checkout.cart_line import CartLine
from ordering.pricing.calculator import calculate_pricing, compute_tax


def _line(unit_price, quantity=1):
    return CartLine(product_id="p", sku="SKU", name="Item", unit_price=unit_price, quantity=quantity)


class TestReferenceScenarios:
    def test_post_shipping_with_tax_and_no_coupon(self):
        breakdown = calculate_pricing([_line(1_000_000)], shipping_cost=50_000, tax_rate_percent=9)
        assert breakdown.subtotal == 1_000_000
        assert breakdown.shipping_amount == 50_000
        assert breakdown.tax_amount == 90_000
        assert breakdown.discount_amount == 0
        assert breakdown.total_amount == 1_140_000

    def test_flat_coupon_discount(self):
        breakdown = calculate_pricing(
            [_line(1_000_000)], shipping_cost=50_000, discount_amount=100_000, tax_rate_percent=9
        )
        assert breakdown.discount_amount == 100_000
        assert breakdown.total_amount == 1_040_000

    def test_discount_cannot_drive_total_below_zero(self):
        breakdown = calculate_pricing([_line(10_000)], shipping_cost=5_000, discount_amount=1_000_000)
        assert breakdown.total_amount == 0
        assert breakdown.discount_amount == breakdown.subtotal + breakdown.shipping_amount + breakdown.tax_amount


class TestTaxRounding:
    def test_half_rounds_up(self):
        # 9% of 50 = 4.5
        assert compute_tax(50, 9) == 5

    def test_below_half_rounds_down(self):
        # 9% of 49 = 4.41
        assert compute_tax(49, 9) == 4

    def test_fractional_rate(self):
        # 9.5% of 1,000 = 95
        assert compute_tax(1_000, 9.5) == 95

    def test_zero_rate(self):
        assert compute_tax(1_000_000, 0) == 0


class TestTotalIdentity:
    @pytest.mark.parametrize(
        "prices,shipping,discount,rate",
        [
            ([(1, 1)], 0, 0, 9),
            ([(333, 3)], 17, 0, 9),
            ([(999_999, 2), (1, 7)], 50_000, 12_345, 9),
            ([(250_000, 4)], 0, 2_000_000, 9),
            ([(0, 5)], 0, 0, 9),
            ([(12_345, 1)], 99, 99, 12),
            ([(100, 1)], 0, 109, 9),
        ],
    )
    def test_total_equals_components_and_is_never_negative(self, prices, shipping, discount, rate):
        lines = [_line(price, qty) for price, qty in prices]
        breakdown = calculate_pricing(lines, shipping_cost=shipping, discount_amount=discount, tax_rate_percent=rate)

        assert breakdown.total_amount == (
            breakdown.subtotal + breakdown.shipping_amount + breakdown.tax_amount - breakdown.discount_amount
        )
        assert breakdown.total_amount >= 0
        assert min(breakdown.as_dict().values()) >= 0

    def test_identical_inputs_give_identical_output(self):
        lines = [_line(123_457, 3), _line(9_999, 2)]
        first = calculate_pricing(lines, shipping_cost=50_000, discount_amount=7_000)
        second = calculate_pricing(lines, shipping_cost=50_000, discount_amount=7_000)
        assert first == second


class TestInvalidInput:
    def test_negative_shipping_rejected(self):
        with pytest.raises(ValueError):
            calculate_pricing([_line(100)], shipping_cost=-1)

    def test_negative_discount_rejected(self):
        with pytest.raises(ValueError):
            calculate_pricing([_line(100)], shipping_cost=0, discount_amount=-5)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError):
            calculate_pricing([_line(100, 0)], shipping_cost=0)
