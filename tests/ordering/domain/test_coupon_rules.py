"""Tests for Coupon discount computation, availability and redemption."""

from datetime import UTC, datetime, timedelta

import pytest
from ordering.checkout.cart_line import CartLine
from ordering.coupon.coupon import Coupon, CouponScope, DiscountType
from ordering.coupon.events import CouponDefined, CouponRedeemed
from protean.exceptions import ValidationError


def _coupon(**overrides):
    kwargs = {"code": " welcome ", "discount_type": DiscountType.FIXED.value, "discount_value": 100_000}
    kwargs.update(overrides)
    return Coupon.define(**kwargs)


def _line(product_id="prod-1", category_id=None):
    return CartLine(product_id=product_id, sku="SKU", name="Item", unit_price=1000, quantity=1, category_id=category_id)


class TestDefinition:
    def test_code_is_normalized(self):
        coupon = _coupon()
        assert coupon.code == "WELCOME"
        assert coupon.usage_count == 0
        assert coupon.is_active

    def test_raises_coupon_defined(self):
        coupon = _coupon()
        assert isinstance(coupon._events[-1], CouponDefined)

    def test_percentage_above_hundred_rejected(self):
        with pytest.raises(ValidationError):
            _coupon(discount_type=DiscountType.PERCENTAGE.value, discount_value=120)

    def test_validity_window_must_be_ordered(self):
        now = datetime.now(UTC)
        with pytest.raises(ValidationError):
            _coupon(valid_from=now, valid_until=now - timedelta(days=1))


class TestDiscount:
    def test_fixed_discount(self):
        assert _coupon().discount_for(1_000_000) == 100_000

    def test_fixed_discount_capped_at_subtotal(self):
        assert _coupon().discount_for(40_000) == 40_000

    def test_percentage_discount(self):
        coupon = _coupon(discount_type=DiscountType.PERCENTAGE.value, discount_value=15)
        assert coupon.discount_for(1_000_000) == 150_000

    def test_percentage_rounds_half_up(self):
        coupon = _coupon(discount_type=DiscountType.PERCENTAGE.value, discount_value=10)
        # 10% of 1,005 = 100.5
        assert coupon.discount_for(1_005) == 101

    def test_maximum_discount_caps_percentage(self):
        coupon = _coupon(discount_type=DiscountType.PERCENTAGE.value, discount_value=50, maximum_discount=200_000)
        assert coupon.discount_for(1_000_000) == 200_000


class TestAvailability:
    def test_available_coupon(self):
        assert _coupon().unavailability() is None

    def test_inactive(self):
        coupon = _coupon()
        coupon.deactivate()
        assert coupon.unavailability() == "Coupon is no longer active"

    def test_not_started(self):
        coupon = _coupon(valid_from=datetime.now(UTC) + timedelta(days=1))
        assert coupon.unavailability() == "Coupon is not active yet"

    def test_expired(self):
        now = datetime.now(UTC)
        coupon = _coupon(valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
        assert coupon.unavailability() == "Coupon has expired"

    def test_usage_limit_reached(self):
        coupon = _coupon(usage_limit=1)
        coupon.redeem("order-1")
        assert coupon.unavailability() == "Coupon usage limit has been reached"


class TestApplicability:
    def test_all_scope(self):
        assert _coupon().applies_to([_line()])

    def test_product_scope(self):
        coupon = _coupon(applicable_to=CouponScope.PRODUCTS.value, product_ids=["prod-2"])
        assert not coupon.applies_to([_line("prod-1")])
        assert coupon.applies_to([_line("prod-1"), _line("prod-2")])

    def test_category_scope(self):
        coupon = _coupon(applicable_to=CouponScope.CATEGORIES.value, category_ids=["cat-tea"])
        assert coupon.applies_to([_line(category_id="cat-tea")])
        assert not coupon.applies_to([_line(category_id=None)])


class TestRedemption:
    def test_redeem_counts_once_per_order(self):
        coupon = _coupon()
        assert coupon.redeem("order-1") is True
        assert coupon.redeem("order-1") is False
        assert coupon.usage_count == 1
        assert coupon.redeemed_by("order-1")

    def test_redeem_raises_event(self):
        coupon = _coupon()
        coupon._events.clear()
        coupon.redeem("order-1")
        event = coupon._events[-1]
        assert isinstance(event, CouponRedeemed)
        assert event.usage_count == 1

    def test_computing_discount_does_not_use_coupon(self):
        coupon = _coupon()
        coupon.discount_for(1_000_000)
        coupon.unavailability()
        assert coupon.usage_count == 0
