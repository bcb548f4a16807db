"""Coupon aggregate (CQRS).

A coupon describes a discount rule plus the conditions under which it may be
used. Looking a coupon up and computing its discount never changes it; usage
is only recorded through ``redeem``, once the order it was applied to has been
paid for.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Integer, String, Text

from ordering.coupon.events import CouponDefined, CouponRedeemed
from ordering.domain import ordering
from ordering.pricing.calculator import round_half_up


class DiscountType(Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"


class CouponScope(Enum):
    ALL = "All"
    PRODUCTS = "Products"
    CATEGORIES = "Categories"


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@ordering.aggregate
class Coupon:
    code = String(required=True, max_length=50, unique=True)
    description = String(max_length=255)
    discount_type = String(choices=DiscountType, default=DiscountType.FIXED.value)
    discount_value = Integer(required=True, min_value=0)
    maximum_discount = Integer(min_value=0)
    minimum_subtotal = Integer(default=0, min_value=0)
    applicable_to = String(choices=CouponScope, default=CouponScope.ALL.value)
    product_ids = Text()  # JSON array of product ids
    category_ids = Text()  # JSON array of category ids
    is_active = Boolean(default=True)
    valid_from = DateTime()
    valid_until = DateTime()
    usage_limit = Integer(min_value=1)  # None means unlimited
    usage_count = Integer(default=0, min_value=0)
    redeemed_order_ids = Text()  # JSON array of order ids
    created_at = DateTime()

    @invariant.post
    def percentage_must_not_exceed_one_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.discount_value > 100:
            raise ValidationError({"discount_value": ["Percentage discount cannot exceed 100"]})

    @invariant.post
    def validity_window_must_be_ordered(self):
        if self.valid_from and self.valid_until and _aware(self.valid_until) <= _aware(self.valid_from):
            raise ValidationError({"valid_until": ["Coupon must expire after it becomes valid"]})

    @staticmethod
    def normalize_code(code):
        return (code or "").strip().upper()

    @classmethod
    def define(
        cls,
        code,
        discount_type,
        discount_value,
        minimum_subtotal=0,
        maximum_discount=None,
        applicable_to=CouponScope.ALL.value,
        product_ids=None,
        category_ids=None,
        valid_from=None,
        valid_until=None,
        usage_limit=None,
        description=None,
    ):
        now = datetime.now(UTC)
        coupon = cls(
            code=cls.normalize_code(code),
            description=description,
            discount_type=discount_type,
            discount_value=discount_value,
            maximum_discount=maximum_discount,
            minimum_subtotal=minimum_subtotal,
            applicable_to=applicable_to,
            product_ids=json.dumps(list(product_ids or [])),
            category_ids=json.dumps(list(category_ids or [])),
            is_active=True,
            valid_from=valid_from,
            valid_until=valid_until,
            usage_limit=usage_limit,
            usage_count=0,
            redeemed_order_ids=json.dumps([]),
            created_at=now,
        )
        coupon.raise_(
            CouponDefined(
                coupon_id=str(coupon.id),
                code=coupon.code,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
                defined_at=now,
            )
        )
        return coupon

    # -------------------------------------------------------------------
    # Queries (side-effect free)
    # -------------------------------------------------------------------
    def unavailability(self, now=None):
        """Why this coupon cannot be used right now, or None if it can."""
        now = now or datetime.now(UTC)
        if not self.is_active:
            return "Coupon is no longer active"
        if self.valid_from and now < _aware(self.valid_from):
            return "Coupon is not active yet"
        if self.valid_until and now > _aware(self.valid_until):
            return "Coupon has expired"
        if self.usage_limit is not None and (self.usage_count or 0) >= self.usage_limit:
            return "Coupon usage limit has been reached"
        return None

    def applies_to(self, lines) -> bool:
        scope = CouponScope(self.applicable_to)
        if scope == CouponScope.ALL:
            return True
        if scope == CouponScope.PRODUCTS:
            eligible = set(json.loads(self.product_ids or "[]"))
            return any(str(line.product_id) in eligible for line in lines)
        eligible = set(json.loads(self.category_ids or "[]"))
        return any(line.category_id and str(line.category_id) in eligible for line in lines)

    def discount_for(self, subtotal: int) -> int:
        """Discount granted on ``subtotal``; never more than the subtotal itself."""
        if DiscountType(self.discount_type) == DiscountType.PERCENTAGE:
            discount = round_half_up(Decimal(subtotal) * Decimal(self.discount_value) / Decimal(100))
        else:
            discount = self.discount_value

        if self.maximum_discount is not None:
            discount = min(discount, self.maximum_discount)
        return max(0, min(discount, subtotal))

    def redeemed_by(self, order_id) -> bool:
        return str(order_id) in json.loads(self.redeemed_order_ids or "[]")

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def redeem(self, order_id) -> bool:
        """Record one use of the coupon by ``order_id``.

        Returns False, and changes nothing, if the order already redeemed it.
        """
        redeemed = json.loads(self.redeemed_order_ids or "[]")
        if str(order_id) in redeemed:
            return False

        redeemed.append(str(order_id))
        self.redeemed_order_ids = json.dumps(redeemed)
        self.usage_count = (self.usage_count or 0) + 1

        self.raise_(
            CouponRedeemed(
                coupon_id=str(self.id),
                code=self.code,
                order_id=str(order_id),
                usage_count=self.usage_count,
                redeemed_at=datetime.now(UTC),
            )
        )
        return True

    def deactivate(self):
        self.is_active = False


@ordering.repository(part_of=Coupon)
class CouponRepository:
    def find_by_code(self, code):
        """Case-insensitive lookup; returns None when no coupon has this code."""
        return self._dao.query.filter(code=Coupon.normalize_code(code)).all().first
