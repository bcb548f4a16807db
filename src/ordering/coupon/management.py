"""Coupon management: commands and handler for defining and retiring coupons."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.coupon.coupon import Coupon, CouponScope, DiscountType
from ordering.domain import ordering


@ordering.command(part_of="Coupon")
class DefineCoupon:
    code = String(required=True, max_length=50)
    discount_type = String(required=True, choices=DiscountType)
    discount_value = Integer(required=True, min_value=0)
    minimum_subtotal = Integer(default=0, min_value=0)
    maximum_discount = Integer(min_value=0)
    applicable_to = String(choices=CouponScope, default=CouponScope.ALL.value)
    product_ids = Text()  # JSON array
    category_ids = Text()  # JSON array
    valid_from = DateTime()
    valid_until = DateTime()
    usage_limit = Integer(min_value=1)
    description = String(max_length=255)


@ordering.command(part_of="Coupon")
class DeactivateCoupon:
    code = String(required=True, max_length=50)


@ordering.command_handler(part_of=Coupon)
class CouponManagementHandler:
    @handle(DefineCoupon)
    def define_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Coupon {Coupon.normalize_code(command.code)} already exists"]})

        coupon = Coupon.define(
            code=command.code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            minimum_subtotal=command.minimum_subtotal,
            maximum_discount=command.maximum_discount,
            applicable_to=command.applicable_to,
            product_ids=json.loads(command.product_ids) if command.product_ids else None,
            category_ids=json.loads(command.category_ids) if command.category_ids else None,
            valid_from=command.valid_from,
            valid_until=command.valid_until,
            usage_limit=command.usage_limit,
            description=command.description,
        )
        repo.add(coupon)
        return str(coupon.id)

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.find_by_code(command.code)
        if coupon is None:
            raise ValidationError({"code": ["Coupon not found"]})
        coupon.deactivate()
        repo.add(coupon)
