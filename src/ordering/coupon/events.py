"""Domain events for the Coupon aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Coupon")
class CouponDefined:
    """A coupon was made available to shoppers."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    discount_value = Integer(required=True)
    defined_at = DateTime(required=True)


@ordering.event(part_of="Coupon")
class CouponRedeemed:
    """A coupon was consumed by an order that has been paid for."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    order_id = Identifier(required=True)
    usage_count = Integer(required=True)
    redeemed_at = DateTime(required=True)
