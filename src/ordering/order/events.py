"""Domain events for the Order aggregate.

Events are immutable, versioned facts about an order's checkout and payment
lifecycle.
"""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """An order was created at checkout with its pricing locked in."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    owner_id = Identifier(required=True)
    item_count = Integer(required=True)
    subtotal = Integer(required=True)
    shipping_amount = Integer(required=True)
    tax_amount = Integer(required=True)
    discount_amount = Integer(required=True)
    total_amount = Integer(required=True)
    currency = String(required=True)
    shipping_method = String(required=True)
    coupon_code = String()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentSessionStarted:
    """The payment provider issued a session for a new payment attempt."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    attempt_number = Integer(required=True)
    session_token = String(required=True)
    amount = Integer(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaid:
    """The provider verified a payment attempt and the order is now paid."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    attempt_number = Integer(required=True)
    transaction_id = String(required=True)
    amount = Integer(required=True)
    coupon_code = String()
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaymentFailed:
    """The latest payment attempt failed; the order can be retried."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    attempt_number = Integer(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The shopper cancelled an order that was still awaiting payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
