"""Order aggregate (CQRS): a checkout attempt with fixed pricing and items.

An order is created once per checkout and is never re-priced. After creation
it only changes through payment-attempt bookkeeping and status transitions:

    PENDING_PAYMENT → PAID              (payment verified, terminal)
    PENDING_PAYMENT → PAYMENT_FAILED    (latest attempt failed)
    PAYMENT_FAILED  → PENDING_PAYMENT   (retry obtained a new session)
    PAYMENT_FAILED  → PAID              (an earlier attempt verified late)
    PENDING_PAYMENT → CANCELLED         (shopper cancelled, terminal)
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.order.events import (
    OrderCancelled,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    PaymentSessionStarted,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING_PAYMENT = "Pending_Payment"
    PAID = "Paid"
    PAYMENT_FAILED = "Payment_Failed"
    CANCELLED = "Cancelled"


class AttemptOutcome(Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    FAILED = "Failed"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PAID,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAYMENT_FAILED: {
        OrderStatus.PENDING_PAYMENT,  # Retry
        OrderStatus.PAID,  # Late verification of an earlier attempt
    },
    OrderStatus.PAID: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = {OrderStatus.PAID, OrderStatus.CANCELLED}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class ShippingAddress:
    """Where the order ships, copied at checkout.

    Editing or deleting a saved address later never changes a placed order.
    """

    full_name = String(required=True, max_length=150)
    phone = String(required=True, max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    province = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)


@ordering.value_object(part_of="Order")
class OrderPricing:
    """Monetary snapshot of an order, in integer minor currency units."""

    subtotal = Integer(required=True, min_value=0)
    shipping_amount = Integer(required=True, min_value=0)
    tax_amount = Integer(required=True, min_value=0)
    discount_amount = Integer(default=0, min_value=0)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="IRR")

    @invariant.post
    def total_must_equal_components(self):
        expected = self.subtotal + self.shipping_amount + self.tax_amount - self.discount_amount
        if self.total_amount != expected:
            raise ValidationError(
                {"total_amount": [f"Total {self.total_amount} does not match computed total {expected}"]}
            )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A product line captured at checkout. Never changes after creation."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(required=True, max_length=50)
    name = String(required=True, max_length=255)
    image = String(max_length=500)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    line_total = Integer(required=True, min_value=0)
    attributes = Text()  # JSON object

    @invariant.post
    def line_total_must_match_quantity(self):
        if self.line_total != self.unit_price * self.quantity:
            raise ValidationError({"line_total": ["Line total must equal unit price times quantity"]})


@ordering.entity(part_of="Order")
class PaymentAttempt:
    """One trip to the payment provider: a session token and how it ended."""

    attempt_number = Integer(required=True, min_value=1)
    session_token = String(required=True, max_length=255)
    redirect_url = String(max_length=500)
    provider_reference = String(max_length=255)
    transaction_id = String(max_length=255)
    outcome = String(choices=AttemptOutcome, default=AttemptOutcome.PENDING.value)
    failure_reason = String(max_length=500)
    requested_at = DateTime()
    settled_at = DateTime()

    @property
    def is_settled(self):
        return self.outcome != AttemptOutcome.PENDING.value


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    sequence_number = Integer(required=True, min_value=1)
    owner_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING_PAYMENT.value)
    items = HasMany(OrderItem)
    payment_attempts = HasMany(PaymentAttempt)
    shipping_address = ValueObject(ShippingAddress)
    shipping_method_code = String(required=True, max_length=50)
    shipping_method_name = String(max_length=100)
    pricing = ValueObject(OrderPricing)
    coupon_code = String(max_length=50)
    payment_reference = String(max_length=255)
    failure_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def at_most_one_attempt_can_verify(self):
        verified = [a for a in self.payment_attempts if a.outcome == AttemptOutcome.VERIFIED.value]
        if len(verified) > 1:
            raise ValidationError({"payment_attempts": ["Only one payment attempt can be verified"]})

    @invariant.post
    def paid_order_must_have_verified_attempt(self):
        if self.status == OrderStatus.PAID.value and not any(
            a.outcome == AttemptOutcome.VERIFIED.value for a in self.payment_attempts
        ):
            raise ValidationError({"status": ["A paid order needs a verified payment attempt"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        sequence_number,
        owner_id,
        items_data,
        shipping_address,
        shipping_method_code,
        shipping_method_name,
        pricing,
        coupon_code=None,
    ):
        """Create an order from a priced checkout.

        Args:
            items_data: List of dicts with product_id, variant_id, sku, name,
                        image, unit_price, quantity and attributes.
            shipping_address: Dict matching ShippingAddress fields.
            pricing: Dict with subtotal, shipping_amount, tax_amount,
                     discount_amount, total_amount and currency.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        items = [
            OrderItem(
                product_id=item["product_id"],
                variant_id=item.get("variant_id"),
                sku=item["sku"],
                name=item["name"],
                image=item.get("image"),
                unit_price=item["unit_price"],
                quantity=item["quantity"],
                line_total=item["unit_price"] * item["quantity"],
                attributes=json.dumps(item.get("attributes") or {}, sort_keys=True),
            )
            for item in items_data
        ]

        items_subtotal = sum(item.line_total for item in items)
        if pricing["subtotal"] != items_subtotal:
            raise ValidationError(
                {"subtotal": [f"Subtotal {pricing['subtotal']} does not match items total {items_subtotal}"]}
            )

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            sequence_number=sequence_number,
            owner_id=owner_id,
            status=OrderStatus.PENDING_PAYMENT.value,
            items=items,
            shipping_address=ShippingAddress(**shipping_address),
            shipping_method_code=shipping_method_code,
            shipping_method_name=shipping_method_name,
            pricing=OrderPricing(**pricing),
            coupon_code=coupon_code,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                owner_id=str(owner_id),
                item_count=len(items),
                subtotal=order.pricing.subtotal,
                shipping_amount=order.pricing.shipping_amount,
                tax_amount=order.pricing.tax_amount,
                discount_amount=order.pricing.discount_amount,
                total_amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                shipping_method=shipping_method_code,
                coupon_code=coupon_code,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_finalized(self):
        return OrderStatus(self.status) in TERMINAL_STATUSES

    @property
    def latest_attempt(self):
        if not self.payment_attempts:
            return None
        return max(self.payment_attempts, key=lambda a: a.attempt_number)

    def attempt_for(self, session_token):
        return next(
            (a for a in self.payment_attempts if a.session_token == session_token),
            None,
        )

    def is_owned_by(self, owner_id):
        return owner_id is not None and str(self.owner_id) == str(owner_id)

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _assert_not_finalized(self):
        if self.is_finalized:
            raise ValidationError({"status": [f"Order {self.order_number} is already {self.status}"]})

    # -------------------------------------------------------------------
    # Payment lifecycle
    # -------------------------------------------------------------------
    def start_payment_attempt(self, session_token, redirect_url=None):
        """Record a payment session issued by the provider.

        A failed order goes back to awaiting payment only once the provider
        has actually handed out a new session.
        """
        self._assert_not_finalized()
        if self.attempt_for(session_token) is not None:
            raise ValidationError({"session_token": ["Payment session already recorded"]})

        now = datetime.now(UTC)
        attempt = PaymentAttempt(
            attempt_number=len(self.payment_attempts) + 1,
            session_token=session_token,
            redirect_url=redirect_url,
            outcome=AttemptOutcome.PENDING.value,
            requested_at=now,
        )

        with atomic_change(self):
            if OrderStatus(self.status) == OrderStatus.PAYMENT_FAILED:
                self._assert_can_transition(OrderStatus.PENDING_PAYMENT)
                self.status = OrderStatus.PENDING_PAYMENT.value
                self.failure_reason = None
            self.add_payment_attempts(attempt)
            self.updated_at = now

        self.raise_(
            PaymentSessionStarted(
                order_id=str(self.id),
                order_number=self.order_number,
                attempt_number=attempt.attempt_number,
                session_token=session_token,
                amount=self.pricing.total_amount,
                started_at=now,
            )
        )
        return attempt

    def mark_paid(self, session_token, transaction_id, provider_reference=None):
        """Settle the order as paid through the attempt holding ``session_token``.

        Returns True when the order transitioned, False when it was already
        paid through that same attempt (a replayed confirmation).
        """
        attempt = self.attempt_for(session_token)
        if attempt is None:
            raise ValidationError({"session_token": ["Unknown payment session for this order"]})

        if OrderStatus(self.status) == OrderStatus.PAID:
            if attempt.outcome == AttemptOutcome.VERIFIED.value:
                return False
            self._assert_not_finalized()

        self._assert_can_transition(OrderStatus.PAID)

        now = datetime.now(UTC)
        with atomic_change(self):
            attempt.outcome = AttemptOutcome.VERIFIED.value
            attempt.transaction_id = transaction_id
            attempt.provider_reference = provider_reference
            attempt.failure_reason = None
            attempt.settled_at = now

            self.status = OrderStatus.PAID.value
            self.payment_reference = transaction_id
            self.failure_reason = None
            self.paid_at = now
            self.updated_at = now

        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                order_number=self.order_number,
                attempt_number=attempt.attempt_number,
                transaction_id=transaction_id,
                amount=self.pricing.total_amount,
                coupon_code=self.coupon_code,
                paid_at=now,
            )
        )
        return True

    def mark_payment_failed(self, session_token, reason, provider_reference=None):
        """Record that the attempt holding ``session_token`` failed.

        Only the latest attempt moves the order to PAYMENT_FAILED; an older
        attempt failing while a newer one is still open is only recorded on
        that attempt. Returns False when the attempt was already settled.
        """
        self._assert_not_finalized()

        attempt = self.attempt_for(session_token)
        if attempt is None:
            raise ValidationError({"session_token": ["Unknown payment session for this order"]})
        if attempt.is_settled:
            return False

        now = datetime.now(UTC)
        is_latest = attempt.attempt_number == self.latest_attempt.attempt_number
        fails_order = is_latest and OrderStatus(self.status) == OrderStatus.PENDING_PAYMENT

        with atomic_change(self):
            attempt.outcome = AttemptOutcome.FAILED.value
            attempt.failure_reason = reason
            attempt.provider_reference = provider_reference
            attempt.settled_at = now

            if fails_order:
                self._assert_can_transition(OrderStatus.PAYMENT_FAILED)
                self.status = OrderStatus.PAYMENT_FAILED.value
                self.failure_reason = reason
            self.updated_at = now

        if fails_order:
            self.raise_(
                OrderPaymentFailed(
                    order_id=str(self.id),
                    order_number=self.order_number,
                    attempt_number=attempt.attempt_number,
                    reason=reason,
                    failed_at=now,
                )
            )
        return True

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason=None):
        """Cancel an order that is still awaiting payment."""
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            self.cancellation_reason = reason
            self.cancelled_at = now
            self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                order_number=self.order_number,
                reason=reason,
                cancelled_at=now,
            )
        )
