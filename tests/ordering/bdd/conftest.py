"""Shared BDD fixtures and step definitions for checkout and payment."""

import pytest
from ordering.checkout.cart_line import CartLine
from ordering.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then, when


class Journey:
    """What the shopper has done so far."""

    shopper = "cust-001"

    def __init__(self):
        self.result = None
        self.order_number = None
        self.session_token = None

    def record(self, result):
        """Remember ``result`` and the order and session it points at."""
        self.result = result
        if result.is_ok:
            value = result.value
            if hasattr(value, "session_token"):
                self.session_token = value.session_token
            self.order_number = value.order_number
        elif result.error.order_number:
            self.order_number = result.error.order_number
        return result

    @property
    def order(self):
        return current_domain.repository_for(Order).find_by_order_number(self.order_number, self.shopper)


@pytest.fixture()
def journey():
    return Journey()


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the shipping methods are available")
def _(shipping_methods):
    return shipping_methods


@given(parsers.cfparse("a cart with a subtotal of {subtotal:d}"), target_fixture="cart_lines")
def _(subtotal):
    return [CartLine(product_id="prod-001", sku="SKU-001", name="Test Product", unit_price=subtotal, quantity=1)]


@given(parsers.cfparse('a coupon "{code}" worth {amount:d} off'))
def _(define_coupon, code, amount):
    define_coupon(code, discount_value=amount)


@given(parsers.cfparse('a coupon "{code}" worth {amount:d} off orders of at least {minimum:d}'))
def _(define_coupon, code, amount, minimum):
    define_coupon(code, discount_value=amount, minimum_subtotal=minimum)


@given("the payment provider refuses new sessions")
def _(fake_gateway):
    fake_gateway.configure(should_succeed=False, failure_reason="Merchant suspended")


@given("the payment provider cannot verify payments")
def _(fake_gateway):
    fake_gateway.configure(verify_unavailable=True)


@given(parsers.cfparse('the shopper has checked out with "{method}" shipping'))
def _(checkout, journey, cart_lines, address, method):
    result = checkout.place_order(
        owner_id=journey.shopper,
        cart_lines=cart_lines,
        shipping_method_id=method,
        shipping_address=address,
    )
    assert result.is_ok, result
    journey.record(result)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the shopper retries payment")
def _(checkout, journey):
    journey.record(checkout.retry_payment(journey.order_number, journey.shopper))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(journey, status):
    assert journey.order.status == status


@then(
    parsers.re(r"the order has (?P<count>\d+) payment attempts?"),
    converters={"count": int},
)
def _(journey, count):
    assert len(journey.order.payment_attempts) == count


@then(
    parsers.re(r"the payment was verified (?P<count>\d+) times?"),
    converters={"count": int},
)
def _(fake_gateway, count):
    assert len(fake_gateway.calls_to("verify")) == count
