"""Tests for shopper-initiated cancellation and order lookups."""

import pytest
from ordering.checkout.results import ErrorCode
from ordering.order.cancellation import CancelOrder
from ordering.order.order import Order, OrderStatus
from protean import current_domain
from protean.exceptions import ObjectNotFoundError


class TestCancelOrder:
    def test_pending_order_is_cancelled(self, checkout, placed):
        result = checkout.cancel_order(placed.order_number, "cust-001", reason="Ordered by mistake")

        assert result.is_ok
        assert result.value.status == OrderStatus.CANCELLED.value
        assert result.value.cancellation_reason == "Ordered by mistake"
        assert result.value.cancelled_at is not None

    def test_other_shopper_cannot_cancel(self, checkout, placed):
        result = checkout.cancel_order(placed.order_number, "cust-002")

        assert result.error.code == ErrorCode.ORDER_NOT_FOUND
        stored = current_domain.repository_for(Order).get(placed.order.id)
        assert stored.status == OrderStatus.PENDING_PAYMENT.value

    def test_paid_order_cannot_be_cancelled(self, checkout, placed):
        checkout.complete_from_callback(placed.session_token)
        result = checkout.cancel_order(placed.order_number, "cust-001")
        assert result.error.code == ErrorCode.ORDER_ALREADY_FINALIZED

    def test_failed_order_cannot_be_cancelled(self, checkout, placed):
        checkout.complete_from_callback(placed.session_token, error_code="NOK")
        result = checkout.cancel_order(placed.order_number, "cust-001")
        assert result.error.code == ErrorCode.ORDER_NOT_CANCELLABLE

    def test_cancelled_order_cannot_be_retried(self, checkout, placed):
        checkout.cancel_order(placed.order_number, "cust-001")
        result = checkout.retry_payment(placed.order_number, "cust-001")
        assert result.error.code == ErrorCode.ORDER_ALREADY_FINALIZED

    def test_handler_hides_foreign_orders(self, placed):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(
                CancelOrder(order_id=str(placed.order.id), owner_id="cust-002"),
                asynchronous=False,
            )


class TestFindOrder:
    def test_owner_sees_order(self, checkout, placed):
        result = checkout.find_order(placed.order_number, "cust-001")

        assert result.is_ok
        order = result.value
        assert order.order_number == placed.order_number
        assert order.pricing.total_amount == 1_140_000
        assert {item.sku for item in order.items} == {"TEA-250", "POT-BLUE"}
        assert order.shipping_address.city == "Tehran"

    def test_lookup_ignores_case_and_whitespace(self, checkout, placed):
        result = checkout.find_order(f"  {placed.order_number.lower()} ", "cust-001")
        assert result.is_ok

    def test_other_shopper_gets_not_found(self, checkout, placed):
        result = checkout.find_order(placed.order_number, "cust-002")
        assert result.error.code == ErrorCode.ORDER_NOT_FOUND

    def test_malformed_number(self, checkout, placed):
        result = checkout.find_order("12345", "cust-001")
        assert result.error.code == ErrorCode.ORDER_NOT_FOUND

    def test_list_orders_newest_first(self, checkout, placed, cart, address):
        second = checkout.place_order(
            owner_id="cust-001", cart_lines=cart, shipping_method_id="post", shipping_address=address
        ).value
        checkout.place_order(owner_id="cust-002", cart_lines=cart, shipping_method_id="post", shipping_address=address)

        orders = checkout.list_orders("cust-001").value
        assert [o.order_number for o in orders] == [second.order_number, placed.order_number]
