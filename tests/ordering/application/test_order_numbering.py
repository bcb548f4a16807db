"""Tests for issuing order numbers through OrderRepository.create."""

from datetime import UTC, datetime

import pytest
from ordering.order.numbering import format_order_number
from ordering.order.order import Order
from ordering.order.repository import OrderDraft, OrderNumberUnavailable
from protean import current_domain

YEAR = datetime.now(UTC).year


def _draft(owner_id="cust-001"):
    return OrderDraft(
        owner_id=owner_id,
        items=[{"product_id": "prod-1", "sku": "SKU-1", "name": "Tea", "unit_price": 100_000, "quantity": 1}],
        shipping_address={
            "full_name": "Sara Ahmadi",
            "phone": "09121234567",
            "street": "12 Valiasr St",
            "city": "Tehran",
            "postal_code": "1234567890",
            "country": "IR",
        },
        shipping_method_code="post",
        shipping_method_name="Post",
        pricing={
            "subtotal": 100_000,
            "shipping_amount": 50_000,
            "tax_amount": 9_000,
            "discount_amount": 0,
            "total_amount": 159_000,
        },
    )


def _squat(order_number, sequence_number):
    """Store an order directly under a chosen number."""
    draft = _draft("cust-squatter")
    order = Order.place(
        order_number=order_number,
        sequence_number=sequence_number,
        owner_id=draft.owner_id,
        items_data=draft.items,
        shipping_address=draft.shipping_address,
        shipping_method_code=draft.shipping_method_code,
        shipping_method_name=draft.shipping_method_name,
        pricing=draft.pricing,
    )
    current_domain.repository_for(Order).add(order)


@pytest.fixture()
def repo():
    return current_domain.repository_for(Order)


def test_first_order_gets_sequence_one(repo):
    order = repo.create(_draft())
    assert order.sequence_number == 1
    assert order.order_number == format_order_number(YEAR, 1)


def test_sequence_follows_highest_issued(repo):
    _squat(format_order_number(YEAR, 41), 41)
    assert repo.create(_draft()).order_number == format_order_number(YEAR, 42)


def test_taken_number_is_skipped(repo):
    _squat(format_order_number(YEAR, 2), 1)
    order = repo.create(_draft())
    assert order.order_number == format_order_number(YEAR, 3)


def test_gives_up_after_max_attempts(repo):
    _squat(format_order_number(YEAR, 2), 1)
    with pytest.raises(OrderNumberUnavailable):
        repo.create(_draft(), max_attempts=1)


def test_created_order_is_persisted(repo):
    order = repo.create(_draft())
    found = repo.find_by_order_number(order.order_number, "cust-001")
    assert found.id == order.id
    assert found.pricing.total_amount == 159_000


class TestCommitTimeNumberConflict:
    """A concurrent checkout can claim the same number between our read and
    our commit; the database only reports it when the unit of work commits."""

    @pytest.fixture()
    def failing_commits(self, monkeypatch):
        from protean.core.unit_of_work import UnitOfWork
        from protean.exceptions import TransactionError
        from sqlalchemy.exc import IntegrityError

        original_commit = UnitOfWork.commit
        state = {"remaining": 0, "calls": 0, "column": "order_number"}

        def commit(self):
            state["calls"] += 1
            if state["remaining"] > 0:
                state["remaining"] -= 1
                violation = IntegrityError(
                    "INSERT INTO order ...",
                    {},
                    Exception(f'duplicate key value violates unique constraint "order_{state["column"]}_key"'),
                )
                raise TransactionError("Unit of Work commit failed") from violation
            return original_commit(self)

        monkeypatch.setattr(UnitOfWork, "commit", commit)
        return state

    def _checkout(self, fake_gateway, **settings):
        from ordering.checkout.service import CheckoutService
        from ordering.config import CheckoutSettings

        return CheckoutService(gateway=fake_gateway, settings=CheckoutSettings(**settings))

    def test_number_conflict_retries_the_unit_of_work(
        self, failing_commits, fake_gateway, shipping_methods, cart, address
    ):
        failing_commits.update(remaining=1, calls=0)

        result = self._checkout(fake_gateway).place_order(
            owner_id="cust-001", cart_lines=cart, shipping_method_id="post", shipping_address=address
        )

        assert result.is_ok, result
        # Failed create, successful create, payment session
        assert failing_commits["calls"] == 3
        orders = current_domain.repository_for(Order).list_for_owner("cust-001")
        assert [o.order_number for o in orders] == [result.value.order_number]

    def test_gives_up_after_max_attempts(self, failing_commits, fake_gateway, shipping_methods, cart, address):
        from ordering.checkout.results import ErrorCode

        failing_commits.update(remaining=10, calls=0)

        result = self._checkout(fake_gateway, max_order_number_attempts=2).place_order(
            owner_id="cust-001", cart_lines=cart, shipping_method_id="post", shipping_address=address
        )

        assert result.error.code == ErrorCode.ORDER_CREATE_FAILED
        assert failing_commits["calls"] == 2
        assert current_domain.repository_for(Order).list_for_owner("cust-001") == []
        assert fake_gateway.calls_to("request_session") == []

    def test_other_commit_failures_are_not_retried(
        self, failing_commits, fake_gateway, shipping_methods, cart, address
    ):
        from ordering.checkout.results import ErrorCode

        failing_commits.update(remaining=1, calls=0)
        failing_commits["column"] = "owner_id"

        result = self._checkout(fake_gateway).place_order(
            owner_id="cust-001", cart_lines=cart, shipping_method_id="post", shipping_address=address
        )

        assert result.error.code == ErrorCode.ORDER_CREATE_FAILED
        assert failing_commits["calls"] == 1
