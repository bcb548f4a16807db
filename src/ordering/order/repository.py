"""Order repository: issuing order numbers and owner-scoped lookups."""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from ordering.domain import ordering
from ordering.order.numbering import format_order_number, is_order_number
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


class OrderNumberUnavailable(Exception):
    """No free order number could be claimed within the allowed attempts."""


@dataclass(frozen=True)
class OrderDraft:
    """Everything needed to persist a priced checkout as an order."""

    owner_id: str
    items: list
    shipping_address: dict
    shipping_method_code: str
    shipping_method_name: str
    pricing: dict
    coupon_code: str | None = None


@ordering.repository(part_of=Order)
class OrderRepository:
    def _last_sequence(self) -> int:
        latest = self._dao.query.order_by("-sequence_number").limit(1).all().first
        return latest.sequence_number if latest else 0

    def _order_number_taken(self, order_number) -> bool:
        return self._dao.query.filter(order_number=order_number).all().first is not None

    def create(self, draft: OrderDraft, max_attempts: int = 5) -> Order:
        """Stage ``draft`` under the next free order number.

        Numbers already visible in the store are skipped here. Two checkouts
        racing for the same number are only told apart by the unique
        constraint on ``order_number`` when the unit of work commits, so the
        caller retries the whole unit of work on that conflict.
        """
        year = datetime.now(UTC).year
        sequence = self._last_sequence() + 1

        for _ in range(max_attempts):
            order_number = format_order_number(year, sequence)
            if self._order_number_taken(order_number):
                logger.info("order_number_taken", order_number=order_number)
                sequence += 1
                continue

            order = Order.place(
                order_number=order_number,
                sequence_number=sequence,
                owner_id=draft.owner_id,
                items_data=draft.items,
                shipping_address=draft.shipping_address,
                shipping_method_code=draft.shipping_method_code,
                shipping_method_name=draft.shipping_method_name,
                pricing=draft.pricing,
                coupon_code=draft.coupon_code,
            )
            self.add(order)
            return order

        raise OrderNumberUnavailable(f"Could not claim an order number after {max_attempts} attempts")

    def find_by_order_number(self, order_number, owner_id):
        """The order with this number if ``owner_id`` owns it, else None.

        Someone else's order is indistinguishable from a missing one.
        """
        normalized = str(order_number or "").strip().upper()
        if not is_order_number(normalized):
            return None

        found = self._dao.query.filter(order_number=normalized).all().first
        if found is None or not found.is_owned_by(owner_id):
            return None
        return self.get(found.id)

    def list_for_owner(self, owner_id):
        found = self._dao.query.filter(owner_id=str(owner_id)).order_by("-sequence_number").all().items
        return [self.get(order.id) for order in found]

    def mark_paid(self, order_id, session_token, transaction_id, provider_reference=None):
        """Settle ``order_id`` as paid. Returns (order, transitioned)."""
        order = self.get(order_id)
        transitioned = order.mark_paid(session_token, transaction_id, provider_reference)
        if transitioned:
            self.add(order)
        return order, transitioned

    def mark_payment_failed(self, order_id, session_token, reason, provider_reference=None):
        """Record a failed attempt on ``order_id``. Returns (order, changed)."""
        order = self.get(order_id)
        changed = order.mark_payment_failed(session_token, reason, provider_reference)
        if changed:
            self.add(order)
        return order, changed
