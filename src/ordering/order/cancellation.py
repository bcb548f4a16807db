"""Order cancellation: command and handler.

Only the owner can cancel, and only while the order still awaits payment.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    owner_id = Identifier(required=True)
    reason = String(max_length=500)


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if not order.is_owned_by(command.owner_id):
            raise ObjectNotFoundError({"_entity": f"Order with id {command.order_id} does not exist"})
        order.cancel(reason=command.reason)
        repo.add(order)
