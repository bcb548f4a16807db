"""Payment session index: which order a provider session token belongs to.

Providers call back with nothing but their session token, so every issued
token is recorded here against its order.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, String

from ordering.domain import ordering


@ordering.aggregate
class PaymentSession:
    session_token = String(identifier=True, max_length=255)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=20)
    gateway = String(max_length=50)
    created_at = DateTime()

    @classmethod
    def open(cls, session_token, order, gateway):
        return cls(
            session_token=session_token,
            order_id=str(order.id),
            order_number=order.order_number,
            gateway=gateway,
            created_at=datetime.now(UTC),
        )
