"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (the default)
- ZarinpalGateway when PAYMENT_GATEWAY=zarinpal
"""

import os

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from payments.gateway.zarinpal_adapter import ZarinpalGateway

_current_gateway: PaymentGateway | None = None


def build_gateway_from_env() -> PaymentGateway:
    """Build the gateway named by PAYMENT_GATEWAY."""
    name = os.environ.get("PAYMENT_GATEWAY", "fake").lower()
    if name == "zarinpal":
        return ZarinpalGateway(
            merchant_id=os.environ.get("ZARINPAL_MERCHANT_ID", ""),
            sandbox=os.environ.get("ZARINPAL_SANDBOX", "false").lower() in ("1", "true", "yes"),
            timeout=float(os.environ.get("PAYMENT_GATEWAY_TIMEOUT", "10")),
            webhook_secret=os.environ.get("ZARINPAL_WEBHOOK_SECRET"),
        )
    if name == "fake":
        return FakeGateway()
    raise ValueError(f"Unknown payment gateway: {name}")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway_from_env()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
