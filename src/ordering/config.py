"""Checkout policy settings, read once from the environment.

The tax rate lives here and nowhere else; the pricing calculator receives it
as an argument.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class CheckoutSettings:
    tax_rate_percent: int = 9
    currency: str = "IRR"
    payment_callback_url: str = "http://localhost:8000/payments/callback"
    storefront_url: str = "http://localhost:3000"
    max_order_number_attempts: int = 5
    max_conflict_retries: int = 3

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        return cls(
            tax_rate_percent=_env_int("CHECKOUT_TAX_RATE_PERCENT", cls.tax_rate_percent),
            currency=os.environ.get("CHECKOUT_CURRENCY", cls.currency),
            payment_callback_url=os.environ.get("PAYMENT_CALLBACK_URL", cls.payment_callback_url),
            storefront_url=os.environ.get("STOREFRONT_URL", cls.storefront_url).rstrip("/"),
        )
