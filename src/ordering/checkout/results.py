"""Tagged results returned by the checkout service.

Every public checkout operation returns ``Ok(value)`` or ``Err(error)``.
Callers branch on ``error.code``, never on the message text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    # Input validation
    EMPTY_CART = "EMPTY_CART"
    INVALID_CART_LINE = "INVALID_CART_LINE"
    INVALID_SHIPPING_METHOD = "INVALID_SHIPPING_METHOD"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    ADDRESS_NOT_FOUND = "ADDRESS_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Coupons
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    COUPON_MINIMUM_NOT_MET = "COUPON_MINIMUM_NOT_MET"
    COUPON_NOT_APPLICABLE_TO_ITEMS = "COUPON_NOT_APPLICABLE_TO_ITEMS"

    # Pricing and persistence
    PRICING_MISMATCH = "PRICING_MISMATCH"
    ORDER_CREATE_FAILED = "ORDER_CREATE_FAILED"

    # Payment
    PAYMENT_REQUEST_FAILED = "PAYMENT_REQUEST_FAILED"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"
    PAYMENT_PROVIDER_UNAVAILABLE = "PAYMENT_PROVIDER_UNAVAILABLE"
    PAYMENT_SESSION_NOT_FOUND = "PAYMENT_SESSION_NOT_FOUND"

    # Order state
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_ALREADY_FINALIZED = "ORDER_ALREADY_FINALIZED"
    ORDER_NOT_CANCELLABLE = "ORDER_NOT_CANCELLABLE"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.ORDER_CREATE_FAILED,
        ErrorCode.PAYMENT_REQUEST_FAILED,
        ErrorCode.PAYMENT_VERIFICATION_FAILED,
        ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE,
    }
)


@dataclass(frozen=True)
class CheckoutError:
    code: ErrorCode
    message: str
    field: str | None = None
    order_number: str | None = None

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def as_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "field": self.field,
            "order_number": self.order_number,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class Ok:
    value: Any

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: CheckoutError

    @property
    def is_ok(self) -> bool:
        return False


def fail(code: ErrorCode, message: str, field: str | None = None, order_number: str | None = None) -> Err:
    return Err(CheckoutError(code=code, message=message, field=field, order_number=order_number))


@dataclass(frozen=True)
class PaymentRedirect:
    """An order together with the provider page the shopper must visit."""

    order: Any
    redirect_url: str
    session_token: str

    @property
    def order_number(self) -> str:
        return self.order.order_number
