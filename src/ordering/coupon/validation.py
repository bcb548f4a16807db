"""Coupon Validator: checks a code against a cart without touching the coupon."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog
from protean.utils.globals import current_domain

from ordering.coupon.coupon import Coupon

logger = structlog.get_logger(__name__)


class CouponRejection(Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    MINIMUM_NOT_MET = "MINIMUM_NOT_MET"
    NOT_APPLICABLE_TO_ITEMS = "NOT_APPLICABLE_TO_ITEMS"


@dataclass(frozen=True)
class CouponApproval:
    code: str
    discount_amount: int


@dataclass(frozen=True)
class CouponRefusal:
    code: str
    reason: CouponRejection
    message: str


def validate_coupon(code, subtotal: int, lines, now=None) -> CouponApproval | CouponRefusal:
    """Validate ``code`` for a cart with the given ``subtotal`` and ``lines``.

    Checks run in a fixed order: existence, availability window and usage,
    minimum subtotal, then item applicability. The first failing check wins.
    """
    normalized = Coupon.normalize_code(code)
    if not normalized:
        return CouponRefusal(normalized, CouponRejection.NOT_FOUND, "Coupon code is required")

    coupon = current_domain.repository_for(Coupon).find_by_code(normalized)
    if coupon is None:
        return CouponRefusal(normalized, CouponRejection.NOT_FOUND, "Coupon not found")

    problem = coupon.unavailability(now or datetime.now(UTC))
    if problem:
        return CouponRefusal(normalized, CouponRejection.EXPIRED, problem)

    if subtotal < (coupon.minimum_subtotal or 0):
        return CouponRefusal(
            normalized,
            CouponRejection.MINIMUM_NOT_MET,
            f"Order subtotal must be at least {coupon.minimum_subtotal}",
        )

    if not coupon.applies_to(lines):
        return CouponRefusal(
            normalized,
            CouponRejection.NOT_APPLICABLE_TO_ITEMS,
            "Coupon does not apply to any item in the cart",
        )

    discount = coupon.discount_for(subtotal)
    logger.debug("coupon_validated", code=normalized, subtotal=subtotal, discount_amount=discount)
    return CouponApproval(code=normalized, discount_amount=discount)
