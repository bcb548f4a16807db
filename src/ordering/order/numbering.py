"""Human-readable order numbers: ORD-{year}-{sequence:06d}."""

import re

ORDER_NUMBER_PATTERN = re.compile(r"^ORD-(\d{4})-(\d{6,})$")


def format_order_number(year: int, sequence: int) -> str:
    return f"ORD-{year}-{sequence:06d}"


def is_order_number(value) -> bool:
    return bool(value) and ORDER_NUMBER_PATTERN.match(str(value)) is not None
