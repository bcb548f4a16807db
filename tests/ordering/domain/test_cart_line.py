"""Tests for cart line validation."""

from ordering.checkout.cart_line import CartLine


def test_valid_line_has_no_problems():
    line = CartLine(product_id="p1", sku="SKU-1", name="Tea", unit_price=1000, quantity=2)
    assert line.problems() == {}
    assert line.line_total == 2000


def test_zero_quantity_is_reported():
    line = CartLine(product_id="p1", sku="SKU-1", name="Tea", unit_price=1000, quantity=0)
    assert "quantity" in line.problems()


def test_negative_price_is_reported():
    line = CartLine(product_id="p1", sku="SKU-1", name="Tea", unit_price=-1, quantity=1)
    assert "unit_price" in line.problems()


def test_fractional_price_is_reported():
    line = CartLine(product_id="p1", sku="SKU-1", name="Tea", unit_price=10.5, quantity=1)
    assert "unit_price" in line.problems()


def test_missing_sku_is_reported():
    line = CartLine(product_id="p1", sku="", name="Tea", unit_price=10, quantity=1)
    assert list(line.problems()) == ["sku"]
