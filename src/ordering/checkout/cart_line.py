"""Cart lines as submitted by the storefront at checkout.

Carts live on the client; the server only ever sees them as an explicit list
passed into ``place_order``.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CartLine:
    product_id: str
    sku: str
    name: str
    unit_price: int
    quantity: int
    variant_id: str | None = None
    image: str | None = None
    category_id: str | None = None
    attributes: dict = field(default_factory=dict)

    def problems(self) -> dict[str, str]:
        """Field-level problems with this line, empty when the line is valid."""
        errors = {}
        if not self.product_id:
            errors["product_id"] = "Product is required"
        if not self.sku:
            errors["sku"] = "SKU is required"
        if not self.name:
            errors["name"] = "Name is required"
        if not isinstance(self.quantity, int) or self.quantity < 1:
            errors["quantity"] = "Quantity must be at least 1"
        if not isinstance(self.unit_price, int) or self.unit_price < 0:
            errors["unit_price"] = "Unit price must be a non-negative integer"
        return errors

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity
