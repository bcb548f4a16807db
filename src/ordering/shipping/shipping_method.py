"""Shipping method catalogue (CQRS).

Checkout resolves the shopper's chosen method here; its price and name are
then copied onto the order.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class ShippingMethod:
    code = String(required=True, max_length=50, unique=True)
    name = String(required=True, max_length=100)
    description = String(max_length=255)
    price = Integer(required=True, min_value=0)
    estimated_days = Integer(min_value=0)
    is_active = Boolean(default=True)
    sort_order = Integer(default=0)

    def retire(self):
        self.is_active = False


@ordering.repository(part_of=ShippingMethod)
class ShippingMethodRepository:
    def find_active(self, method_id_or_code):
        """Resolve an active method by id or by code; None if unknown or retired."""
        key = str(method_id_or_code or "").strip()
        if not key:
            return None

        method = self._dao.query.filter(code=key.lower()).all().first
        if method is None:
            method = self._dao.query.filter(id=key).all().first
        if method is None or not method.is_active:
            return None
        return method

    def list_active(self):
        methods = self._dao.query.filter(is_active=True).all().items
        return sorted(methods, key=lambda m: (m.sort_order or 0, m.price))


@ordering.command(part_of="ShippingMethod")
class DefineShippingMethod:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=100)
    description = String(max_length=255)
    price = Integer(required=True, min_value=0)
    estimated_days = Integer(min_value=0)
    sort_order = Integer(default=0)


@ordering.command(part_of="ShippingMethod")
class RetireShippingMethod:
    code = String(required=True, max_length=50)


@ordering.command_handler(part_of=ShippingMethod)
class ShippingMethodHandler:
    @handle(DefineShippingMethod)
    def define_shipping_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        code = command.code.strip().lower()
        if repo._dao.query.filter(code=code).all().first is not None:
            raise ValidationError({"code": [f"Shipping method {code} already exists"]})

        method = ShippingMethod(
            code=code,
            name=command.name,
            description=command.description,
            price=command.price,
            estimated_days=command.estimated_days,
            sort_order=command.sort_order,
            is_active=True,
        )
        repo.add(method)
        return str(method.id)

    @handle(RetireShippingMethod)
    def retire_shipping_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        method = repo._dao.query.filter(code=command.code.strip().lower()).all().first
        if method is None:
            raise ValidationError({"code": ["Shipping method not found"]})
        method.retire()
        repo.add(method)
