"""Customer address book (CQRS).

Saved addresses can be referenced by id at checkout. Orders never point at
them; they receive a ShippingAddress copy instead.
"""

from datetime import UTC, datetime

from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class CustomerAddress:
    owner_id = Identifier(required=True)
    label = String(max_length=50)
    full_name = String(required=True, max_length=150)
    phone = String(required=True, max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    province = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2, default="IR")
    created_at = DateTime()

    def as_snapshot(self) -> dict:
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "province": self.province,
            "postal_code": self.postal_code,
            "country": self.country,
        }


@ordering.repository(part_of=CustomerAddress)
class CustomerAddressRepository:
    def find_for_owner(self, address_id, owner_id):
        """The address, if it exists and belongs to ``owner_id``; otherwise None."""
        address = self._dao.query.filter(id=str(address_id)).all().first
        if address is None or str(address.owner_id) != str(owner_id):
            return None
        return address

    def list_for_owner(self, owner_id):
        return self._dao.query.filter(owner_id=str(owner_id)).all().items


@ordering.command(part_of="CustomerAddress")
class SaveAddress:
    owner_id = Identifier(required=True)
    label = String(max_length=50)
    full_name = String(required=True, max_length=150)
    phone = String(required=True, max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    province = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(max_length=2, default="IR")


@ordering.command_handler(part_of=CustomerAddress)
class SaveAddressHandler:
    @handle(SaveAddress)
    def save_address(self, command):
        address = CustomerAddress(
            owner_id=command.owner_id,
            label=command.label,
            full_name=command.full_name,
            phone=command.phone,
            street=command.street,
            city=command.city,
            province=command.province,
            postal_code=command.postal_code,
            country=command.country or "IR",
            created_at=datetime.now(UTC),
        )
        current_domain.repository_for(CustomerAddress).add(address)
        return str(address.id)
