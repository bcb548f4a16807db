import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture()
def shipping_methods():
    """Post (50,000) and express (150,000) shipping, plus a retired method."""
    from ordering.shipping.shipping_method import (
        DefineShippingMethod,
        RetireShippingMethod,
    )
    from protean import current_domain

    ids = {}
    for code, name, price, days, order in (
        ("post", "Post", 50_000, 5, 1),
        ("express", "Express courier", 150_000, 2, 2),
        ("camel", "Camel caravan", 10_000, 40, 3),
    ):
        ids[code] = current_domain.process(
            DefineShippingMethod(code=code, name=name, price=price, estimated_days=days, sort_order=order),
            asynchronous=False,
        )
    current_domain.process(RetireShippingMethod(code="camel"), asynchronous=False)
    return ids


@pytest.fixture()
def define_coupon():
    """Factory fixture: define a coupon and return its code."""
    import json

    from ordering.coupon.management import DefineCoupon
    from protean import current_domain

    def _define(code, discount_type="Fixed", discount_value=100_000, product_ids=None, category_ids=None, **kwargs):
        current_domain.process(
            DefineCoupon(
                code=code,
                discount_type=discount_type,
                discount_value=discount_value,
                product_ids=json.dumps(product_ids) if product_ids is not None else None,
                category_ids=json.dumps(category_ids) if category_ids is not None else None,
                **kwargs,
            ),
            asynchronous=False,
        )
        return code.upper()

    return _define


@pytest.fixture()
def address():
    return {
        "full_name": "Sara Ahmadi",
        "phone": "09121234567",
        "street": "12 Valiasr St",
        "city": "Tehran",
        "province": "Tehran",
        "postal_code": "1234567890",
        "country": "IR",
    }


@pytest.fixture()
def cart():
    """Two lines with a subtotal of exactly 1,000,000."""
    from ordering.checkout.cart_line import CartLine

    return [
        CartLine(
            product_id="prod-tea",
            sku="TEA-250",
            name="Green Tea 250g",
            unit_price=250_000,
            quantity=2,
            category_id="cat-tea",
            attributes={"weight": "250g"},
        ),
        CartLine(
            product_id="prod-pot",
            variant_id="var-blue",
            sku="POT-BLUE",
            name="Teapot",
            unit_price=500_000,
            quantity=1,
            image="https://cdn.example.com/pot.jpg",
            category_id="cat-ware",
        ),
    ]


@pytest.fixture()
def checkout(fake_gateway):
    from ordering.checkout.service import CheckoutService
    from ordering.config import CheckoutSettings

    return CheckoutService(gateway=fake_gateway, settings=CheckoutSettings())


@pytest.fixture()
def placed(checkout, shipping_methods, cart, address):
    """An order placed by cust-001 with a payment session already open."""
    result = checkout.place_order(
        owner_id="cust-001",
        cart_lines=cart,
        shipping_method_id="post",
        shipping_address=address,
    )
    assert result.is_ok, result
    return result.value
