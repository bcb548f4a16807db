"""Pydantic request/response schemas for the checkout API.

These are external contracts, kept apart from the internal Protean commands
and the checkout service's result types.
"""

import json

from pydantic import BaseModel, Field

from ordering.checkout.cart_line import CartLine


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    full_name: str
    phone: str
    street: str
    city: str
    province: str | None = None
    postal_code: str
    country: str = "IR"


class CartLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str
    name: str
    unit_price: int = Field(ge=0)
    quantity: int = Field(ge=1)
    image: str | None = None
    category_id: str | None = None
    attributes: dict = Field(default_factory=dict)

    def to_cart_line(self) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            variant_id=self.variant_id,
            sku=self.sku,
            name=self.name,
            unit_price=self.unit_price,
            quantity=self.quantity,
            image=self.image,
            category_id=self.category_id,
            attributes=dict(self.attributes),
        )


class ErrorBody(BaseModel):
    code: str
    message: str
    field: str | None = None
    order_number: str | None = None
    retryable: bool = False


class ErrorResponse(BaseModel):
    error: ErrorBody


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    cart_lines: list[CartLineSchema]
    shipping_method_id: str
    shipping_address: AddressSchema | None = None
    saved_address_id: str | None = None
    coupon_code: str | None = None
    expected_total: int | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "cart_lines": [
                        {
                            "product_id": "prod-001",
                            "sku": "TEA-GREEN-250",
                            "name": "Green Tea 250g",
                            "unit_price": 500000,
                            "quantity": 2,
                        }
                    ],
                    "shipping_method_id": "post",
                    "shipping_address": {
                        "full_name": "Sara Ahmadi",
                        "phone": "09121234567",
                        "street": "12 Valiasr St",
                        "city": "Tehran",
                        "province": "Tehran",
                        "postal_code": "1234567890",
                        "country": "IR",
                    },
                    "coupon_code": None,
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class ValidateCouponRequest(BaseModel):
    code: str
    subtotal: int = Field(ge=0)
    items: list[CartLineSchema] = Field(default_factory=list)


class SaveAddressRequest(AddressSchema):
    label: str | None = None


class PaymentWebhookRequest(BaseModel):
    authority: str
    status: str
    amount: int | None = None
    ref_id: int | str | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Payment declined"
    verify_should_succeed: bool | None = None
    unavailable: bool = False
    verify_unavailable: bool = False


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class PricingSchema(BaseModel):
    subtotal: int
    shipping_amount: int
    tax_amount: int
    discount_amount: int
    total_amount: int
    currency: str


class OrderItemSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str
    name: str
    image: str | None = None
    unit_price: int
    quantity: int
    line_total: int
    attributes: dict = Field(default_factory=dict)


class PaymentAttemptSchema(BaseModel):
    attempt_number: int
    outcome: str
    transaction_id: str | None = None
    failure_reason: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    shipping_method: str
    shipping_address: AddressSchema
    pricing: PricingSchema
    coupon_code: str | None = None
    items: list[OrderItemSchema]
    payment_attempts: list[PaymentAttemptSchema]
    payment_reference: str | None = None
    failure_reason: str | None = None
    created_at: str | None = None
    paid_at: str | None = None
    cancelled_at: str | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        address = order.shipping_address
        pricing = order.pricing
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            shipping_method=order.shipping_method_code,
            shipping_address=AddressSchema(
                full_name=address.full_name,
                phone=address.phone,
                street=address.street,
                city=address.city,
                province=address.province,
                postal_code=address.postal_code,
                country=address.country,
            ),
            pricing=PricingSchema(
                subtotal=pricing.subtotal,
                shipping_amount=pricing.shipping_amount,
                tax_amount=pricing.tax_amount,
                discount_amount=pricing.discount_amount,
                total_amount=pricing.total_amount,
                currency=pricing.currency,
            ),
            coupon_code=order.coupon_code,
            items=[
                OrderItemSchema(
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    sku=item.sku,
                    name=item.name,
                    image=item.image,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    line_total=item.line_total,
                    attributes=json.loads(item.attributes or "{}"),
                )
                for item in order.items
            ],
            payment_attempts=[
                PaymentAttemptSchema(
                    attempt_number=attempt.attempt_number,
                    outcome=attempt.outcome,
                    transaction_id=attempt.transaction_id,
                    failure_reason=attempt.failure_reason,
                )
                for attempt in sorted(order.payment_attempts, key=lambda a: a.attempt_number)
            ],
            payment_reference=order.payment_reference,
            failure_reason=order.failure_reason,
            created_at=order.created_at.isoformat() if order.created_at else None,
            paid_at=order.paid_at.isoformat() if order.paid_at else None,
            cancelled_at=order.cancelled_at.isoformat() if order.cancelled_at else None,
        )


class PaymentRedirectResponse(BaseModel):
    order_id: str
    order_number: str
    total_amount: int
    redirect_url: str


class CouponValidationResponse(BaseModel):
    code: str
    discount_amount: int


class ShippingMethodSchema(BaseModel):
    id: str
    code: str
    name: str
    description: str | None = None
    price: int
    estimated_days: int | None = None


class SavedAddressSchema(AddressSchema):
    address_id: str
    label: str | None = None


class AddressIdResponse(BaseModel):
    address_id: str


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    verify_should_succeed: bool
    failure_reason: str
