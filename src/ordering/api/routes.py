"""FastAPI routes for checkout, orders and payment callbacks."""

import os
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from protean.utils.globals import current_domain

from ordering.address.address import CustomerAddress, SaveAddress
from ordering.api.schemas import (
    AddressIdResponse,
    CancelOrderRequest,
    ConfigureGatewayRequest,
    CouponValidationResponse,
    ErrorResponse,
    GatewayConfigResponse,
    OrderResponse,
    PaymentRedirectResponse,
    PaymentWebhookRequest,
    PlaceOrderRequest,
    SaveAddressRequest,
    SavedAddressSchema,
    ShippingMethodSchema,
    ValidateCouponRequest,
)
from ordering.checkout.results import ErrorCode
from ordering.checkout.service import CheckoutService
from ordering.order.order import OrderStatus
from ordering.shipping.shipping_method import ShippingMethod
from payments.gateway import get_gateway
from payments.gateway.fake_adapter import FakeGateway

_STATUS_FOR_CODE = {
    ErrorCode.EMPTY_CART: 422,
    ErrorCode.INVALID_CART_LINE: 422,
    ErrorCode.INVALID_SHIPPING_METHOD: 422,
    ErrorCode.INVALID_ADDRESS: 422,
    ErrorCode.ADDRESS_NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.COUPON_NOT_FOUND: 422,
    ErrorCode.COUPON_EXPIRED: 422,
    ErrorCode.COUPON_MINIMUM_NOT_MET: 422,
    ErrorCode.COUPON_NOT_APPLICABLE_TO_ITEMS: 422,
    ErrorCode.PRICING_MISMATCH: 400,
    ErrorCode.ORDER_CREATE_FAILED: 503,
    ErrorCode.PAYMENT_REQUEST_FAILED: 502,
    ErrorCode.PAYMENT_VERIFICATION_FAILED: 502,
    ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE: 502,
    ErrorCode.PAYMENT_SESSION_NOT_FOUND: 404,
    ErrorCode.ORDER_NOT_FOUND: 404,
    ErrorCode.ORDER_ALREADY_FINALIZED: 409,
    ErrorCode.ORDER_NOT_CANCELLABLE: 409,
}

_ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in sorted(set(_STATUS_FOR_CODE.values()))}


def error_response(error) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_FOR_CODE[error.code], content={"error": error.as_dict()})


def checkout_service() -> CheckoutService:
    return CheckoutService()


def current_owner(x_user_id: str = Header(default="")) -> str:
    """The signed-in customer, as forwarded by the auth layer."""
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(tags=["checkout"], responses=_ERROR_RESPONSES)


@checkout_router.get("/shipping-methods", response_model=list[ShippingMethodSchema])
async def list_shipping_methods() -> list[ShippingMethodSchema]:
    methods = current_domain.repository_for(ShippingMethod).list_active()
    return [
        ShippingMethodSchema(
            id=str(m.id),
            code=m.code,
            name=m.name,
            description=m.description,
            price=m.price,
            estimated_days=m.estimated_days,
        )
        for m in methods
    ]


@checkout_router.post("/coupons/validate", response_model=CouponValidationResponse)
async def validate_coupon(
    body: ValidateCouponRequest,
    service: CheckoutService = Depends(checkout_service),
):
    result = service.check_coupon(body.code, body.subtotal, [item.to_cart_line() for item in body.items])
    if not result.is_ok:
        return error_response(result.error)
    return CouponValidationResponse(code=result.value.code, discount_amount=result.value.discount_amount)


@checkout_router.get("/addresses", response_model=list[SavedAddressSchema])
async def list_addresses(owner_id: str = Depends(current_owner)) -> list[SavedAddressSchema]:
    addresses = current_domain.repository_for(CustomerAddress).list_for_owner(owner_id)
    return [SavedAddressSchema(address_id=str(a.id), label=a.label, **a.as_snapshot()) for a in addresses]


@checkout_router.post("/addresses", status_code=201, response_model=AddressIdResponse)
async def save_address(body: SaveAddressRequest, owner_id: str = Depends(current_owner)) -> AddressIdResponse:
    command = SaveAddress(owner_id=owner_id, **body.model_dump())
    address_id = current_domain.process(command, asynchronous=False)
    return AddressIdResponse(address_id=address_id)


# Routes that wait on the payment provider are plain ``def`` so they run in
# FastAPI's threadpool instead of on the event loop.
@checkout_router.post("/checkout", status_code=201, response_model=PaymentRedirectResponse)
def place_order(
    body: PlaceOrderRequest,
    owner_id: str = Depends(current_owner),
    service: CheckoutService = Depends(checkout_service),
):
    result = service.place_order(
        owner_id=owner_id,
        cart_lines=[line.to_cart_line() for line in body.cart_lines],
        shipping_method_id=body.shipping_method_id,
        shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
        saved_address_id=body.saved_address_id,
        coupon_code=body.coupon_code,
        expected_total=body.expected_total,
    )
    if not result.is_ok:
        return error_response(result.error)

    redirect = result.value
    return PaymentRedirectResponse(
        order_id=str(redirect.order.id),
        order_number=redirect.order_number,
        total_amount=redirect.order.pricing.total_amount,
        redirect_url=redirect.redirect_url,
    )


@checkout_router.get("/orders", response_model=list[OrderResponse])
async def list_orders(
    owner_id: str = Depends(current_owner),
    service: CheckoutService = Depends(checkout_service),
) -> list[OrderResponse]:
    return [OrderResponse.from_order(order) for order in service.list_orders(owner_id).value]


@checkout_router.get("/orders/{order_number}", response_model=OrderResponse)
async def get_order(
    order_number: str,
    owner_id: str = Depends(current_owner),
    service: CheckoutService = Depends(checkout_service),
):
    result = service.find_order(order_number, owner_id)
    if not result.is_ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


@checkout_router.post("/orders/{order_number}/retry-payment", response_model=PaymentRedirectResponse)
def retry_payment(
    order_number: str,
    owner_id: str = Depends(current_owner),
    service: CheckoutService = Depends(checkout_service),
):
    result = service.retry_payment(order_number, owner_id)
    if not result.is_ok:
        return error_response(result.error)

    redirect = result.value
    return PaymentRedirectResponse(
        order_id=str(redirect.order.id),
        order_number=redirect.order_number,
        total_amount=redirect.order.pricing.total_amount,
        redirect_url=redirect.redirect_url,
    )


@checkout_router.post("/orders/{order_number}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_number: str,
    body: CancelOrderRequest,
    owner_id: str = Depends(current_owner),
    service: CheckoutService = Depends(checkout_service),
):
    result = service.cancel_order(order_number, owner_id, reason=body.reason)
    if not result.is_ok:
        return error_response(result.error)
    return OrderResponse.from_order(result.value)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"], responses=_ERROR_RESPONSES)


@payment_router.get("/callback")
def payment_callback(
    authority: str = Query(default="", alias="Authority"),
    status: str = Query(default="", alias="Status"),
    service: CheckoutService = Depends(checkout_service),
) -> RedirectResponse:
    """Browser return from the provider; always ends in a storefront redirect."""
    storefront = service.settings.storefront_url
    error_code = None if status.upper() == "OK" else (status or "NOK")

    result = service.complete_from_callback(authority, provider_reference=authority, error_code=error_code)
    if result.is_ok:
        order = result.value
        query = urlencode({"orderNumber": order.order_number, "refId": order.payment_reference})
        return RedirectResponse(f"{storefront}/checkout/success?{query}", status_code=303)

    error = result.error
    if error.code == ErrorCode.ORDER_ALREADY_FINALIZED:
        order = service.order_for_session(authority)
        if order is not None and order.status == OrderStatus.PAID.value:
            query = urlencode({"orderNumber": order.order_number, "refId": order.payment_reference})
            return RedirectResponse(f"{storefront}/checkout/success?{query}", status_code=303)

    params = {"error": error.code.value}
    if error.order_number:
        params["orderNumber"] = error.order_number
    return RedirectResponse(f"{storefront}/checkout?{urlencode(params)}", status_code=303)


@payment_router.post("/webhook")
async def payment_webhook(
    request: Request,
    body: PaymentWebhookRequest,
    x_zarinpal_signature: str = Header(default=""),
    service: CheckoutService = Depends(checkout_service),
):
    """Out-of-band provider notification, settled through the callback path."""
    raw = (await request.body()).decode()
    if not service.gateway.verify_webhook_signature(raw, x_zarinpal_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    error_code = None if body.status.upper() == "OK" else body.status
    reference = str(body.ref_id) if body.ref_id is not None else None
    result = await run_in_threadpool(
        service.complete_from_callback, body.authority, provider_reference=reference, error_code=error_code
    )

    if result.is_ok:
        return {"status": "paid", "order_number": result.value.order_number}
    if result.error.code == ErrorCode.ORDER_ALREADY_FINALIZED:
        return {"status": "already_processed", "order_number": result.error.order_number}
    return error_response(result.error)


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        verify_should_succeed=body.verify_should_succeed,
        unavailable=body.unavailable,
        verify_unavailable=body.verify_unavailable,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        verify_should_succeed=gateway.verify_should_succeed,
        failure_reason=gateway.failure_reason,
    )
