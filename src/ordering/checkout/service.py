"""Checkout Orchestrator: from a submitted cart to a settled payment.

CheckoutService sequences validation, pricing, order creation and the payment
provider round trip:

    place_order ──► order PENDING_PAYMENT ──► provider session ──► redirect
    complete_from_callback ──► verify ──► PAID | PAYMENT_FAILED
    retry_payment ──► new session against the same order

Each step commits on its own, so an order survives a failed session request
and can be retried. Order mutations run in a unit of work and are retried on
version conflicts, so concurrent callbacks settle an order exactly once.
"""

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, TransactionError, ValidationError
from protean.utils.globals import current_domain
from sqlalchemy.exc import IntegrityError

from ordering.address.address import CustomerAddress
from ordering.checkout.results import (
    ErrorCode,
    Ok,
    PaymentRedirect,
    fail,
)
from ordering.config import CheckoutSettings
from ordering.coupon.coupon import Coupon
from ordering.coupon.validation import CouponApproval, CouponRejection, validate_coupon
from ordering.order.cancellation import CancelOrder
from ordering.order.order import AttemptOutcome, Order, OrderStatus, ShippingAddress
from ordering.order.payment_session import PaymentSession
from ordering.order.repository import OrderDraft, OrderNumberUnavailable
from ordering.pricing.calculator import calculate_pricing
from ordering.shipping.shipping_method import ShippingMethod
from payments.gateway import get_gateway
from payments.gateway.port import PaymentRequest

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = ("full_name", "phone", "street", "city", "province", "postal_code", "country")

_COUPON_ERRORS = {
    CouponRejection.NOT_FOUND: ErrorCode.COUPON_NOT_FOUND,
    CouponRejection.EXPIRED: ErrorCode.COUPON_EXPIRED,
    CouponRejection.MINIMUM_NOT_MET: ErrorCode.COUPON_MINIMUM_NOT_MET,
    CouponRejection.NOT_APPLICABLE_TO_ITEMS: ErrorCode.COUPON_NOT_APPLICABLE_TO_ITEMS,
}


def _first_message(exc: ValidationError, default_field: str) -> tuple[str, str]:
    messages = exc.messages if isinstance(exc.messages, dict) else {default_field: [str(exc)]}
    field_name = next(iter(messages), default_field)
    detail = messages.get(field_name) or ["is invalid"]
    text = detail[0] if isinstance(detail, list | tuple) else str(detail)
    return field_name, text


def _is_order_number_conflict(exc: TransactionError) -> bool:
    """True when a commit failed on the unique order number."""
    cause = exc.__cause__
    return isinstance(cause, IntegrityError) and "order_number" in str(cause)


class CheckoutService:
    def __init__(self, gateway=None, settings: CheckoutSettings | None = None) -> None:
        self._gateway = gateway
        self.settings = settings or CheckoutSettings.from_env()

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    # -------------------------------------------------------------------
    # Placing an order
    # -------------------------------------------------------------------
    def place_order(
        self,
        owner_id,
        cart_lines,
        shipping_method_id,
        shipping_address: dict | None = None,
        saved_address_id=None,
        coupon_code: str | None = None,
        expected_total: int | None = None,
    ):
        """Create an order from a cart and open a payment session for it.

        Returns Ok(PaymentRedirect) or Err(CheckoutError). If the order was
        stored but the provider could not open a session, the error is
        PAYMENT_REQUEST_FAILED and carries the order number for a retry.
        """
        if not owner_id:
            return fail(ErrorCode.VALIDATION_ERROR, "A signed-in customer is required", field="owner_id")

        # 1. Cart
        lines = list(cart_lines or [])
        if not lines:
            return fail(ErrorCode.EMPTY_CART, "Your cart is empty", field="cart_lines")
        for index, line in enumerate(lines):
            problems = line.problems()
            if problems:
                field_name, message = next(iter(problems.items()))
                return fail(ErrorCode.INVALID_CART_LINE, message, field=f"cart_lines[{index}].{field_name}")

        # 2. Shipping method
        method = current_domain.repository_for(ShippingMethod).find_active(shipping_method_id)
        if method is None:
            return fail(
                ErrorCode.INVALID_SHIPPING_METHOD,
                "Selected shipping method is not available",
                field="shipping_method_id",
            )

        address = self._resolve_address(owner_id, shipping_address, saved_address_id)
        if not address.is_ok:
            return address

        # 3. Coupon
        subtotal = sum(line.line_total for line in lines)
        discount, normalized_code = 0, None
        if coupon_code and coupon_code.strip():
            checked = self.check_coupon(coupon_code, subtotal, lines)
            if not checked.is_ok:
                return checked
            discount, normalized_code = checked.value.discount_amount, checked.value.code

        # 4. Pricing
        breakdown = calculate_pricing(
            lines,
            shipping_cost=method.price,
            discount_amount=discount,
            tax_rate_percent=self.settings.tax_rate_percent,
        )
        if expected_total is not None and expected_total != breakdown.total_amount:
            logger.warning(
                "pricing_mismatch",
                owner_id=str(owner_id),
                submitted_total=expected_total,
                computed_total=breakdown.total_amount,
            )
            return fail(
                ErrorCode.PRICING_MISMATCH,
                f"Order total has changed to {breakdown.total_amount}; please review your order",
                field="expected_total",
            )

        # 5. Persist
        draft = OrderDraft(
            owner_id=str(owner_id),
            items=[
                {
                    "product_id": line.product_id,
                    "variant_id": line.variant_id,
                    "sku": line.sku,
                    "name": line.name,
                    "image": line.image,
                    "unit_price": line.unit_price,
                    "quantity": line.quantity,
                    "attributes": line.attributes,
                }
                for line in lines
            ],
            shipping_address=address.value,
            shipping_method_code=method.code,
            shipping_method_name=method.name,
            pricing={**breakdown.as_dict(), "currency": self.settings.currency},
            coupon_code=normalized_code,
        )
        created = self._create_order(draft)
        if not created.is_ok:
            return created
        order = created.value

        logger.info(
            "order_placed",
            order_number=order.order_number,
            total_amount=order.pricing.total_amount,
            coupon_code=normalized_code,
        )

        # 6. Payment session
        return self._open_payment_session(order)

    def _resolve_address(self, owner_id, shipping_address, saved_address_id):
        if saved_address_id:
            saved = current_domain.repository_for(CustomerAddress).find_for_owner(saved_address_id, owner_id)
            if saved is None:
                return fail(ErrorCode.ADDRESS_NOT_FOUND, "Saved address not found", field="saved_address_id")
            snapshot = saved.as_snapshot()
        elif shipping_address:
            snapshot = {}
            for name in _ADDRESS_FIELDS:
                value = shipping_address.get(name)
                snapshot[name] = value.strip() if isinstance(value, str) else value
            snapshot["country"] = snapshot.get("country") or "IR"
        else:
            return fail(ErrorCode.INVALID_ADDRESS, "A shipping address is required", field="shipping_address")

        try:
            ShippingAddress(**snapshot)
        except ValidationError as exc:
            field_name, message = _first_message(exc, "shipping_address")
            return fail(ErrorCode.INVALID_ADDRESS, f"{field_name}: {message}", field=f"shipping_address.{field_name}")
        return Ok(snapshot)

    def _create_order(self, draft: OrderDraft):
        """Persist ``draft``, claiming the next order number again when a
        concurrent checkout took it first."""
        attempts = max(1, self.settings.max_order_number_attempts)
        for attempt in range(1, attempts + 1):
            try:
                with UnitOfWork():
                    order = current_domain.repository_for(Order).create(draft, max_attempts=attempts)
                return Ok(order)
            except TransactionError as exc:
                if not _is_order_number_conflict(exc):
                    logger.exception("order_create_failed")
                    return fail(ErrorCode.ORDER_CREATE_FAILED, "Could not create your order, please try again")
                logger.info("order_number_conflict", attempt=attempt)
            except ValidationError as exc:
                field_name, message = _first_message(exc, "order")
                return fail(ErrorCode.VALIDATION_ERROR, f"{field_name}: {message}", field=field_name)
            except OrderNumberUnavailable as exc:
                logger.error("order_create_failed", reason=str(exc))
                return fail(ErrorCode.ORDER_CREATE_FAILED, "Could not create your order, please try again")
            except Exception:
                logger.exception("order_create_failed")
                return fail(ErrorCode.ORDER_CREATE_FAILED, "Could not create your order, please try again")

        logger.error("order_create_failed", reason="order number conflicts", attempts=attempts)
        return fail(ErrorCode.ORDER_CREATE_FAILED, "Could not create your order, please try again")

    def check_coupon(self, code, subtotal, lines):
        """Validate a coupon without using it up. Ok(CouponApproval) or Err."""
        outcome = validate_coupon(code, subtotal, lines)
        if isinstance(outcome, CouponApproval):
            return Ok(outcome)
        return fail(_COUPON_ERRORS[outcome.reason], outcome.message, field="coupon_code")

    # -------------------------------------------------------------------
    # Payment sessions
    # -------------------------------------------------------------------
    def retry_payment(self, order_number, owner_id):
        """Open a fresh payment session for an existing, unpaid order.

        Nothing about the order is re-validated or re-priced.
        """
        order = current_domain.repository_for(Order).find_by_order_number(order_number, owner_id)
        if order is None:
            return fail(ErrorCode.ORDER_NOT_FOUND, "Order not found", field="order_number")
        if order.is_finalized:
            return self._already_finalized(order)
        return self._open_payment_session(order)

    def _open_payment_session(self, order):
        gateway = self.gateway
        request = PaymentRequest(
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.pricing.total_amount,
            callback_url=self.settings.payment_callback_url,
            description=f"Payment for order {order.order_number}",
            currency=order.pricing.currency,
            mobile=order.shipping_address.phone if order.shipping_address else None,
        )
        session = gateway.request_session(request)
        if not session.success:
            logger.warning(
                "payment_session_failed",
                order_number=order.order_number,
                gateway=gateway.name,
                reason=session.failure_reason,
                unavailable=session.unavailable,
            )
            return fail(
                ErrorCode.PAYMENT_REQUEST_FAILED,
                session.failure_reason or "Could not start the payment, please try again",
                order_number=order.order_number,
            )

        def record_session():
            repo = current_domain.repository_for(Order)
            fresh = repo.get(order.id)
            fresh.start_payment_attempt(session.session_token, session.redirect_url)
            repo.add(fresh)
            current_domain.repository_for(PaymentSession).add(
                PaymentSession.open(session.session_token, fresh, gateway.name)
            )
            return fresh

        try:
            updated = self._with_conflict_retry(record_session, order_id=str(order.id))
        except (ValidationError, ExpectedVersionError):
            current = current_domain.repository_for(Order).get(order.id)
            if current.is_finalized:
                return self._already_finalized(current)
            logger.exception("payment_session_not_recorded", order_number=order.order_number)
            return fail(
                ErrorCode.PAYMENT_REQUEST_FAILED,
                "Could not start the payment, please try again",
                order_number=order.order_number,
            )

        logger.info(
            "payment_session_requested",
            order_number=updated.order_number,
            attempt_number=updated.latest_attempt.attempt_number,
            gateway=gateway.name,
        )
        redirect = PaymentRedirect(
            order=updated, redirect_url=session.redirect_url, session_token=session.session_token
        )
        return Ok(redirect)

    # -------------------------------------------------------------------
    # Provider callback
    # -------------------------------------------------------------------
    def order_for_session(self, session_token):
        """The order a provider session belongs to, or None."""
        if not session_token:
            return None
        try:
            session = current_domain.repository_for(PaymentSession).get(session_token)
        except ObjectNotFoundError:
            return None
        return current_domain.repository_for(Order).get(session.order_id)

    def complete_from_callback(self, session_token, provider_reference=None, error_code=None):
        """Settle a payment session after the provider sends the shopper back.

        ``error_code`` is set when the provider already reported the payment
        as abandoned or declined; verification is then skipped. Replays are
        safe: a settled session never reaches the provider again.
        """
        order = self.order_for_session(session_token)
        if order is None:
            return fail(ErrorCode.PAYMENT_SESSION_NOT_FOUND, "Payment session not found", field="session_token")

        settled = self._settled_outcome(order, session_token)
        if settled is not None:
            return settled

        if error_code is not None:
            reason = f"Payment was not completed at the provider ({error_code})"
            return self._record_failure(order, session_token, reason, provider_reference)

        verification = self.gateway.verify(session_token, provider_reference, order.pricing.total_amount)
        if verification.verified:
            return self._record_success(order, session_token, verification.transaction_id, provider_reference)

        if verification.unavailable:
            logger.warning("payment_verification_unavailable", order_number=order.order_number)
            return fail(
                ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE,
                "Could not confirm the payment yet, please try again shortly",
                order_number=order.order_number,
            )

        return self._record_failure(
            order,
            session_token,
            verification.failure_reason or "Payment could not be verified",
            provider_reference,
        )

    def _settled_outcome(self, order, session_token):
        if order.is_finalized:
            return self._already_finalized(order)

        attempt = order.attempt_for(session_token)
        if attempt is None:
            return fail(ErrorCode.PAYMENT_SESSION_NOT_FOUND, "Payment session not found", field="session_token")
        if attempt.outcome == AttemptOutcome.FAILED.value:
            return fail(
                ErrorCode.PAYMENT_VERIFICATION_FAILED,
                attempt.failure_reason or "Payment could not be verified",
                order_number=order.order_number,
            )
        return None

    def _record_success(self, order, session_token, transaction_id, provider_reference):
        def settle():
            order_repo = current_domain.repository_for(Order)
            paid, transitioned = order_repo.mark_paid(order.id, session_token, transaction_id, provider_reference)
            if transitioned and paid.coupon_code:
                self._redeem_coupon(paid)
            return paid, transitioned

        try:
            paid, transitioned = self._with_conflict_retry(settle, order_id=str(order.id))
        except (ValidationError, ExpectedVersionError):
            current = current_domain.repository_for(Order).get(order.id)
            if current.is_finalized and current.attempt_for(session_token).outcome != AttemptOutcome.VERIFIED.value:
                # The provider took the money but the order was settled another way
                logger.error(
                    "payment_verified_for_finalized_order",
                    order_number=current.order_number,
                    status=current.status,
                    transaction_id=transaction_id,
                )
            if current.status == OrderStatus.PAID.value and current.payment_reference == transaction_id:
                return Ok(current)
            return self._settled_outcome(current, session_token) or fail(
                ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE,
                "Could not confirm the payment yet, please try again shortly",
                order_number=current.order_number,
            )

        if transitioned:
            logger.info(
                "payment_verified",
                order_number=paid.order_number,
                transaction_id=transaction_id,
                amount=paid.pricing.total_amount,
            )
        return Ok(paid)

    def _record_failure(self, order, session_token, reason, provider_reference):
        def settle():
            return current_domain.repository_for(Order).mark_payment_failed(
                order.id, session_token, reason, provider_reference
            )

        try:
            failed, changed = self._with_conflict_retry(settle, order_id=str(order.id))
        except (ValidationError, ExpectedVersionError):
            current = current_domain.repository_for(Order).get(order.id)
            return self._settled_outcome(current, session_token) or fail(
                ErrorCode.PAYMENT_VERIFICATION_FAILED, reason, order_number=current.order_number
            )

        if changed:
            logger.info("payment_verification_failed", order_number=failed.order_number, reason=reason)
        return fail(ErrorCode.PAYMENT_VERIFICATION_FAILED, reason, order_number=failed.order_number)

    def _redeem_coupon(self, order):
        coupon_repo = current_domain.repository_for(Coupon)
        coupon = coupon_repo.find_by_code(order.coupon_code)
        if coupon is None:
            logger.warning("coupon_missing_at_redemption", order_number=order.order_number, code=order.coupon_code)
            return
        if coupon.redeem(order.id):
            coupon_repo.add(coupon)
            logger.info("coupon_redeemed", code=coupon.code, order_number=order.order_number)

    # -------------------------------------------------------------------
    # Reads and cancellation
    # -------------------------------------------------------------------
    def list_orders(self, owner_id):
        return Ok(current_domain.repository_for(Order).list_for_owner(owner_id))

    def find_order(self, order_number, owner_id):
        order = current_domain.repository_for(Order).find_by_order_number(order_number, owner_id)
        if order is None:
            return fail(ErrorCode.ORDER_NOT_FOUND, "Order not found", field="order_number")
        return Ok(order)

    def cancel_order(self, order_number, owner_id, reason=None):
        repo = current_domain.repository_for(Order)
        order = repo.find_by_order_number(order_number, owner_id)
        if order is None:
            return fail(ErrorCode.ORDER_NOT_FOUND, "Order not found", field="order_number")
        if order.is_finalized:
            return self._already_finalized(order)
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            return fail(
                ErrorCode.ORDER_NOT_CANCELLABLE,
                "Only orders awaiting payment can be cancelled",
                order_number=order.order_number,
            )

        try:
            current_domain.process(
                CancelOrder(order_id=str(order.id), owner_id=str(owner_id), reason=reason),
                asynchronous=False,
            )
        except (ValidationError, ExpectedVersionError):
            current = repo.get(order.id)
            if current.is_finalized:
                return self._already_finalized(current)
            return fail(
                ErrorCode.ORDER_NOT_CANCELLABLE,
                "Only orders awaiting payment can be cancelled",
                order_number=current.order_number,
            )

        logger.info("order_cancelled", order_number=order.order_number)
        return Ok(repo.get(order.id))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _already_finalized(self, order):
        return fail(
            ErrorCode.ORDER_ALREADY_FINALIZED,
            f"Order {order.order_number} is already {OrderStatus(order.status).name.lower()}",
            order_number=order.order_number,
        )

    def _with_conflict_retry(self, operation, **log_context):
        """Run ``operation`` in a unit of work, re-running it on version conflicts."""
        attempts = max(1, self.settings.max_conflict_retries)
        for attempt in range(1, attempts + 1):
            try:
                with UnitOfWork():
                    return operation()
            except ExpectedVersionError:
                logger.warning("order_settlement_conflict", attempt=attempt, **log_context)
                if attempt == attempts:
                    raise
