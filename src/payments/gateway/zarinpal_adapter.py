"""Zarinpal payment gateway adapter (REST API v4).

Talks to Zarinpal's hosted checkout:
- POST {base}/payment/request.json  → authority (our session token)
- shopper pays at {start}/pg/StartPay/{authority}
- POST {base}/payment/verify.json   → ref_id (our transaction id)

Zarinpal answers ``data.code == 100`` for success and ``101`` when a payment
was already verified earlier. Amounts are in Rials.
"""

import hashlib
import hmac
import re

import requests
import structlog

from payments.gateway.port import (
    PaymentGateway,
    PaymentRequest,
    SessionResult,
    VerificationResult,
)

logger = structlog.get_logger(__name__)

CODE_SUCCESS = 100
CODE_ALREADY_VERIFIED = 101

MIN_AMOUNT_RIALS = 10_000
MIN_MERCHANT_ID_LENGTH = 36
MAX_DESCRIPTION_LENGTH = 255


def normalize_mobile(phone: str | None) -> str | None:
    """An Iranian mobile number as ``09xxxxxxxxx``, or None if ``phone`` isn't one."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 12 and digits.startswith("989"):
        digits = digits[2:]
    if len(digits) == 11 and digits.startswith("09"):
        return digits
    if len(digits) == 10 and digits.startswith("9"):
        return f"0{digits}"
    return None


class ZarinpalGateway(PaymentGateway):
    """Production Zarinpal adapter built on ``requests``."""

    name = "zarinpal"

    def __init__(
        self,
        merchant_id: str,
        sandbox: bool = False,
        timeout: float = 10,
        webhook_secret: str | None = None,
    ) -> None:
        self.merchant_id = (merchant_id or "").strip()
        self.sandbox = sandbox
        self.timeout = timeout
        self.webhook_secret = webhook_secret

    @property
    def api_base_url(self) -> str:
        if self.sandbox:
            return "https://sandbox.zarinpal.com/pg/v4"
        return "https://api.zarinpal.com/pg/v4"

    def start_pay_url(self, authority: str) -> str:
        host = "sandbox.zarinpal.com" if self.sandbox else "www.zarinpal.com"
        return f"https://{host}/pg/StartPay/{authority}"

    def _post(self, path: str, body: dict) -> dict:
        response = requests.post(
            f"{self.api_base_url}{path}",
            json=body,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        if response.status_code >= 500:
            response.raise_for_status()
        # A non-JSON body raises requests.JSONDecodeError, itself a RequestException
        return response.json()

    @staticmethod
    def _first_error(payload: dict) -> tuple[int | None, str | None]:
        errors = payload.get("errors")
        # Zarinpal sends an empty list (or an empty object) when there are no errors
        if isinstance(errors, list) and errors:
            return errors[0].get("code"), errors[0].get("message")
        if isinstance(errors, dict) and errors:
            return errors.get("code"), errors.get("message")
        return None, None

    # -------------------------------------------------------------------
    # Port implementation
    # -------------------------------------------------------------------
    def request_session(self, request: PaymentRequest) -> SessionResult:
        if len(self.merchant_id) < MIN_MERCHANT_ID_LENGTH:
            logger.error("zarinpal_merchant_id_invalid", length=len(self.merchant_id))
            return SessionResult(
                success=False,
                gateway_status="misconfigured",
                failure_reason="Payment gateway merchant id is not configured",
            )

        amount = int(request.amount)
        if amount < MIN_AMOUNT_RIALS:
            return SessionResult(
                success=False,
                gateway_status="rejected",
                failure_reason=f"Amount must be at least {MIN_AMOUNT_RIALS} Rials",
            )

        body = {
            "merchant_id": self.merchant_id,
            "amount": amount,
            "description": request.description[:MAX_DESCRIPTION_LENGTH],
            "callback_url": request.callback_url,
        }
        mobile = normalize_mobile(request.mobile)
        if mobile:
            body["mobile"] = mobile
        elif request.mobile:
            logger.info("zarinpal_mobile_skipped", order_number=request.order_number)
        if request.email:
            body["email"] = request.email

        try:
            payload = self._post("/payment/request.json", body)
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning(
                "gateway_request_failed",
                gateway=self.name,
                operation="request",
                order_number=request.order_number,
                error=str(exc),
            )
            return SessionResult(
                success=False,
                gateway_status="unavailable",
                failure_reason="Payment provider could not be reached",
                unavailable=True,
            )
        except requests.RequestException as exc:
            logger.warning(
                "gateway_request_failed",
                gateway=self.name,
                operation="request",
                order_number=request.order_number,
                error=str(exc),
            )
            return SessionResult(
                success=False,
                gateway_status="error",
                failure_reason="Payment provider request failed",
                unavailable=True,
            )

        error_code, error_message = self._first_error(payload)
        data = payload.get("data") or {}
        if error_code is None and data.get("code") == CODE_SUCCESS and data.get("authority"):
            authority = data["authority"]
            return SessionResult(
                success=True,
                session_token=authority,
                redirect_url=self.start_pay_url(authority),
                gateway_status=str(CODE_SUCCESS),
            )

        code = error_code if error_code is not None else data.get("code")
        message = error_message or data.get("message") or "Payment request was rejected"
        logger.warning("zarinpal_request_rejected", order_number=request.order_number, code=code)
        return SessionResult(
            success=False,
            gateway_status=str(code),
            failure_reason=f"{message} (code {code})",
        )

    def verify(
        self,
        session_token: str,
        provider_reference: str | None,  # noqa: ARG002
        amount: int,
    ) -> VerificationResult:
        body = {
            "merchant_id": self.merchant_id,
            "authority": session_token,
            "amount": int(amount),
        }

        try:
            payload = self._post("/payment/verify.json", body)
        except requests.RequestException as exc:
            logger.warning(
                "gateway_request_failed", gateway=self.name, operation="verify", authority=session_token, error=str(exc)
            )
            return VerificationResult(
                verified=False,
                gateway_status="unavailable",
                failure_reason="Payment provider could not be reached",
                unavailable=True,
            )

        error_code, error_message = self._first_error(payload)
        data = payload.get("data") or {}
        code = data.get("code")
        if error_code is None and code in (CODE_SUCCESS, CODE_ALREADY_VERIFIED):
            return VerificationResult(
                verified=True,
                transaction_id=str(data.get("ref_id")),
                gateway_status=str(code),
                already_verified=code == CODE_ALREADY_VERIFIED,
            )

        code = error_code if error_code is not None else code
        message = error_message or data.get("message") or "Payment was not completed"
        return VerificationResult(
            verified=False,
            gateway_status=str(code),
            failure_reason=f"{message} (code {code})",
        )

    def verify_webhook_signature(self, payload: str, signature: str | None) -> bool:
        """HMAC-SHA256 of the raw body, hex encoded, keyed by the webhook secret."""
        if not self.webhook_secret:
            logger.warning("zarinpal_webhook_secret_missing")
            return False
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)
