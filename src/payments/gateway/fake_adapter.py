"""Configurable fake payment gateway for development and testing.

This adapter simulates a hosted-checkout provider without any external
calls. Session requests and verifications can each be configured to succeed,
be declined, or behave as if the provider were unreachable.
"""

from uuid import uuid4

from payments.gateway.port import (
    PaymentGateway,
    PaymentRequest,
    SessionResult,
    VerificationResult,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.verify_should_succeed: bool = True
        self.unavailable: bool = False
        self.verify_unavailable: bool = False
        self.failure_reason: str = "Payment declined"
        self.calls: list[dict] = []
        self._sessions: dict[str, int] = {}
        self._verified: dict[str, str] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Payment declined",
        verify_should_succeed: bool | None = None,
        unavailable: bool = False,
        verify_unavailable: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime.

        ``verify_should_succeed`` follows ``should_succeed`` unless given.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.verify_should_succeed = should_succeed if verify_should_succeed is None else verify_should_succeed
        self.unavailable = unavailable
        self.verify_unavailable = verify_unavailable

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def request_session(self, request: PaymentRequest) -> SessionResult:
        self.calls.append(
            {
                "method": "request_session",
                "order_id": request.order_id,
                "order_number": request.order_number,
                "amount": request.amount,
                "callback_url": request.callback_url,
                "description": request.description,
            }
        )

        if self.unavailable:
            return SessionResult(
                success=False,
                gateway_status="unavailable",
                failure_reason="Payment provider timed out",
                unavailable=True,
            )
        if not self.should_succeed:
            return SessionResult(
                success=False,
                gateway_status="rejected",
                failure_reason=self.failure_reason,
            )

        token = f"fake_auth_{uuid4().hex[:24]}"
        self._sessions[token] = request.amount
        return SessionResult(
            success=True,
            session_token=token,
            redirect_url=f"https://fake-gateway.local/pay/{token}",
            gateway_status="created",
        )

    def verify(
        self,
        session_token: str,
        provider_reference: str | None,
        amount: int,
    ) -> VerificationResult:
        self.calls.append(
            {
                "method": "verify",
                "session_token": session_token,
                "provider_reference": provider_reference,
                "amount": amount,
            }
        )

        if session_token in self._verified:
            return VerificationResult(
                verified=True,
                transaction_id=self._verified[session_token],
                gateway_status="already_verified",
                already_verified=True,
            )
        if self.verify_unavailable:
            return VerificationResult(
                verified=False,
                gateway_status="unavailable",
                failure_reason="Payment provider timed out",
                unavailable=True,
            )
        if session_token not in self._sessions:
            return VerificationResult(
                verified=False,
                gateway_status="unknown_session",
                failure_reason="Unknown payment session",
            )
        if self._sessions[session_token] != amount:
            return VerificationResult(
                verified=False,
                gateway_status="amount_mismatch",
                failure_reason="Amount does not match the payment session",
            )
        if not self.verify_should_succeed:
            return VerificationResult(
                verified=False,
                gateway_status="failed",
                failure_reason=self.failure_reason,
            )

        transaction_id = f"fake_txn_{uuid4().hex[:12]}"
        self._verified[session_token] = transaction_id
        return VerificationResult(
            verified=True,
            transaction_id=transaction_id,
            gateway_status="verified",
        )

    def verify_webhook_signature(self, payload: str, signature: str | None) -> bool:  # noqa: ARG002
        return signature == "test-signature"
