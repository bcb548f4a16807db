"""Payment gateway port (abstract interface).

Defines the contract every payment provider adapter implements: open a
hosted payment session for an order, then verify the session once the
provider redirects the shopper back. Checkout code only ever talks to this
interface, so a new provider is a new adapter and nothing else.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentRequest:
    """What the provider needs to open a payment session."""

    order_id: str
    order_number: str
    amount: int  # minor currency units
    callback_url: str
    description: str
    currency: str = "IRR"
    mobile: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class SessionResult:
    """Result of asking the provider for a payment session."""

    success: bool
    session_token: str | None = None
    redirect_url: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None
    unavailable: bool = False  # provider unreachable or timed out


@dataclass(frozen=True)
class VerificationResult:
    """Result of verifying a session after the provider redirect."""

    verified: bool
    transaction_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None
    unavailable: bool = False  # outcome unknown, safe to try again
    already_verified: bool = False


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = "gateway"

    @abstractmethod
    def request_session(self, request: PaymentRequest) -> SessionResult:
        """Open a payment session and return where to send the shopper."""
        ...

    @abstractmethod
    def verify(
        self,
        session_token: str,
        provider_reference: str | None,
        amount: int,
    ) -> VerificationResult:
        """Confirm that a session was paid.

        Must be safe to repeat: verifying an already-verified session
        reports the original success instead of charging again.
        """
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str,
        signature: str | None,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
