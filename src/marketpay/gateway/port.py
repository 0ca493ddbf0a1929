"""Payment gateway port (abstract interface).

Every rail the marketplace can take money through (the internal wallet,
card gateways, the bank gateway) implements this contract, so the
orchestrator and the webhook reconciler never branch on the provider.

Adapters translate their provider's status vocabulary into ``GatewayStatus``.
Event types an adapter does not know are reported as ``UNHANDLED`` rather
than being folded into ``FAILED``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from protean.exceptions import InvalidOperationError


class GatewayStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class InitializationResult:
    """Result of opening a payment with the gateway."""

    success: bool
    external_reference: str | None = None
    redirect_url: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    """Gateway's current view of a payment."""

    status: GatewayStatus
    external_reference: str | None = None
    amount: float | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (GatewayStatus.COMPLETED, GatewayStatus.FAILED, GatewayStatus.CANCELLED)


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_reference: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class WebhookResult:
    """A decoded, authenticated gateway callback."""

    success: bool
    reference: str | None = None
    status: GatewayStatus = GatewayStatus.UNHANDLED
    external_reference: str | None = None
    amount: float | None = None
    event_type: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def rejected(cls, error: str) -> "WebhookResult":
        return cls(success=False, error=error)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = "gateway"

    @abstractmethod
    def initialize_payment(
        self,
        amount: float,
        currency: str,
        reference: str,
        payer_email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InitializationResult:
        """Open a payment; ``reference`` must travel in the gateway metadata."""
        ...

    @abstractmethod
    def verify_payment(
        self,
        reference: str,
        external_reference: str | None = None,
    ) -> VerificationResult:
        """Ask the gateway for the current status of a payment."""
        ...

    @abstractmethod
    def refund_payment(
        self,
        reference: str,
        amount: float | None = None,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund a captured payment, partially when ``amount`` is given."""
        ...

    @abstractmethod
    def process_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> WebhookResult:
        """Authenticate and decode a webhook body."""
        ...


class GatewayError(InvalidOperationError):
    """An external gateway refused or failed an operation.

    Carries the adapter's human-readable message; the HTTP layer maps it to
    502 Bad Gateway.
    """

    def __init__(self, message: str, reference: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reference = reference
