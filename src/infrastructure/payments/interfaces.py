"""Payment processor port.

The checkout and settlement services only talk to this interface so the
processor can be swapped (Stripe in production, a fake in tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CheckoutLineItem:
    name: str
    unit_amount: int  # minor currency units
    quantity: int
    currency: str
    image_url: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class SessionStatus:
    id: str
    payment_status: str
    payment_intent_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass(frozen=True)
class PaymentEvent:
    """A verified webhook event, reduced to the fields settlement needs."""

    id: str
    type: str
    object_id: str | None
    payment_status: str | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Interface for the external payment processor."""

    provider: str = "STRIPE"

    @abstractmethod
    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: str,
        metadata: dict[str, str],
        expires_at: datetime,
    ) -> CheckoutSession:
        """Open a hosted payment page. Raises PaymentGatewayError on failure."""
        ...

    @abstractmethod
    def retrieve_session(self, session_id: str) -> SessionStatus:
        """Return the live status of a session. Raises PaymentGatewayError."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> PaymentEvent:
        """Verify a webhook payload. Raises WebhookSignatureError."""
        ...
