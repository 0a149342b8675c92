# src/domain/models.py

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class TicketLine:
    """One requested (ticket type, quantity) pair, in request order."""

    ticket_type_id: str
    quantity: int


@dataclass(frozen=True)
class CustomerContact:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class PricedTicketLine:
    """
    A validated ticket line with the price snapshot taken at booking time.
    """

    ticket_type_id: str
    ticket_type_name: str
    quantity: int
    price_per_ticket: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price_per_ticket * self.quantity


@dataclass(frozen=True)
class ValidatedOrder:
    lines: list[PricedTicketLine]
    total_amount: Decimal


@dataclass(frozen=True)
class CheckoutResult:
    booking_id: str
    session_id: str
    session_url: str


class SettlementOutcome(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    CANCELLED = "cancelled"
    ALREADY_FINAL = "already_final"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass
class SettlementResult:
    outcome: SettlementOutcome
    message: str
    booking_id: str | None = None
    inventory_errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome not in {SettlementOutcome.NOT_FOUND, SettlementOutcome.FAILED}


@dataclass
class VerificationResult:
    success: bool
    message: str
    booking: Any | None = None
