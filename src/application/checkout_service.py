"""Checkout orchestration.

Two entry points share the same request validation:

- create_checkout_session: pending booking + hosted payment page. Inventory
  is only checked here; it moves at confirmation (see settlement_service).
- create_direct_booking: confirmed booking with no payment step. Inventory
  moves immediately after the booking is committed.
"""

import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.application.inventory_sync import commit_booked_lines
from src.domain.exceptions import (
    BookingValidationError,
    EventNotFoundError,
    InsufficientInventoryError,
    PaymentGatewayError,
    StoreUnavailableError,
    TicketTypeNotFoundError,
)
from src.domain.models import (
    CheckoutResult,
    CustomerContact,
    PricedTicketLine,
    TicketLine,
    ValidatedOrder,
)
from src.domain.principal import Principal
from src.domain.state_machine import BookingStatus
from src.infrastructure.config import Settings
from src.infrastructure.db.models import Booking, Event
from src.infrastructure.payments.interfaces import CheckoutLineItem, PaymentGateway
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.inventory_ledger import InventoryLedger


logger = logging.getLogger(__name__)

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


def ensure_absolute(url: str, base_url: str) -> str:
    if _ABSOLUTE_URL.match(url):
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_ticket_lines(
    ledger: InventoryLedger,
    event_id: str,
    tickets: list[TicketLine],
) -> ValidatedOrder:
    """
    Check the requested lines against one snapshot of the event's ticket
    types and price them. Nothing is locked or written.
    """
    if not tickets:
        raise BookingValidationError("Please select at least one ticket")

    try:
        ticket_types = ledger.get_for_event(
            event_id,
            [ticket.ticket_type_id for ticket in tickets],
        )
    except SQLAlchemyError as exc:
        logger.exception("Ticket type lookup failed. event_id=%s", event_id)
        raise StoreUnavailableError("Failed to fetch ticket information") from exc

    for ticket in tickets:
        if ticket.ticket_type_id not in ticket_types:
            raise TicketTypeNotFoundError(ticket.ticket_type_id)

    requested: dict[str, int] = defaultdict(int)
    lines: list[PricedTicketLine] = []
    total_amount = Decimal("0")

    for ticket in tickets:
        ticket_type = ticket_types[ticket.ticket_type_id]

        if ticket.quantity <= 0:
            raise BookingValidationError("Ticket quantity must be greater than 0")

        # Repeated lines for one type count against the same snapshot.
        requested[ticket_type.id] += ticket.quantity
        available = ticket_type.available_tickets
        if requested[ticket_type.id] > available:
            raise InsufficientInventoryError(
                f"Insufficient tickets for {ticket_type.name}. Available: {available}",
                ticket_type_id=ticket_type.id,
            )

        line = PricedTicketLine(
            ticket_type_id=ticket_type.id,
            ticket_type_name=ticket_type.name,
            quantity=ticket.quantity,
            price_per_ticket=Decimal(ticket_type.price),
        )
        lines.append(line)
        total_amount += line.subtotal

    return ValidatedOrder(lines=lines, total_amount=total_amount)


class CheckoutService:
    """Application service coordinating the checkout workflow."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None,
        settings: Settings,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)
        self.inventory_ledger = InventoryLedger(db)

    def create_checkout_session(
        self,
        principal: Principal,
        event_id: str,
        tickets: list[TicketLine],
        contact: CustomerContact,
    ) -> CheckoutResult:
        if self.gateway is None:
            raise PaymentGatewayError("Payment gateway not configured")

        event = self._get_event(event_id)
        order = validate_ticket_lines(self.inventory_ledger, event_id, tickets)

        if order.total_amount <= 0:
            raise BookingValidationError("Invalid booking amount")

        booking = self._create_booking(
            principal=principal,
            event_id=event_id,
            contact=contact,
            order=order,
            status=BookingStatus.PENDING,
        )

        try:
            session = self.gateway.create_checkout_session(
                line_items=self.build_line_items(event, order),
                success_url=ensure_absolute(
                    "/user/bookings?session_id={CHECKOUT_SESSION_ID}",
                    self.settings.app_url,
                ),
                cancel_url=ensure_absolute(
                    f"/user/events/{event_id}",
                    self.settings.app_url,
                ),
                customer_email=contact.email,
                metadata={
                    "booking_id": booking.id,
                    "event_id": event_id,
                    "user_id": principal.id,
                },
                expires_at=datetime.now(timezone.utc)
                + timedelta(minutes=self.settings.checkout_session_ttl_minutes),
            )
        except PaymentGatewayError:
            self._discard_booking(booking.id)
            raise

        try:
            self.booking_repository.attach_session(booking.id, session.id)
            self.db.commit()
        except SQLAlchemyError:
            # The session exists; its webhook still carries the booking id.
            self.db.rollback()
            logger.exception(
                "Failed to store session id on booking. booking_id=%s session_id=%s",
                booking.id,
                session.id,
            )

        logger.info(
            "Checkout session created. booking_id=%s session_id=%s total_amount=%s",
            booking.id,
            session.id,
            order.total_amount,
        )
        return CheckoutResult(
            booking_id=booking.id,
            session_id=session.id,
            session_url=session.url,
        )

    def create_direct_booking(
        self,
        principal: Principal,
        event_id: str,
        tickets: list[TicketLine],
        contact: CustomerContact,
    ) -> Booking:
        self._get_event(event_id)
        order = validate_ticket_lines(self.inventory_ledger, event_id, tickets)

        booking = self._create_booking(
            principal=principal,
            event_id=event_id,
            contact=contact,
            order=order,
            status=BookingStatus.CONFIRMED,
        )

        errors = commit_booked_lines(
            self.db,
            booking.id,
            [(line.ticket_type_id, line.quantity) for line in order.lines],
        )
        if errors:
            logger.warning(
                "Direct booking committed with inventory errors. booking_id=%s errors=%s",
                booking.id,
                errors,
            )

        logger.info("Direct booking confirmed. booking_id=%s", booking.id)
        return booking

    def build_line_items(
        self,
        event: Event,
        order: ValidatedOrder,
    ) -> list[CheckoutLineItem]:
        image_url = None
        if event.images:
            image_url = ensure_absolute(event.images[0], self.settings.app_url)

        return [
            CheckoutLineItem(
                name=f"{event.title} - {line.ticket_type_name}",
                unit_amount=to_minor_units(line.price_per_ticket),
                quantity=line.quantity,
                currency=self.settings.currency,
                image_url=image_url,
            )
            for line in order.lines
        ]

    def _get_event(self, event_id: str) -> Event:
        try:
            event = self.event_repository.get_by_id(event_id)
        except SQLAlchemyError as exc:
            logger.exception("Event lookup failed. event_id=%s", event_id)
            raise StoreUnavailableError("Failed to fetch event") from exc

        if not event:
            raise EventNotFoundError(event_id)
        return event

    def _create_booking(
        self,
        principal: Principal,
        event_id: str,
        contact: CustomerContact,
        order: ValidatedOrder,
        status: BookingStatus,
    ) -> Booking:
        try:
            booking = self.booking_repository.create_booking(
                event_id=event_id,
                user_id=principal.id,
                contact=contact,
                order=order,
                status=status,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(
                "Failed to create booking. event_id=%s user_id=%s",
                event_id,
                principal.id,
            )
            raise StoreUnavailableError("Failed to create booking") from exc

        return booking

    def _discard_booking(self, booking_id: str) -> None:
        try:
            self.booking_repository.delete_booking(booking_id)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to delete booking after checkout failure. booking_id=%s",
                booking_id,
            )
