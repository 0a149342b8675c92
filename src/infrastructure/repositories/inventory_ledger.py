# src/infrastructure/repositories/inventory_ledger.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key
from sqlalchemy import select, update, exists

from src.infrastructure.db.models import Booking, BookingLineItem, TicketType
from src.domain.exceptions import (
    BookingValidationError,
    InsufficientInventoryError,
    TicketTypeInUseError,
    TicketTypeNotFoundError,
)
from src.domain.state_machine import BookingStatus


class InventoryLedger:
    """
    Per-ticket-type counters.

    Every counter change is one conditional UPDATE so the check and the
    write happen in the same statement. No read-modify-write from Python.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, ticket_type_id: str) -> TicketType | None:
        stmt = select(TicketType).where(TicketType.id == ticket_type_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_event(self, event_id: str) -> list[TicketType]:
        stmt = (
            select(TicketType)
            .where(TicketType.event_id == event_id)
            .order_by(TicketType.created_at, TicketType.name)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> list[TicketType]:
        stmt = select(TicketType).order_by(
            TicketType.created_at.desc(),
            TicketType.name,
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_for_event(
        self,
        event_id: str,
        ticket_type_ids: list[str],
    ) -> dict[str, TicketType]:
        """
        Batch lookup scoped to one event. Ids from other events are
        simply absent from the result.
        """
        stmt = (
            select(TicketType)
            .where(TicketType.event_id == event_id)
            .where(TicketType.id.in_(set(ticket_type_ids)))
        )
        return {item.id: item for item in self.db.execute(stmt).scalars().all()}

    def open_ticket_type(
        self,
        event_id: str,
        name: str,
        price: Decimal,
        total_tickets: int,
    ) -> TicketType:
        if total_tickets <= 0:
            raise BookingValidationError(
                "total_tickets must be a positive integer greater than 0."
            )
        if price < 0:
            raise BookingValidationError("price must not be negative.")

        ticket_type = TicketType(
            event_id=event_id,
            name=name,
            price=price,
            total_tickets=total_tickets,
            available_tickets=total_tickets,
            booked_tickets=0,
        )
        self.db.add(ticket_type)
        self.db.flush()
        return ticket_type

    def commit_tickets(self, ticket_type_id: str, quantity: int) -> None:
        """
        Move `quantity` tickets from available to booked.

        Raises InsufficientInventoryError when the row is missing or does
        not have enough available tickets; counters are left untouched.
        """
        if quantity <= 0:
            raise BookingValidationError("Ticket quantity must be greater than 0")

        stmt = (
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .where(TicketType.available_tickets >= quantity)
            .values(
                available_tickets=TicketType.available_tickets - quantity,
                booked_tickets=TicketType.booked_tickets + quantity,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount == 0:
            raise InsufficientInventoryError(
                f"Cannot commit {quantity} tickets for ticket type {ticket_type_id}",
                ticket_type_id=ticket_type_id,
            )
        self._expire_counters(ticket_type_id)

    def resize_capacity(self, ticket_type_id: str, total_tickets: int) -> None:
        if total_tickets <= 0:
            raise BookingValidationError(
                "total_tickets must be a positive integer greater than 0."
            )

        stmt = (
            update(TicketType)
            .where(TicketType.id == ticket_type_id)
            .where(TicketType.booked_tickets <= total_tickets)
            .values(
                total_tickets=total_tickets,
                available_tickets=total_tickets - TicketType.booked_tickets,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self._expire_counters(ticket_type_id)

        if result.rowcount == 0:
            ticket_type = self.get_by_id(ticket_type_id)
            if not ticket_type:
                raise TicketTypeNotFoundError(ticket_type_id)
            raise BookingValidationError(
                f"total_tickets cannot be lower than the "
                f"{ticket_type.booked_tickets} tickets already booked."
            )

    def is_referenced(self, ticket_type_id: str) -> bool:
        stmt = select(
            exists()
            .where(BookingLineItem.ticket_type_id == ticket_type_id)
            .where(BookingLineItem.booking_id == Booking.id)
            .where(Booking.status != BookingStatus.CANCELLED)
        )
        return bool(self.db.execute(stmt).scalar())

    def retire_ticket_type(self, ticket_type_id: str) -> TicketType:
        ticket_type = self.get_by_id(ticket_type_id)
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        if self.is_referenced(ticket_type_id):
            raise TicketTypeInUseError(
                "Ticket type is referenced by active bookings and cannot be deleted."
            )

        self.db.delete(ticket_type)
        self.db.flush()
        return ticket_type

    def _expire_counters(self, ticket_type_id: str) -> None:
        # Bulk UPDATEs bypass the identity map; reload counters on next access.
        cached = self.db.identity_map.get(identity_key(TicketType, ticket_type_id))
        if cached is not None:
            self.db.expire(
                cached,
                ["total_tickets", "available_tickets", "booked_tickets"],
            )
