from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from src.domain.exceptions import (
    BookingValidationError,
    EventNotFoundError,
    TicketTypeNotFoundError,
)
from src.infrastructure.db.models import Event, TicketType
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.inventory_ledger import InventoryLedger


class CatalogService:
    """Events and their ticket types."""

    def __init__(self, db: Session):
        self.db = db
        self.event_repository = EventRepository(db)
        self.inventory_ledger = InventoryLedger(db)

    def list_events(self) -> list[Event]:
        return self.event_repository.list_events()

    def get_event(self, event_id: str) -> Event:
        event = self.event_repository.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        return event

    def create_event(
        self,
        title: str,
        location: str,
        date_time: datetime,
        description: str | None = None,
        images: list[str] | None = None,
    ) -> Event:
        return self.event_repository.create_event(
            title=title,
            location=location,
            date_time=date_time,
            description=description,
            images=images,
        )

    def update_event(
        self,
        event_id: str,
        title: str | None = None,
        location: str | None = None,
        date_time: datetime | None = None,
        description: str | None = None,
        images: list[str] | None = None,
    ) -> Event:
        return self.event_repository.update_event(
            self.get_event(event_id),
            title=title,
            location=location,
            date_time=date_time,
            description=description,
            images=images,
        )

    def delete_event(self, event_id: str) -> None:
        self.event_repository.delete_event(event_id)

    def list_all_ticket_types(self) -> list[TicketType]:
        return self.inventory_ledger.list_all()

    def list_ticket_types(self, event_id: str) -> list[TicketType]:
        self.get_event(event_id)
        return self.inventory_ledger.list_for_event(event_id)

    def get_ticket_type(self, ticket_type_id: str) -> TicketType:
        ticket_type = self.inventory_ledger.get_by_id(ticket_type_id)
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        return ticket_type

    def create_ticket_type(
        self,
        event_id: str,
        name: str,
        price: Decimal,
        total_tickets: int,
    ) -> TicketType:
        self.get_event(event_id)
        return self.inventory_ledger.open_ticket_type(
            event_id=event_id,
            name=name,
            price=price,
            total_tickets=total_tickets,
        )

    def update_ticket_type(
        self,
        ticket_type_id: str,
        name: str | None = None,
        price: Decimal | None = None,
        total_tickets: int | None = None,
    ) -> TicketType:
        """
        Price changes only affect future bookings; existing line items
        keep their price snapshot.
        """
        ticket_type = self.get_ticket_type(ticket_type_id)

        if total_tickets is not None and total_tickets != ticket_type.total_tickets:
            self.inventory_ledger.resize_capacity(ticket_type_id, total_tickets)
        if name is not None:
            ticket_type.name = name
        if price is not None:
            if price < 0:
                raise BookingValidationError("price must not be negative.")
            ticket_type.price = price

        self.db.flush()
        return ticket_type

    def delete_ticket_type(self, ticket_type_id: str) -> None:
        self.inventory_ledger.retire_ticket_type(ticket_type_id)
