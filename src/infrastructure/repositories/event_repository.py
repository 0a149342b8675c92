# src/infrastructure/repositories/event_repository.py

from datetime import datetime

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, exists

from src.infrastructure.db.models import Booking, Event
from src.domain.exceptions import EventInUseError, EventNotFoundError
from src.domain.state_machine import BookingStatus


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Event | None:
        stmt = (
            select(Event)
            .where(Event.id == event_id)
            .options(selectinload(Event.ticket_types))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_events(self) -> list[Event]:
        stmt = (
            select(Event)
            .options(selectinload(Event.ticket_types))
            .order_by(Event.date_time)
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_event(
        self,
        title: str,
        location: str,
        date_time: datetime,
        description: str | None = None,
        images: list[str] | None = None,
    ) -> Event:
        event = Event(
            title=title,
            description=description,
            location=location,
            date_time=date_time,
            images=list(images or []),
        )
        self.db.add(event)
        self.db.flush()
        return event

    def update_event(
        self,
        event: Event,
        title: str | None = None,
        location: str | None = None,
        date_time: datetime | None = None,
        description: str | None = None,
        images: list[str] | None = None,
    ) -> Event:
        """Fields left as None keep their current value."""

        if title is not None:
            event.title = title
        if location is not None:
            event.location = location
        if date_time is not None:
            event.date_time = date_time
        if description is not None:
            event.description = description
        if images is not None:
            event.images = list(images)

        self.db.flush()
        return event

    def has_active_bookings(self, event_id: str) -> bool:
        stmt = select(
            exists()
            .where(Booking.event_id == event_id)
            .where(Booking.status != BookingStatus.CANCELLED)
        )
        return bool(self.db.execute(stmt).scalar())

    def delete_event(self, event_id: str) -> None:
        """
        Delete an event with its ticket types and cancelled bookings.
        Refused while any pending or confirmed booking references it.
        """
        event = self.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(event_id)
        if self.has_active_bookings(event_id):
            raise EventInUseError(
                "Event has active bookings and cannot be deleted."
            )

        cancelled = self.db.execute(
            select(Booking).where(Booking.event_id == event_id)
        ).scalars().all()
        for booking in cancelled:
            self.db.delete(booking)

        self.db.delete(event)
        self.db.flush()
