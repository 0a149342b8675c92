# src/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select

from src.infrastructure.db.models import Booking, BookingLineItem
from src.domain.exceptions import BookingNotFoundError
from src.domain.models import CustomerContact, ValidatedOrder
from src.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
        for_update: bool = False,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .options(selectinload(Booking.line_items))
        )
        if for_update:
            stmt = stmt.with_for_update()

        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_session_id(
        self,
        session_id: str,
        for_update: bool = False,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.stripe_session_id == session_id)
            .options(selectinload(Booking.line_items))
        )
        if for_update:
            stmt = stmt.with_for_update()

        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_session_for_user(
        self,
        session_id: str,
        user_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.stripe_session_id == session_id)
            .where(Booking.user_id == user_id)
            .options(selectinload(Booking.line_items))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_user(
        self,
        user_id: str,
        status: BookingStatus | None = None,
    ) -> list[Booking]:

        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .options(selectinload(Booking.line_items))
            .order_by(Booking.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(Booking.status == status)

        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> list[Booking]:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.line_items))
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_booking(
        self,
        event_id: str,
        user_id: str,
        contact: CustomerContact,
        order: ValidatedOrder,
        status: BookingStatus,
    ) -> Booking:
        """
        Add the booking and its line items to the session together.
        The caller's commit or rollback applies to both.
        """

        booking = Booking(
            event_id=event_id,
            user_id=user_id,
            customer_name=contact.name,
            customer_email=contact.email,
            customer_phone=contact.phone,
            total_amount=order.total_amount,
            status=status,
            line_items=[
                BookingLineItem(
                    ticket_type_id=line.ticket_type_id,
                    quantity=line.quantity,
                    price_per_ticket=line.price_per_ticket,
                    subtotal=line.subtotal,
                )
                for line in order.lines
            ],
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def attach_session(self, booking_id: str, session_id: str) -> None:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError()
        booking.stripe_session_id = session_id
        self.db.flush()

    def delete_booking(self, booking_id: str) -> None:
        booking = self.db.get(Booking, booking_id)
        if booking is not None:
            self.db.delete(booking)
            self.db.flush()

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status
