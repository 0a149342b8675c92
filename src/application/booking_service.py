from sqlalchemy.orm import Session

from src.domain.exceptions import BookingNotFoundError
from src.domain.principal import Principal
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.infrastructure.db.models import Booking
from src.infrastructure.repositories.booking_repository import BookingRepository


class BookingService:
    """Booking lifecycle transitions and owner-scoped booking queries."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)

    def get_booking_for_user(self, booking_id: str, principal: Principal) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)

        # Someone else's booking is reported exactly like a missing one.
        if not booking or booking.user_id != principal.id:
            raise BookingNotFoundError()

        return booking

    def list_user_bookings(
        self,
        principal: Principal,
        status: BookingStatus | None = None,
    ) -> list[Booking]:
        return self.booking_repository.list_for_user(principal.id, status=status)

    def list_all_bookings(self) -> list[Booking]:
        return self.booking_repository.list_all()

    def mark_confirmed(self, booking: Booking, payment_intent_id: str | None) -> None:
        self._transition(booking, BookingStatus.CONFIRMED)
        booking.payment_intent_id = payment_intent_id
        self.db.flush()

    def mark_cancelled(self, booking: Booking) -> None:
        self._transition(booking, BookingStatus.CANCELLED)
        self.db.flush()

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)
