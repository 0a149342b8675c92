import logging
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.domain.exceptions import PaymentGatewayError
from src.domain.models import VerificationResult
from src.domain.principal import Principal
from src.domain.state_machine import BookingStatus
from src.infrastructure.payments.interfaces import PaymentGateway
from src.infrastructure.repositories.booking_repository import BookingRepository


logger = logging.getLogger(__name__)


class PaymentVerificationService:
    """
    Read-through status check used after the payment page redirects back.

    Reports the local booking status as is. It never confirms a booking
    itself; that only happens through settlement.
    """

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.booking_repository = BookingRepository(db)

    def verify_payment(self, principal: Principal, session_id: str) -> VerificationResult:
        # The processor call runs on a worker thread while the session,
        # which is not thread-safe, stays on this one.
        with ThreadPoolExecutor(max_workers=1) as executor:
            status_future = executor.submit(self.gateway.retrieve_session, session_id)

            booking = None
            booking_failed = False
            try:
                booking = self.booking_repository.get_by_session_for_user(
                    session_id,
                    principal.id,
                )
            except SQLAlchemyError:
                booking_failed = True
                logger.exception(
                    "Booking lookup failed during verification. session_id=%s",
                    session_id,
                )

            try:
                session_status = status_future.result()
            except PaymentGatewayError:
                return VerificationResult(False, "Failed to verify payment status")

        if not session_status.is_paid:
            return VerificationResult(False, "Payment not completed")

        if booking_failed:
            return VerificationResult(False, "Failed to verify payment status")

        if booking is None:
            return VerificationResult(False, "Booking not found")

        if booking.status is BookingStatus.CONFIRMED:
            return VerificationResult(True, "Payment confirmed", booking)
        if booking.status is BookingStatus.CANCELLED:
            return VerificationResult(True, "Booking cancelled", booking)

        return VerificationResult(True, "Payment processing", booking)
