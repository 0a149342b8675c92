"""Settlement of payment outcomes.

Webhook deliveries are at-least-once and unordered across sessions, so
every operation here converges to the same state when applied again:

- paid: pending -> confirmed, then inventory moves line by line.
- expired: pending -> cancelled. Nothing to release, nothing was deducted.
- payment failed: logged only.

The booking status is the source of truth. Inventory errors after a
confirmation are logged and returned, never undo the confirmation.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.application.booking_service import BookingService
from src.application.inventory_sync import commit_booked_lines
from src.domain.models import SettlementOutcome, SettlementResult
from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.infrastructure.db.models import Booking
from src.infrastructure.payments.interfaces import PaymentEvent
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.webhook_event_repository import WebhookEventRepository


logger = logging.getLogger(__name__)

SESSION_PAID_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}
SESSION_EXPIRED_EVENT = "checkout.session.expired"
PAYMENT_FAILED_EVENT = "payment_intent.payment_failed"


class SettlementService:

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.booking_service = BookingService(db)
        self.webhook_events = WebhookEventRepository(db)

    def handle_event(
        self,
        event: PaymentEvent,
        payload: bytes,
        provider: str = "STRIPE",
    ) -> SettlementResult:
        """
        Dispatch one verified processor event. An event id already in the
        ledger is acknowledged without being dispatched again.
        """
        if event.id and self.webhook_events.get(provider, event.id):
            logger.info("Duplicate webhook delivery ignored. event_id=%s", event.id)
            return SettlementResult(SettlementOutcome.IGNORED, "Event already processed")

        result = self._dispatch(event)

        if event.id and result.outcome is not SettlementOutcome.FAILED:
            self._record_event(event, payload, provider)

        return result

    def confirm_payment(
        self,
        session_id: str,
        payment_intent_id: str | None,
        booking_id_hint: str | None = None,
    ) -> SettlementResult:
        try:
            booking = self.booking_repository.get_by_session_id(session_id, for_update=True)
            if booking is None and booking_id_hint:
                booking = self._adopt_session(booking_id_hint, session_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Booking lookup failed. session_id=%s", session_id)
            return SettlementResult(SettlementOutcome.FAILED, "Failed to confirm payment")

        if booking is None:
            logger.error(
                "Paid session has no local booking. session_id=%s payment_intent_id=%s",
                session_id,
                payment_intent_id,
            )
            return SettlementResult(SettlementOutcome.NOT_FOUND, "Booking not found")

        if booking.status is BookingStatus.CONFIRMED:
            return SettlementResult(
                SettlementOutcome.ALREADY_CONFIRMED,
                "Booking already confirmed",
                booking_id=booking.id,
            )

        if BookingStateMachine.is_terminal(booking.status):
            logger.warning(
                "Payment received for booking in final state. booking_id=%s status=%s session_id=%s",
                booking.id,
                booking.status.value,
                session_id,
            )
            return SettlementResult(
                SettlementOutcome.ALREADY_FINAL,
                f"Booking already {booking.status.value}",
                booking_id=booking.id,
            )

        lines = [(item.ticket_type_id, item.quantity) for item in booking.line_items]
        booking_id = booking.id

        try:
            self.booking_service.mark_confirmed(booking, payment_intent_id)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to confirm booking. booking_id=%s", booking_id)
            return SettlementResult(
                SettlementOutcome.FAILED,
                "Failed to confirm booking",
                booking_id=booking_id,
            )

        logger.info(
            "Booking confirmed. booking_id=%s session_id=%s payment_intent_id=%s",
            booking_id,
            session_id,
            payment_intent_id,
        )

        errors = commit_booked_lines(self.db, booking_id, lines)
        return SettlementResult(
            SettlementOutcome.CONFIRMED,
            "Payment confirmed successfully",
            booking_id=booking_id,
            inventory_errors=errors,
        )

    def expire_session(
        self,
        session_id: str,
        booking_id_hint: str | None = None,
    ) -> SettlementResult:
        try:
            booking = self.booking_repository.get_by_session_id(session_id, for_update=True)
            if booking is None and booking_id_hint:
                booking = self._adopt_session(booking_id_hint, session_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Booking lookup failed. session_id=%s", session_id)
            return SettlementResult(SettlementOutcome.FAILED, "Failed to cancel booking")

        if booking is None:
            logger.warning("Expired session has no local booking. session_id=%s", session_id)
            return SettlementResult(SettlementOutcome.NOT_FOUND, "Booking not found")

        if booking.status is not BookingStatus.PENDING:
            return SettlementResult(
                SettlementOutcome.ALREADY_FINAL,
                f"Booking already {booking.status.value}",
                booking_id=booking.id,
            )

        booking_id = booking.id
        try:
            self.booking_service.mark_cancelled(booking)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to cancel booking. booking_id=%s", booking_id)
            return SettlementResult(
                SettlementOutcome.FAILED,
                "Failed to cancel booking",
                booking_id=booking_id,
            )

        logger.info("Booking cancelled. booking_id=%s session_id=%s", booking_id, session_id)
        return SettlementResult(
            SettlementOutcome.CANCELLED,
            "Booking cancelled",
            booking_id=booking_id,
        )

    def record_payment_failure(self, payment_intent_id: str | None) -> SettlementResult:
        # No transition: the session stays open until it completes or expires.
        logger.warning("Payment failed. payment_intent_id=%s", payment_intent_id)
        return SettlementResult(SettlementOutcome.IGNORED, "Payment failure recorded")

    def _dispatch(self, event: PaymentEvent) -> SettlementResult:
        if event.type in SESSION_PAID_EVENTS:
            if event.payment_status != "paid" or not event.payment_intent_id:
                logger.info(
                    "Session completed without payment yet. session_id=%s payment_status=%s",
                    event.object_id,
                    event.payment_status,
                )
                return SettlementResult(SettlementOutcome.IGNORED, "Session not paid")
            return self.confirm_payment(
                event.object_id,
                event.payment_intent_id,
                booking_id_hint=event.metadata.get("booking_id"),
            )

        if event.type == SESSION_EXPIRED_EVENT:
            return self.expire_session(
                event.object_id,
                booking_id_hint=event.metadata.get("booking_id"),
            )

        if event.type == PAYMENT_FAILED_EVENT:
            return self.record_payment_failure(event.object_id)

        logger.info("Unhandled event type: %s", event.type)
        return SettlementResult(SettlementOutcome.IGNORED, f"Unhandled event type {event.type}")

    def _adopt_session(self, booking_id: str, session_id: str) -> Booking | None:
        """
        Fall back to the booking id carried in the session metadata when
        storing the session id at checkout time did not succeed.

        The row stays locked until the caller commits, so concurrent
        deliveries for the same session see the attached id or the new
        status and settle only once.
        """
        booking = self.booking_repository.get_by_id(booking_id, for_update=True)
        if booking is None or booking.stripe_session_id is not None:
            return None

        self.booking_repository.attach_session(booking.id, session_id)
        logger.warning(
            "Attached session id from webhook metadata. booking_id=%s session_id=%s",
            booking.id,
            session_id,
        )
        return booking

    def _record_event(self, event: PaymentEvent, payload: bytes, provider: str) -> None:
        try:
            self.webhook_events.record(
                provider=provider,
                event_id=event.id,
                event_type=event.type,
                session_id=event.object_id,
                payload=payload,
            )
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event recorded it first.
            self.db.rollback()
            logger.info("Webhook event already recorded. event_id=%s", event.id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to record webhook event. event_id=%s", event.id)
