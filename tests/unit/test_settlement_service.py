# tests/unit/test_settlement_service.py

import pytest
from sqlalchemy import func, select

from src.application.checkout_service import CheckoutService
from src.application.settlement_service import SettlementService
from src.domain.models import SettlementOutcome
from src.domain.state_machine import BookingStatus
from src.infrastructure.db.models import Booking, PaymentWebhookEvent, TicketType
from src.infrastructure.payments.interfaces import PaymentEvent


def _booking(db, booking_id) -> Booking:
    booking = db.get(Booking, booking_id)
    db.refresh(booking)
    return booking


def _counters(db, ticket_type_id):
    ticket_type = db.get(TicketType, ticket_type_id)
    db.refresh(ticket_type)
    return ticket_type.available_tickets, ticket_type.booked_tickets


@pytest.fixture
def checkout(db, gateway, settings, event, principal, contact, lines):
    def create(**quantities):
        return CheckoutService(db, gateway, settings).create_checkout_session(
            principal=principal,
            event_id=event.id,
            tickets=lines(**quantities),
            contact=contact,
        )

    return create


@pytest.fixture
def service(db):
    return SettlementService(db)


def paid_event(event_id, session_id, metadata=None, payment_status="paid"):
    return PaymentEvent(
        id=event_id,
        type="checkout.session.completed",
        object_id=session_id,
        payment_status=payment_status,
        payment_intent_id="pi_123",
        metadata=metadata or {},
    )


# ---------------------
# CONFIRMATION
# ---------------------

def test_confirm_payment_confirms_and_moves_inventory(
    db, service, checkout, ticket_types
):
    result = checkout(GA=2, VIP=1)

    outcome = service.confirm_payment(result.session_id, "pi_123")

    assert outcome.outcome is SettlementOutcome.CONFIRMED
    assert outcome.message == "Payment confirmed successfully"
    assert outcome.inventory_errors == []

    booking = _booking(db, result.booking_id)
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.payment_intent_id == "pi_123"
    assert _counters(db, ticket_types["GA"].id) == (3, 2)
    assert _counters(db, ticket_types["VIP"].id) == (1, 1)


def test_confirm_payment_twice_moves_inventory_once(
    db, service, checkout, ticket_types
):
    result = checkout(GA=2)

    service.confirm_payment(result.session_id, "pi_123")
    again = service.confirm_payment(result.session_id, "pi_123")

    assert again.outcome is SettlementOutcome.ALREADY_CONFIRMED
    assert again.message == "Booking already confirmed"
    assert again.success
    assert _counters(db, ticket_types["GA"].id) == (3, 2)


def test_confirm_payment_unknown_session(service):
    outcome = service.confirm_payment("cs_missing", "pi_123")

    assert outcome.outcome is SettlementOutcome.NOT_FOUND
    assert not outcome.success


def test_confirm_payment_after_expiry_keeps_booking_cancelled(
    db, service, checkout, ticket_types
):
    result = checkout(GA=1)
    service.expire_session(result.session_id)

    outcome = service.confirm_payment(result.session_id, "pi_123")

    assert outcome.outcome is SettlementOutcome.ALREADY_FINAL
    assert _booking(db, result.booking_id).status is BookingStatus.CANCELLED
    assert _counters(db, ticket_types["GA"].id) == (5, 0)


def test_confirm_payment_adopts_session_from_metadata(
    db, service, checkout, ticket_types
):
    result = checkout(GA=1)
    booking = _booking(db, result.booking_id)
    booking.stripe_session_id = None
    db.commit()

    outcome = service.confirm_payment(
        result.session_id,
        "pi_123",
        booking_id_hint=result.booking_id,
    )

    assert outcome.outcome is SettlementOutcome.CONFIRMED
    booking = _booking(db, result.booking_id)
    assert booking.stripe_session_id == result.session_id
    assert booking.status is BookingStatus.CONFIRMED


def test_confirm_payment_ignores_hint_for_booking_with_other_session(
    db, service, checkout
):
    result = checkout(GA=1)

    outcome = service.confirm_payment(
        "cs_unknown",
        "pi_123",
        booking_id_hint=result.booking_id,
    )

    assert outcome.outcome is SettlementOutcome.NOT_FOUND
    booking = _booking(db, result.booking_id)
    assert booking.status is BookingStatus.PENDING
    assert booking.stripe_session_id == result.session_id


def test_adopted_booking_is_locked_and_settled_once(
    db, service, checkout, ticket_types, monkeypatch
):
    result = checkout(GA=1)
    booking = _booking(db, result.booking_id)
    booking.stripe_session_id = None
    db.commit()

    calls = []
    get_by_id = service.booking_repository.get_by_id

    def recording_get_by_id(booking_id, for_update=False):
        calls.append((booking_id, for_update))
        return get_by_id(booking_id, for_update=for_update)

    monkeypatch.setattr(service.booking_repository, "get_by_id", recording_get_by_id)
    metadata = {"booking_id": result.booking_id}

    first = service.handle_event(
        paid_event("evt_1", result.session_id, metadata=metadata),
        b"{}",
    )
    second = service.handle_event(
        PaymentEvent(
            id="evt_2",
            type="checkout.session.async_payment_succeeded",
            object_id=result.session_id,
            payment_status="paid",
            payment_intent_id="pi_123",
            metadata=metadata,
        ),
        b"{}",
    )

    assert calls == [(result.booking_id, True)]
    assert first.outcome is SettlementOutcome.CONFIRMED
    assert second.outcome is SettlementOutcome.ALREADY_CONFIRMED
    assert _counters(db, ticket_types["GA"].id) == (4, 1)


def test_booking_lookup_by_id_can_lock_the_row(db, checkout):
    result = checkout(GA=1)
    repository = SettlementService(db).booking_repository

    booking = repository.get_by_id(result.booking_id, for_update=True)

    assert booking.id == result.booking_id
    assert [item.quantity for item in booking.line_items] == [1]


def test_oversold_confirmation_keeps_booking_confirmed(
    db, service, checkout, ticket_types
):
    first = checkout(GA=3)
    second = checkout(GA=3)

    service.confirm_payment(first.session_id, "pi_1")
    outcome = service.confirm_payment(second.session_id, "pi_2")

    assert outcome.outcome is SettlementOutcome.CONFIRMED
    assert outcome.inventory_errors == [
        f"Failed to update inventory for ticket {ticket_types['GA'].id}"
    ]
    assert _booking(db, second.booking_id).status is BookingStatus.CONFIRMED
    assert _counters(db, ticket_types["GA"].id) == (2, 3)


def test_inventory_scenario_sequence(db, service, checkout, ticket_types):
    ga = ticket_types["GA"].id

    first = checkout(GA=2)
    assert _counters(db, ga) == (5, 0)

    service.confirm_payment(first.session_id, "pi_1")
    assert _counters(db, ga) == (3, 2)

    second = checkout(GA=1)
    service.confirm_payment(second.session_id, "pi_2")
    assert _counters(db, ga) == (2, 3)


# ---------------------
# EXPIRY
# ---------------------

def test_expire_session_cancels_pending_booking(db, service, checkout, ticket_types):
    result = checkout(GA=2)

    outcome = service.expire_session(result.session_id)

    assert outcome.outcome is SettlementOutcome.CANCELLED
    assert _booking(db, result.booking_id).status is BookingStatus.CANCELLED
    assert _counters(db, ticket_types["GA"].id) == (5, 0)


def test_expire_session_after_confirmation_is_noop(db, service, checkout, ticket_types):
    result = checkout(GA=2)
    service.confirm_payment(result.session_id, "pi_123")

    outcome = service.expire_session(result.session_id)

    assert outcome.outcome is SettlementOutcome.ALREADY_FINAL
    assert _booking(db, result.booking_id).status is BookingStatus.CONFIRMED
    assert _counters(db, ticket_types["GA"].id) == (3, 2)


def test_expire_session_twice(db, service, checkout):
    result = checkout(GA=1)

    service.expire_session(result.session_id)
    again = service.expire_session(result.session_id)

    assert again.outcome is SettlementOutcome.ALREADY_FINAL
    assert again.success


def test_expire_unknown_session(service):
    assert service.expire_session("cs_missing").outcome is SettlementOutcome.NOT_FOUND


def test_expire_session_adopts_session_from_metadata(db, service, checkout):
    result = checkout(GA=1)
    booking = _booking(db, result.booking_id)
    booking.stripe_session_id = None
    db.commit()

    outcome = service.expire_session(
        result.session_id,
        booking_id_hint=result.booking_id,
    )

    assert outcome.outcome is SettlementOutcome.CANCELLED
    booking = _booking(db, result.booking_id)
    assert booking.status is BookingStatus.CANCELLED
    assert booking.stripe_session_id == result.session_id


def test_expire_session_ignores_hint_for_booking_with_other_session(
    db, service, checkout
):
    result = checkout(GA=1)

    outcome = service.expire_session("cs_unknown", booking_id_hint=result.booking_id)

    assert outcome.outcome is SettlementOutcome.NOT_FOUND
    assert _booking(db, result.booking_id).status is BookingStatus.PENDING


# ---------------------
# EVENT DISPATCH
# ---------------------

def test_handle_event_confirms_paid_session(db, service, checkout):
    result = checkout(GA=1)

    outcome = service.handle_event(paid_event("evt_1", result.session_id), b"{}")

    assert outcome.outcome is SettlementOutcome.CONFIRMED
    recorded = db.execute(select(PaymentWebhookEvent)).scalar_one()
    assert recorded.event_id == "evt_1"
    assert recorded.provider == "STRIPE"
    assert recorded.session_id == result.session_id


def test_handle_event_skips_redelivered_event_id(db, service, checkout, ticket_types):
    result = checkout(GA=1)
    event = paid_event("evt_1", result.session_id)

    service.handle_event(event, b"{}")
    again = service.handle_event(event, b"{}")

    assert again.outcome is SettlementOutcome.IGNORED
    assert again.message == "Event already processed"
    assert _counters(db, ticket_types["GA"].id) == (4, 1)
    assert db.execute(
        select(func.count()).select_from(PaymentWebhookEvent)
    ).scalar_one() == 1


def test_handle_event_ignores_unpaid_completion(db, service, checkout):
    result = checkout(GA=1)

    outcome = service.handle_event(
        paid_event("evt_1", result.session_id, payment_status="unpaid"),
        b"{}",
    )

    assert outcome.outcome is SettlementOutcome.IGNORED
    assert _booking(db, result.booking_id).status is BookingStatus.PENDING


def test_handle_event_expired_session(db, service, checkout):
    result = checkout(GA=1)

    outcome = service.handle_event(
        PaymentEvent(
            id="evt_2",
            type="checkout.session.expired",
            object_id=result.session_id,
        ),
        b"{}",
    )

    assert outcome.outcome is SettlementOutcome.CANCELLED
    assert _booking(db, result.booking_id).status is BookingStatus.CANCELLED


def test_handle_event_expired_session_uses_metadata_booking_id(db, service, checkout):
    result = checkout(GA=1)
    booking = _booking(db, result.booking_id)
    booking.stripe_session_id = None
    db.commit()

    outcome = service.handle_event(
        PaymentEvent(
            id="evt_2",
            type="checkout.session.expired",
            object_id=result.session_id,
            payment_status="unpaid",
            metadata={"booking_id": result.booking_id},
        ),
        b"{}",
    )

    assert outcome.outcome is SettlementOutcome.CANCELLED
    assert _booking(db, result.booking_id).status is BookingStatus.CANCELLED


def test_handle_event_payment_failed_changes_nothing(db, service, checkout):
    result = checkout(GA=1)

    outcome = service.handle_event(
        PaymentEvent(
            id="evt_3",
            type="payment_intent.payment_failed",
            object_id="pi_failed",
        ),
        b"{}",
    )

    assert outcome.outcome is SettlementOutcome.IGNORED
    assert _booking(db, result.booking_id).status is BookingStatus.PENDING


def test_handle_event_unhandled_type(service):
    outcome = service.handle_event(
        PaymentEvent(id="evt_4", type="customer.created", object_id="cus_1"),
        b"{}",
    )

    assert outcome.outcome is SettlementOutcome.IGNORED
    assert outcome.message == "Unhandled event type customer.created"


def test_handle_event_not_found_is_recorded(db, service):
    outcome = service.handle_event(paid_event("evt_5", "cs_missing"), b"{}")

    assert outcome.outcome is SettlementOutcome.NOT_FOUND
    assert db.execute(
        select(func.count()).select_from(PaymentWebhookEvent)
    ).scalar_one() == 1
