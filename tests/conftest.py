import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Must be set before src.infrastructure.db.session builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event as sa_event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.dependencies import (
    get_app_settings,
    get_current_principal,
    get_db,
    get_payment_gateway,
)
from src.domain.exceptions import PaymentGatewayError
from src.domain.models import CustomerContact, TicketLine
from src.domain.principal import Principal, Role
from src.infrastructure.config import Settings
from src.infrastructure.db.models import Base
from src.infrastructure.payments.interfaces import CheckoutSession, SessionStatus
from src.infrastructure.payments.stripe_gateway import StripeGateway
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.inventory_ledger import InventoryLedger
from src.main import app


WEBHOOK_SECRET = "whsec_test_secret"


class FakePaymentGateway(StripeGateway):
    """
    Stripe adapter with the network calls replaced. Webhook signature
    verification is the real one.
    """

    def __init__(self):
        super().__init__(secret_key="sk_test", webhook_secret=WEBHOOK_SECRET)
        self.created: list[dict] = []
        self.payment_status: dict[str, str] = {}
        self.fail_create = False
        self.fail_retrieve = False

    def create_checkout_session(self, **kwargs) -> CheckoutSession:
        if self.fail_create:
            raise PaymentGatewayError("Failed to create checkout session")

        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append({"id": session_id, **kwargs})
        self.payment_status[session_id] = "unpaid"
        return CheckoutSession(id=session_id, url=f"https://checkout.test/{session_id}")

    def retrieve_session(self, session_id: str) -> SessionStatus:
        if self.fail_retrieve:
            raise PaymentGatewayError("Failed to retrieve session")

        status = self.payment_status.get(session_id, "unpaid")
        return SessionStatus(
            id=session_id,
            payment_status=status,
            payment_intent_id=f"pi_{session_id}" if status == "paid" else None,
        )

    def mark_paid(self, session_id: str) -> None:
        self.payment_status[session_id] = "paid"


class AuthState:
    def __init__(self, principal: Principal):
        self.principal = principal


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event_payload(
    event_id: str,
    event_type: str,
    session_id: str,
    payment_status: str = "paid",
    payment_intent: str | None = "pi_test",
    metadata: dict | None = None,
) -> str:
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "payment_status": payment_status,
                    "payment_intent": payment_intent,
                    "metadata": metadata or {},
                }
            },
        }
    )


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @sa_event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test",
        stripe_webhook_secret=WEBHOOK_SECRET,
        currency="twd",
        app_url="http://localhost:3000",
        checkout_session_ttl_minutes=30,
        jwt_secret="test-jwt-secret",
        jwt_audience="authenticated",
    )


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def principal():
    return Principal(id="user-1", email="user1@example.com")


@pytest.fixture
def other_principal():
    return Principal(id="user-2", email="user2@example.com")


@pytest.fixture
def admin_principal():
    return Principal(id="admin-1", email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def contact():
    return CustomerContact(name="Mei Lin", email="user1@example.com", phone="0912345678")


@pytest.fixture
def event(db):
    """An event with GA (100.00 x 5) and VIP (250.00 x 2) ticket types."""
    item = EventRepository(db).create_event(
        title="Harbour Lights Live",
        location="Kaohsiung Music Center",
        date_time=datetime.now(timezone.utc) + timedelta(days=10),
        images=["/images/harbour-lights.jpg"],
    )
    ledger = InventoryLedger(db)
    ledger.open_ticket_type(item.id, "GA", Decimal("100.00"), 5)
    ledger.open_ticket_type(item.id, "VIP", Decimal("250.00"), 2)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def ticket_types(event):
    return {ticket_type.name: ticket_type for ticket_type in event.ticket_types}


@pytest.fixture
def lines(ticket_types):
    def build(**quantities: int) -> list[TicketLine]:
        return [
            TicketLine(ticket_type_id=ticket_types[name].id, quantity=quantity)
            for name, quantity in quantities.items()
        ]

    return build


@pytest.fixture
def auth(principal):
    return AuthState(principal)


@pytest.fixture
def client(session_factory, gateway, settings, auth):
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_current_principal] = lambda: auth.principal

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def sign():
    return stripe_signature


@pytest.fixture
def event_payload():
    return stripe_event_payload
