from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from src.infrastructure.db.models import Event
from src.infrastructure.db.session import Base, engine, get_db_session
from src.infrastructure.repositories.event_repository import EventRepository
from src.infrastructure.repositories.inventory_ledger import InventoryLedger


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    taipei = timezone(timedelta(hours=8))
    now_local = datetime.now(taipei)
    target = now_local + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_events(db) -> None:
    event_defs = [
        {
            "title": "Harbour Lights Live",
            "description": "An evening of indie rock by the water.",
            "date_time": _dt(days_from_now=10, hour=19, minute=30),
            "location": "Kaohsiung Music Center",
            "images": ["/images/harbour-lights.jpg"],
            "ticket_types": [
                {"name": "General", "price": Decimal("1800"), "total_tickets": 400},
                {"name": "VIP", "price": Decimal("4500"), "total_tickets": 120},
            ],
        },
        {
            "title": "Lantern Night Market Tour",
            "description": "Guided food tour with tasting passes.",
            "date_time": _dt(days_from_now=15, hour=18, minute=0),
            "location": "Raohe Street, Taipei",
            "images": [],
            "ticket_types": [
                {"name": "Standard", "price": Decimal("650"), "total_tickets": 60},
                {"name": "Tasting Pass", "price": Decimal("1200"), "total_tickets": 20},
            ],
        },
    ]

    events = EventRepository(db)
    ledger = InventoryLedger(db)

    for item in event_defs:
        existing = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if existing:
            # Counters on an existing event may already reflect bookings.
            continue

        event = events.create_event(
            title=item["title"],
            location=item["location"],
            date_time=item["date_time"],
            description=item["description"],
            images=item["images"],
        )
        for ticket_type in item["ticket_types"]:
            ledger.open_ticket_type(
                event_id=event.id,
                name=ticket_type["name"],
                price=ticket_type["price"],
                total_tickets=ticket_type["total_tickets"],
            )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_events(db)
    print("Seed complete: Harbour Lights Live and Lantern Night Market Tour added.")


if __name__ == "__main__":
    main()
