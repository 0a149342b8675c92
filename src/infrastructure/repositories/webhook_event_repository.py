# src/infrastructure/repositories/webhook_event_repository.py

import hashlib

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import PaymentWebhookEvent


def hash_payload(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


class WebhookEventRepository:
    """Ledger of processor events that have already been dispatched."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider: str, event_id: str) -> PaymentWebhookEvent | None:
        stmt = (
            select(PaymentWebhookEvent)
            .where(PaymentWebhookEvent.provider == provider)
            .where(PaymentWebhookEvent.event_id == event_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        session_id: str | None,
        payload: bytes,
        status: str = "PROCESSED",
    ) -> PaymentWebhookEvent:
        item = PaymentWebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            session_id=session_id,
            payload_hash=hash_payload(payload),
            status=status,
        )
        self.db.add(item)
        self.db.flush()
        return item
