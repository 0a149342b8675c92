# src/infrastructure/payments/stripe_gateway.py

import logging
from datetime import datetime

import stripe

from src.domain.exceptions import PaymentGatewayError, WebhookSignatureError
from src.infrastructure.payments.interfaces import (
    CheckoutLineItem,
    CheckoutSession,
    PaymentEvent,
    PaymentGateway,
    SessionStatus,
)


logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


def _line_item_payload(item: CheckoutLineItem) -> dict:
    product_data: dict = {"name": item.name}
    if item.image_url:
        product_data["images"] = [item.image_url]

    return {
        "price_data": {
            "currency": item.currency,
            "product_data": product_data,
            "unit_amount": item.unit_amount,
        },
        "quantity": item.quantity,
    }


class StripeGateway(PaymentGateway):
    """Stripe Checkout adapter."""

    provider = "STRIPE"

    def __init__(self, secret_key: str, webhook_secret: str | None = None):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: str,
        metadata: dict[str, str],
        expires_at: datetime,
    ) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self._secret_key,
                payment_method_types=["card"],
                line_items=[_line_item_payload(item) for item in line_items],
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata=metadata,
                expires_at=int(expires_at.timestamp()),
            )
        except stripe.StripeError as exc:
            logger.exception("Stripe checkout session creation failed. metadata=%s", metadata)
            raise PaymentGatewayError("Failed to create checkout session") from exc

        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_session(self, session_id: str) -> SessionStatus:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self._secret_key)
        except stripe.StripeError as exc:
            logger.exception("Stripe session retrieval failed. session_id=%s", session_id)
            raise PaymentGatewayError("Failed to retrieve session") from exc

        return SessionStatus(
            id=session.id,
            payment_status=session.payment_status,
            payment_intent_id=session.payment_intent,
        )

    def parse_event(self, payload: bytes, signature: str) -> PaymentEvent:
        if not self._webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        if not signature:
            raise WebhookSignatureError("Missing signature")

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
                WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc)) from exc
        except ValueError as exc:
            # Undecodable bytes and malformed JSON both land here.
            raise WebhookSignatureError("Invalid payload") from exc

        data = event.get("data") or {}
        obj = data.get("object") or {}
        payment_intent = obj.get("payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = payment_intent.get("id")

        return PaymentEvent(
            id=event.get("id") or "",
            type=event.get("type") or "",
            object_id=obj.get("id"),
            payment_status=obj.get("payment_status"),
            payment_intent_id=payment_intent,
            metadata=dict(obj.get("metadata") or {}),
        )
