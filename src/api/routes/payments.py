import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.api.dependencies import (
    get_app_settings,
    get_current_principal,
    get_db,
    get_payment_gateway,
)
from src.api.errors import to_http_exception
from src.api.routes.routes import booking_response, customer_contact, ticket_lines
from src.api.schemas.schemas import (
    BookingRequest,
    CheckoutSessionResponse,
    PaymentVerificationResponse,
    WebhookAck,
)
from src.application.checkout_service import CheckoutService
from src.application.settlement_service import SettlementService
from src.application.verification_service import PaymentVerificationService
from src.domain.exceptions import TicketingError, WebhookSignatureError
from src.domain.principal import Principal
from src.infrastructure.config import Settings
from src.infrastructure.payments.interfaces import PaymentGateway


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/checkout/sessions", response_model=CheckoutSessionResponse)
def create_checkout_session(
    request: BookingRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_app_settings),
):
    service = CheckoutService(db, gateway=gateway, settings=settings)

    try:
        result = service.create_checkout_session(
            principal=principal,
            event_id=request.event_id,
            tickets=ticket_lines(request),
            contact=customer_contact(request),
        )
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    return CheckoutSessionResponse(
        booking_id=result.booking_id,
        session_id=result.session_id,
        session_url=result.session_url,
    )


@router.post("/stripe/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )

    try:
        event = gateway.parse_event(payload, signature)
    except WebhookSignatureError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from exc

    try:
        result = await run_in_threadpool(
            SettlementService(db).handle_event,
            event,
            payload,
            gateway.provider,
        )
        logger.info(
            "Webhook processed. event_id=%s type=%s outcome=%s",
            event.id,
            event.type,
            result.outcome.value,
        )
    except Exception:
        # The processor only needs the acknowledgement; errors stay in our logs.
        logger.exception("Webhook handler error. event_id=%s type=%s", event.id, event.type)

    return WebhookAck(received=True)


@router.get("/payment/verify", response_model=PaymentVerificationResponse)
def verify_payment(
    session_id: str | None = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    if not session_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Missing session_id"},
        )

    result = PaymentVerificationService(db, gateway).verify_payment(principal, session_id)

    return PaymentVerificationResponse(
        success=result.success,
        message=result.message,
        booking=booking_response(result.booking) if result.booking else None,
    )
