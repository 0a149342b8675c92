from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.dependencies import (
    get_app_settings,
    get_current_principal,
    get_db,
    require_admin,
)
from src.api.errors import to_http_exception
from src.api.schemas.schemas import (
    BookingLineItemResponse,
    BookingRequest,
    BookingResponse,
    EventCreate,
    EventResponse,
    EventUpdate,
    TicketTypeCreate,
    TicketTypeResponse,
    TicketTypeUpdate,
)
from src.application.booking_service import BookingService
from src.application.catalog_service import CatalogService
from src.application.checkout_service import CheckoutService
from src.domain.exceptions import TicketingError
from src.domain.models import CustomerContact, TicketLine
from src.domain.principal import Principal
from src.domain.state_machine import BookingStatus
from src.infrastructure.config import Settings
from src.infrastructure.db.models import Booking


router = APIRouter()


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        event_id=booking.event_id,
        user_id=booking.user_id,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        total_amount=float(booking.total_amount),
        status=booking.status.value,
        stripe_session_id=booking.stripe_session_id,
        payment_intent_id=booking.payment_intent_id,
        created_at=booking.created_at,
        tickets=[
            BookingLineItemResponse.model_validate(item)
            for item in booking.line_items
        ],
    )


def ticket_lines(request: BookingRequest) -> list[TicketLine]:
    return [
        TicketLine(ticket_type_id=ticket.ticket_type_id, quantity=ticket.quantity)
        for ticket in request.tickets
    ]


def customer_contact(request: BookingRequest) -> CustomerContact:
    return CustomerContact(
        name=request.customer_name,
        email=request.customer_email,
        phone=request.customer_phone,
    )


@router.get("/health")
def health():
    return {"message": "Ticketing service is running"}


@router.get("/events", response_model=list[EventResponse])
def list_events(db: Session = Depends(get_db)):
    return CatalogService(db).list_events()


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    request: EventCreate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    event = CatalogService(db).create_event(
        title=request.title,
        location=request.location,
        date_time=request.date_time,
        description=request.description,
        images=request.images,
    )
    db.commit()
    db.refresh(event)
    return event


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).get_event(event_id)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: str,
    request: EventUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    try:
        event = CatalogService(db).update_event(
            event_id,
            title=request.title,
            location=request.location,
            date_time=request.date_time,
            description=request.description,
            images=request.images,
        )
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    db.commit()
    db.refresh(event)
    return event


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    try:
        CatalogService(db).delete_event(event_id)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    db.commit()


@router.get("/events/{event_id}/ticket-types", response_model=list[TicketTypeResponse])
def list_ticket_types(event_id: str, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).list_ticket_types(event_id)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/events/{event_id}/ticket-types",
    response_model=TicketTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_ticket_type(
    event_id: str,
    request: TicketTypeCreate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    try:
        ticket_type = CatalogService(db).create_ticket_type(
            event_id=event_id,
            name=request.name,
            price=request.price,
            total_tickets=request.total_tickets,
        )
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    db.commit()
    return ticket_type


@router.get("/ticket-types", response_model=list[TicketTypeResponse])
def list_all_ticket_types(db: Session = Depends(get_db)):
    return CatalogService(db).list_all_ticket_types()


@router.get("/ticket-types/{ticket_type_id}", response_model=TicketTypeResponse)
def get_ticket_type(ticket_type_id: str, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).get_ticket_type(ticket_type_id)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/ticket-types/{ticket_type_id}", response_model=TicketTypeResponse)
def update_ticket_type(
    ticket_type_id: str,
    request: TicketTypeUpdate,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    try:
        ticket_type = CatalogService(db).update_ticket_type(
            ticket_type_id,
            name=request.name,
            price=request.price,
            total_tickets=request.total_tickets,
        )
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    db.commit()
    db.refresh(ticket_type)
    return ticket_type


@router.delete("/ticket-types/{ticket_type_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ticket_type(
    ticket_type_id: str,
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    try:
        CatalogService(db).delete_ticket_type(ticket_type_id)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    db.commit()


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_app_settings),
):
    service = CheckoutService(db, gateway=None, settings=settings)

    try:
        booking = service.create_direct_booking(
            principal=principal,
            event_id=request.event_id,
            tickets=ticket_lines(request),
            contact=customer_contact(request),
        )
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    return booking_response(booking)


@router.get("/bookings/me", response_model=list[BookingResponse])
def list_my_bookings(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    bookings = BookingService(db).list_user_bookings(principal)
    return [booking_response(booking) for booking in bookings]


@router.get("/bookings/me/confirmed", response_model=list[BookingResponse])
def list_my_confirmed_bookings(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    bookings = BookingService(db).list_user_bookings(
        principal,
        status=BookingStatus.CONFIRMED,
    )
    return [booking_response(booking) for booking in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    try:
        booking = BookingService(db).get_booking_for_user(booking_id, principal)
    except TicketingError as exc:
        raise to_http_exception(exc) from exc

    return booking_response(booking)


@router.get("/admin/bookings", response_model=list[BookingResponse])
def list_all_bookings(
    db: Session = Depends(get_db),
    _: Principal = Depends(require_admin),
):
    return [booking_response(booking) for booking in BookingService(db).list_all_bookings()]
