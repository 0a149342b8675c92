from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class TicketTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    total_tickets: int = Field(gt=0)


class TicketTypeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    total_tickets: int | None = Field(default=None, gt=0)


class TicketTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    name: str
    price: float
    total_tickets: int
    available_tickets: int
    booked_tickets: int


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    description: str | None = None
    location: str = Field(min_length=1, max_length=128)
    date_time: datetime
    images: list[str] = Field(default_factory=list)


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    location: str | None = Field(default=None, min_length=1, max_length=128)
    date_time: datetime | None = None
    images: list[str] | None = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None = None
    location: str
    date_time: datetime
    images: list[str]
    ticket_types: list[TicketTypeResponse]


class TicketLineRequest(BaseModel):
    ticket_type_id: str
    quantity: int = Field(gt=0)


class BookingRequest(BaseModel):
    event_id: str
    tickets: list[TicketLineRequest]
    customer_name: str = Field(min_length=1, max_length=128)
    customer_email: EmailStr
    customer_phone: str = Field(min_length=1, max_length=32)


class CheckoutSessionResponse(BaseModel):
    booking_id: str
    session_id: str
    session_url: str


class BookingLineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_type_id: str | None
    quantity: int
    price_per_ticket: float
    subtotal: float


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    user_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    total_amount: float
    status: str
    stripe_session_id: str | None = None
    payment_intent_id: str | None = None
    created_at: datetime
    tickets: list[BookingLineItemResponse]


class PaymentVerificationResponse(BaseModel):
    success: bool
    message: str
    booking: BookingResponse | None = None


class WebhookAck(BaseModel):
    received: bool = True
