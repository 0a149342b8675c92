

class TicketingError(Exception):
    """
    Base exception for all domain-level errors
    inside the ticketing service.
    """


class BookingValidationError(TicketingError):
    """Raised when a booking request is invalid. Nothing is written."""


class InsufficientInventoryError(BookingValidationError):
    """Raised when a ticket type cannot cover the requested quantity."""

    def __init__(self, message: str, ticket_type_id: str | None = None):
        self.ticket_type_id = ticket_type_id
        super().__init__(message)


class InvalidStateTransitionError(TicketingError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class NotFoundError(TicketingError):
    """Raised when a referenced entity does not exist or is not visible."""


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__("Event not found")


class TicketTypeNotFoundError(NotFoundError):
    def __init__(self, ticket_type_id: str):
        self.ticket_type_id = ticket_type_id
        super().__init__(f"Ticket type {ticket_type_id} not found")


class BookingNotFoundError(NotFoundError):
    def __init__(self, message: str = "Booking not found"):
        super().__init__(message)


class TicketTypeInUseError(TicketingError):
    """Raised when a ticket type is still referenced by a live booking."""


class EventInUseError(TicketingError):
    """Raised when an event still has bookings that are not cancelled."""



class UpstreamError(TicketingError):
    """Raised when the store or the payment processor call fails."""


class StoreUnavailableError(UpstreamError):
    """Raised when a store query fails."""


class PaymentGatewayError(UpstreamError):
    """Raised when the payment processor rejects or fails a call."""


class WebhookSignatureError(TicketingError):
    """Raised when an inbound webhook payload cannot be verified."""
