from fastapi import HTTPException, status

from src.domain.exceptions import (
    BookingValidationError,
    EventInUseError,
    InsufficientInventoryError,
    InvalidStateTransitionError,
    NotFoundError,
    TicketingError,
    TicketTypeInUseError,
    UpstreamError,
)


def to_http_exception(exc: TicketingError) -> HTTPException:
    """Map a domain error onto the HTTP status the routes report."""
    if isinstance(exc, InsufficientInventoryError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, BookingValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(
        exc,
        (InvalidStateTransitionError, TicketTypeInUseError, EventInUseError),
    ):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, UpstreamError):
        status_code = status.HTTP_502_BAD_GATEWAY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(status_code=status_code, detail=str(exc))
