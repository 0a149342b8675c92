import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.domain.exceptions import TicketingError
from src.infrastructure.repositories.inventory_ledger import InventoryLedger


logger = logging.getLogger(__name__)


def commit_booked_lines(
    db: Session,
    booking_id: str,
    lines: list[tuple[str | None, int]],
) -> list[str]:
    """
    Move each line's quantity from available to booked, one commit per line.

    A failing line is logged and skipped; the booking status already
    committed by the caller is not touched. Returns the error messages.
    """
    ledger = InventoryLedger(db)
    errors: list[str] = []

    for ticket_type_id, quantity in lines:
        if ticket_type_id is None:
            message = f"Line of booking {booking_id} has no ticket type"
            logger.error("%s", message)
            errors.append(message)
            continue

        try:
            ledger.commit_tickets(ticket_type_id, quantity)
            db.commit()
        except TicketingError as exc:
            db.rollback()
            message = f"Failed to update inventory for ticket {ticket_type_id}"
            logger.error(
                "%s. booking_id=%s quantity=%s reason=%s",
                message,
                booking_id,
                quantity,
                exc,
            )
            errors.append(message)
        except SQLAlchemyError:
            db.rollback()
            message = f"Failed to update inventory for ticket {ticket_type_id}"
            logger.exception(
                "%s. booking_id=%s quantity=%s",
                message,
                booking_id,
                quantity,
            )
            errors.append(message)

    return errors
