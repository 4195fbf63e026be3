"""
Ledger error taxonomy and its HTTP translation.

Domain code raises these synchronously; routes turn them into HTTPException
through ledger_error_to_http so the status mapping lives in one place.
"""
from __future__ import annotations

from fastapi import HTTPException, status


class LedgerError(Exception):
    """Base class for reservation ledger failures."""


class ValidationError(LedgerError):
    """Missing or invalid required fields."""


class DuplicateReservationError(LedgerError):
    """External id (or reservation id) already present for the restaurant."""


class NotFoundError(LedgerError):
    """Operation referenced a reservation that does not exist."""


class InvalidTransitionError(LedgerError):
    """Status change out of a terminal status, or backwards."""


class ConcurrentUpdateError(LedgerError):
    """Compare-and-set lost against a concurrent writer; retry the operation."""


# First match wins; subclasses must precede their bases.
LEDGER_ERROR_STATUS: list[tuple[type[LedgerError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateReservationError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConcurrentUpdateError, status.HTTP_409_CONFLICT),
]


def ledger_error_to_http(exc: LedgerError) -> HTTPException:
    for error_type, status_code in LEDGER_ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
