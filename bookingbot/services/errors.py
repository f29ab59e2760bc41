"""
Booking error taxonomy.

Every operation of the booking core fails with one of these (never a bare ValueError),
so the API layer can map them to HTTP codes and background loops can log them by code.
"""

# ConflictError codes
SLOT_GONE = "SLOT_GONE"
DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
INVALID_TRANSITION = "INVALID_TRANSITION"

# PermissionDeniedError codes
BLACKLISTED = "BLACKLISTED"
NOT_STAFF = "NOT_STAFF"
NOT_SUBJECT = "NOT_SUBJECT"


class BookingError(Exception):
    """Base class for booking core failures."""

    code: str = "BOOKING_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(BookingError):
    """Bad interval, start in the past, overlap with a live slot."""

    code = "VALIDATION"


class ConflictError(BookingError):
    """Slot gone, duplicate request, or transition not allowed from the current status."""

    code = "CONFLICT"


class NotFoundError(BookingError):
    """Missing slot, request, procedure or pattern."""

    code = "NOT_FOUND"


class PermissionDeniedError(BookingError):
    """Blacklisted subject, or an actor not allowed to perform the operation."""

    code = "PERMISSION_DENIED"


class TransientError(BookingError):
    """Store temporarily unavailable; safe to retry later."""

    code = "TRANSIENT"
