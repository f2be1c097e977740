"""Errors raised by the slot store and booking lifecycle.

Each error carries the HTTP status it maps to and a stable machine code.
The app registers a single handler for ``BookingError`` that renders
``{"error": message, "code": code}``.
"""


class BookingError(Exception):
    status_code = 400
    code = "BOOKING_ERROR"
    message = "Request could not be completed"

    def __init__(self, message: str = None, **context):
        super().__init__(message or self.message)
        self.context = context


# ---------- validation (400) ----------
class ValidationError(BookingError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class InvalidRange(ValidationError):
    code = "INVALID_RANGE"
    message = "end_hour must be after start_hour"


class InvalidCapacity(ValidationError):
    code = "INVALID_CAPACITY"
    message = "capacity must be at least 1"


class InvalidStatus(ValidationError):
    code = "INVALID_STATUS"
    message = "Invalid status"


# ---------- not found (404) ----------
class NotFound(BookingError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class SlotNotFound(NotFound):
    code = "SLOT_NOT_FOUND"
    message = "Slot not found"


class BookingNotFound(NotFound):
    code = "BOOKING_NOT_FOUND"
    message = "Booking not found"


class PatientNotFound(NotFound):
    code = "PATIENT_NOT_FOUND"
    message = "Patient not found"


# ---------- conflicts (409) ----------
class Conflict(BookingError):
    status_code = 409
    code = "CONFLICT"
    message = "Request conflicts with current state"


class DuplicateSlot(Conflict):
    code = "DUPLICATE_SLOT"
    message = "Slot already exists for this time"


class DuplicateBooking(Conflict):
    code = "DUPLICATE_BOOKING"
    message = "Patient already has a booking for this slot"


class SlotFull(Conflict):
    code = "SLOT_FULL"
    message = "Slot is already full"


class SlotHasBookings(Conflict):
    code = "SLOT_HAS_BOOKINGS"
    message = "Cannot delete slot with existing bookings"


class InvalidTransition(Conflict):
    code = "INVALID_TRANSITION"
    message = "Booking cannot move to that status"
