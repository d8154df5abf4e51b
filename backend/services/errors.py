"""Booking error taxonomy.

Every failure of the slot and booking logic is one of five kinds, each with a
stable HTTP status and machine-readable code. ``backend.main`` renders them as
``{"detail": ..., "code": ...}``.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'booking_error'

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInput(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'invalid_input'


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'forbidden'


class NotOwner(Forbidden):
    code = 'not_owner'


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'conflict'


class SlotTaken(Conflict):
    code = 'slot_taken'


class AlreadyResolved(Conflict):
    code = 'already_resolved'


class Unavailable(BookingError):
    status_code = 422
    code = 'unavailable'


class DoctorUnavailable(Unavailable):
    code = 'doctor_unavailable'


class OutsideWindow(Unavailable):
    code = 'outside_window'
