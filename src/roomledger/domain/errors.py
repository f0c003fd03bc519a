"""Booking error taxonomy.

Every business-rule rejection is a BookingError carrying a stable error
code and an HTTP-style status. The API layer renders them as
{"errorCode": ..., "message": ...}.
"""

from __future__ import annotations

from datetime import datetime


class BookingError(Exception):
    """Base class for typed booking rejections."""

    code = "BOOKING_ERROR"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    """Request payload failed boundary validation."""

    code = "VALIDATION_ERROR"


class DateError(ValidationError):
    """Malformed or policy-violating interval."""


class ResourceNotFound(BookingError):
    """Referenced resource id does not exist."""

    code = "ROOM_UNAVAILABLE"

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(f"Room {resource_id} not found")


class ResourceUnavailable(BookingError):
    """Resource is administratively out of service."""

    code = "ROOM_UNAVAILABLE"

    def __init__(self, resource_id: str, label: str | None = None) -> None:
        self.resource_id = resource_id
        self.label = label
        super().__init__(f"Room {label or resource_id} is out of service")


class DateConflict(BookingError):
    """An active reservation overlaps the requested interval."""

    code = "DATE_CONFLICT"

    def __init__(
        self,
        resource_id: str,
        label: str | None = None,
        *,
        conflicting_reservation_id: str | None = None,
        existing_check_in: datetime | None = None,
        existing_check_out: datetime | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.label = label
        self.conflicting_reservation_id = conflicting_reservation_id
        self.existing_check_in = existing_check_in
        self.existing_check_out = existing_check_out
        super().__init__(
            f"Room {label or resource_id} is already booked for the selected dates"
        )


class ReservationNotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, reservation_id: str) -> None:
        self.reservation_id = reservation_id
        super().__init__("Reservation not found")


class InvalidStatusTransition(BookingError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current} to {requested}")
