# src/common/utils/exceptions.py
"""Domain errors raised by the ride lifecycle services.

Each error carries the HTTP status the API reports for it; the handler
registered in ``src.main`` turns them into ``{"detail": ...}`` responses.
"""

from fastapi import status


class RideServiceError(Exception):
    """Base class for recoverable, per-operation failures."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionFailedError(RideServiceError):
    """The current state does not allow the requested operation."""


class InvalidTransitionError(PreconditionFailedError):
    """A stage change that is not the immediate successor of the current stage."""


class ForbiddenActionError(RideServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(RideServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class AppointmentNotFoundError(NotFoundError):
    def __init__(self, appointment_id=None):
        super().__init__("Appointment not found")
        self.appointment_id = appointment_id


class RideNotFoundError(NotFoundError):
    def __init__(self, ride_id=None):
        super().__init__("Ride not found")
        self.ride_id = ride_id


class ConcurrencyConflictError(RideServiceError):
    """A conditional write lost against a concurrent writer. Re-read and retry."""

    status_code = status.HTTP_409_CONFLICT


class QuoteUnavailableError(RideServiceError):
    """The routing oracle could not produce a distance/duration estimate."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Fare quote unavailable, please try again shortly"):
        super().__init__(message)
