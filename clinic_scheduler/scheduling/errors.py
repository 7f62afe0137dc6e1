"""Errors raised by the scheduling core.

Every failure a caller can act on is one of these; database errors are not
wrapped and propagate unchanged.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(SchedulingError):
    """Malformed request: past date, non-positive duration, oversized text."""


class OutOfAvailability(SchedulingError):
    """The requested interval is outside the doctor's effective window."""


class SlotConflict(SchedulingError):
    """Another active appointment already holds part of the interval."""


class InvalidTransition(SchedulingError):
    """The status change is not allowed from the appointment's current status."""


class DoctorNotFound(SchedulingError):
    pass


class AppointmentNotFound(SchedulingError):
    pass
