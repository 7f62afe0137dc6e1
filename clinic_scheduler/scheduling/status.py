"""Appointment status state machine."""

from clinic_scheduler.models.appointment import AppointmentStatus
from clinic_scheduler.scheduling.errors import InvalidTransition


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.IN_PROGRESS,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.IN_PROGRESS,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.RESCHEDULED: frozenset(),
}

# A rescheduled row is the audit trail of the old booking; its replacement
# holds the calendar as a scheduled row.
CALENDAR_HOLDING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return AppointmentStatus(target) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    current = AppointmentStatus(current)
    target = AppointmentStatus(target)
    if not can_transition(current, target):
        raise InvalidTransition(
            f'Cannot move an appointment from {current.value} to {target.value}.'
        )


def is_terminal(status: AppointmentStatus) -> bool:
    return not ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def holds_calendar(status: AppointmentStatus) -> bool:
    return AppointmentStatus(status) in CALENDAR_HOLDING_STATUSES
