"""Availability resolution.

Turns a doctor's weekly template, an optional date override and the
appointments already on the books into the start times that can still be
booked. Everything here is a pure function of its arguments; loading the
rows is the caller's job.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, NamedTuple

from clinic_scheduler.scheduling.errors import InvalidInput
from clinic_scheduler.scheduling.status import holds_calendar


class Interval(NamedTuple):
    start: datetime
    end: datetime


def effective_window(target_date: date, weekly, override) -> Interval | None:
    """Working hours for ``target_date`` after applying the override.

    An override is used verbatim, including a closed-all-day override. Without
    one, the weekly row for the date's weekday applies; a missing or closed
    row means no availability.
    """
    source = override if override is not None else weekly
    if source is None or not source.is_available:
        return None
    if source.start_time is None or source.end_time is None:
        return None

    start = datetime.combine(target_date, source.start_time)
    end = datetime.combine(target_date, source.end_time)
    if start >= end:
        return None
    return Interval(start, end)


def partition_window(window: Interval | None, duration_minutes: int) -> list[Interval]:
    """Split a window into consecutive full slots; a short remainder is dropped."""
    if duration_minutes <= 0:
        raise InvalidInput('Slot duration must be a positive number of minutes.')
    if window is None:
        return []

    step = timedelta(minutes=duration_minutes)
    slots: list[Interval] = []
    current = window.start
    while current + step <= window.end:
        slots.append(Interval(current, current + step))
        current += step
    return slots


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def appointment_interval(appointment) -> Interval:
    start = datetime.combine(appointment.date, appointment.start_time)
    return Interval(start, start + timedelta(minutes=appointment.duration_minutes))


def occupied_intervals(appointments: Iterable) -> list[Interval]:
    """Intervals of the appointments that hold the calendar, in start order."""
    intervals = [
        appointment_interval(appointment)
        for appointment in appointments
        if holds_calendar(appointment.status)
    ]
    intervals.sort()
    return intervals


def find_conflicts(appointments: Iterable, start: datetime, end: datetime, exclude_id: int | None = None) -> list:
    conflicts = []
    for appointment in appointments:
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if not holds_calendar(appointment.status):
            continue
        booked = appointment_interval(appointment)
        if intervals_overlap(start, end, booked.start, booked.end):
            conflicts.append(appointment)
    return conflicts


def is_within_window(window: Interval | None, start: datetime, end: datetime) -> bool:
    if window is None:
        return False
    return window.start <= start and end <= window.end


def resolve_available_slots(
    target_date: date,
    duration_minutes: int,
    weekly,
    override,
    appointments: Iterable,
    now: datetime | None = None,
) -> list[time]:
    """Ordered, de-duplicated start times that are free on ``target_date``.

    Raises ``InvalidInput`` for a non-positive duration or a date before
    ``now``. On the day of ``now`` itself, slots starting at or before ``now`` are
    not offered.
    """
    if duration_minutes <= 0:
        raise InvalidInput('Slot duration must be a positive number of minutes.')
    if now is not None and target_date < now.date():
        raise InvalidInput('Availability cannot be requested for a past date.')

    window = effective_window(target_date, weekly, override)
    if window is None:
        return []

    occupied = occupied_intervals(appointments)
    starts: set[time] = set()
    for slot in partition_window(window, duration_minutes):
        if now is not None and slot.start <= now:
            continue
        if any(intervals_overlap(slot.start, slot.end, busy.start, busy.end) for busy in occupied):
            continue
        starts.add(slot.start.time())

    return sorted(starts)
