from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from clinic_scheduler.models.appointment import AppointmentStatus
from clinic_scheduler.scheduling.errors import InvalidInput
from clinic_scheduler.scheduling.resolver import (
    Interval,
    effective_window,
    find_conflicts,
    intervals_overlap,
    is_within_window,
    partition_window,
    resolve_available_slots,
)

MONDAY = date(2026, 1, 5)


def weekly(start: time = time(9, 0), end: time = time(11, 0), is_available: bool = True):
    return SimpleNamespace(start_time=start, end_time=end, is_available=is_available)


def override(start: time | None = None, end: time | None = None, is_available: bool = False):
    return SimpleNamespace(start_time=start, end_time=end, is_available=is_available)


def booking(
    start: time,
    duration_minutes: int = 30,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    appointment_id: int = 1,
):
    return SimpleNamespace(
        id=appointment_id,
        date=MONDAY,
        start_time=start,
        duration_minutes=duration_minutes,
        status=status,
    )


def test_resolve_available_slots_partitions_open_window() -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(), None, [])

    assert slots == [time(9, 0), time(9, 30), time(10, 0), time(10, 30)]


def test_resolve_available_slots_removes_booked_slot() -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(), None, [booking(time(9, 30))])

    assert slots == [time(9, 0), time(10, 0), time(10, 30)]


def test_resolve_available_slots_discards_trailing_partial_slot() -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(end=time(10, 45)), None, [])

    assert slots == [time(9, 0), time(9, 30), time(10, 0)]


def test_closed_override_wins_over_weekly_hours() -> None:
    assert resolve_available_slots(MONDAY, 30, weekly(), override(is_available=False), []) == []


def test_open_override_is_used_verbatim() -> None:
    slots = resolve_available_slots(
        MONDAY,
        30,
        weekly(is_available=False),
        override(time(13, 0), time(14, 0), is_available=True),
        [],
    )

    assert slots == [time(13, 0), time(13, 30)]


@pytest.mark.parametrize('weekly_row', [None, weekly(is_available=False)])
def test_missing_or_closed_weekly_row_yields_no_slots(weekly_row) -> None:
    assert resolve_available_slots(MONDAY, 30, weekly_row, None, []) == []


def test_slot_touched_by_two_bookings_is_excluded_entirely() -> None:
    appointments = [
        booking(time(9, 20), duration_minutes=10, appointment_id=1),
        booking(time(9, 50), duration_minutes=20, appointment_id=2),
    ]

    slots = resolve_available_slots(MONDAY, 30, weekly(), None, appointments)

    assert slots == [time(10, 30)]


@pytest.mark.parametrize(
    'status',
    [AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED, AppointmentStatus.COMPLETED],
)
def test_bookings_that_no_longer_hold_the_calendar_are_ignored(status: AppointmentStatus) -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(), None, [booking(time(9, 0), status=status)])

    assert time(9, 0) in slots


def test_in_progress_booking_blocks_its_slot() -> None:
    slots = resolve_available_slots(
        MONDAY, 30, weekly(), None, [booking(time(10, 0), status=AppointmentStatus.IN_PROGRESS)]
    )

    assert time(10, 0) not in slots


@pytest.mark.parametrize('duration_minutes', [0, -15])
def test_non_positive_duration_is_rejected(duration_minutes: int) -> None:
    with pytest.raises(InvalidInput):
        resolve_available_slots(MONDAY, duration_minutes, weekly(), None, [])


def test_past_date_is_rejected() -> None:
    with pytest.raises(InvalidInput):
        resolve_available_slots(MONDAY, 30, weekly(), None, [], now=datetime(2026, 1, 6, 8, 0))


def test_slots_already_started_today_are_not_offered() -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(), None, [], now=datetime(2026, 1, 5, 9, 45))

    assert slots == [time(10, 0), time(10, 30)]


def test_effective_window_returns_none_without_hours() -> None:
    assert effective_window(MONDAY, None, None) is None
    assert effective_window(MONDAY, weekly(), override(is_available=False)) is None


def test_partition_window_handles_missing_window() -> None:
    assert partition_window(None, 30) == []


def test_intervals_overlap_is_half_open() -> None:
    nine = datetime(2026, 1, 5, 9, 0)
    half_past = datetime(2026, 1, 5, 9, 30)
    ten = datetime(2026, 1, 5, 10, 0)

    assert not intervals_overlap(nine, half_past, half_past, ten)
    assert intervals_overlap(nine, ten, half_past, ten)


def test_find_conflicts_skips_excluded_appointment() -> None:
    appointments = [booking(time(9, 0), appointment_id=7)]
    start = datetime(2026, 1, 5, 9, 15)
    end = datetime(2026, 1, 5, 9, 45)

    assert find_conflicts(appointments, start, end) == appointments
    assert find_conflicts(appointments, start, end, exclude_id=7) == []


def test_is_within_window_requires_full_containment() -> None:
    window = Interval(datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 11, 0))

    assert is_within_window(window, datetime(2026, 1, 5, 10, 30), datetime(2026, 1, 5, 11, 0))
    assert not is_within_window(window, datetime(2026, 1, 5, 10, 45), datetime(2026, 1, 5, 11, 15))
    assert not is_within_window(None, datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 9, 30))


def test_slot_starting_exactly_now_is_not_offered() -> None:
    slots = resolve_available_slots(MONDAY, 30, weekly(), None, [], now=datetime(2026, 1, 5, 9, 30))

    assert slots == [time(10, 0), time(10, 30)]
