import asyncio
import json
from datetime import date, time

import pytest
from pydantic import ValidationError

from clinic_scheduler.main import scheduling_error_handler
from clinic_scheduler.models.appointment import AppointmentStatus, AppointmentType
from clinic_scheduler.routes.appointment_routes import (
    AdvanceStatusRequest,
    CancelAppointmentRequest,
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateAppointmentRequest,
    advance_appointment_status,
    cancel_appointment,
    create_appointment,
    get_appointment,
    list_appointments,
    reschedule_appointment,
    update_appointment,
)
from clinic_scheduler.scheduling.errors import (
    AppointmentNotFound,
    InvalidInput,
    InvalidTransition,
    OutOfAvailability,
    SlotConflict,
)

MONDAY = date(2026, 1, 5)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('clinic_scheduler.routes.appointment_routes.ensure_database_ready', lambda: None)


def booking_request(doctor, start: time = time(9, 0), **overrides) -> CreateAppointmentRequest:
    fields = {'patient_id': 101, 'doctor_id': doctor.id, 'date': MONDAY, 'start_time': start}
    fields.update(overrides)
    return CreateAppointmentRequest(**fields)


@pytest.mark.parametrize(
    ('raw_type', 'expected'),
    [
        (' In-Person ', AppointmentType.IN_PERSON),
        ('offline', AppointmentType.IN_PERSON),
        ('in clinic', AppointmentType.IN_PERSON),
        ('ONLINE', AppointmentType.REMOTE),
        ('remote', AppointmentType.REMOTE),
    ],
)
def test_create_appointment_request_normalizes_type(raw_type: str, expected: AppointmentType) -> None:
    request = CreateAppointmentRequest(
        patient_id=1,
        doctor_id=1,
        date=MONDAY,
        start_time=time(9, 0),
        appointment_type=raw_type,
    )

    assert request.appointment_type == expected


def test_create_appointment_request_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(patient_id=1, doctor_id=1, date=MONDAY, start_time=time(9, 0), appointment_type='house call')


def test_create_appointment_request_trims_and_limits_notes() -> None:
    request = CreateAppointmentRequest(
        patient_id=1,
        doctor_id=1,
        date=MONDAY,
        start_time=time(9, 0),
        notes='  fasting since midnight ',
        reason_for_visit='   ',
    )

    assert request.notes == 'fasting since midnight'
    assert request.reason_for_visit is None

    with pytest.raises(ValidationError):
        CreateAppointmentRequest(patient_id=1, doctor_id=1, date=MONDAY, start_time=time(9, 0), notes='x' * 501)


def test_cancel_request_limits_reason_length() -> None:
    with pytest.raises(ValidationError):
        CancelAppointmentRequest(reason='x' * 201)


def test_advance_status_request_normalizes_status() -> None:
    assert AdvanceStatusRequest(target_status=' In-Progress ').target_status == AppointmentStatus.IN_PROGRESS

    with pytest.raises(ValidationError):
        AdvanceStatusRequest(target_status='archived')


def test_create_appointment_returns_booked_appointment(scheduler, doctor) -> None:
    response = create_appointment(data=booking_request(doctor, reason_for_visit='Annual physical'), scheduler=scheduler)

    assert response.status == AppointmentStatus.SCHEDULED
    assert response.start_time == time(9, 0)
    assert response.end_time == time(9, 30)
    assert response.reason_for_visit == 'Annual physical'


def test_create_appointment_propagates_domain_errors(scheduler, doctor) -> None:
    create_appointment(data=booking_request(doctor), scheduler=scheduler)

    with pytest.raises(SlotConflict):
        create_appointment(data=booking_request(doctor, patient_id=102), scheduler=scheduler)

    with pytest.raises(OutOfAvailability):
        create_appointment(data=booking_request(doctor, start=time(16, 0)), scheduler=scheduler)


def test_reschedule_cancel_and_status_routes(scheduler, doctor) -> None:
    original = create_appointment(data=booking_request(doctor), scheduler=scheduler)

    moved = reschedule_appointment(
        appointment_id=original.id,
        data=RescheduleAppointmentRequest(new_date=MONDAY, new_start_time=time(10, 30)),
        scheduler=scheduler,
    )
    assert moved.rescheduled_from == original.id
    assert get_appointment(appointment_id=original.id, scheduler=scheduler).status == AppointmentStatus.RESCHEDULED

    confirmed = advance_appointment_status(
        appointment_id=moved.id,
        data=AdvanceStatusRequest(target_status='confirmed'),
        scheduler=scheduler,
    )
    assert confirmed.status == AppointmentStatus.CONFIRMED

    cancelled = cancel_appointment(
        appointment_id=moved.id,
        data=CancelAppointmentRequest(reason='Feeling better'),
        scheduler=scheduler,
    )
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancellation_reason == 'Feeling better'

    with pytest.raises(InvalidTransition):
        advance_appointment_status(
            appointment_id=moved.id,
            data=AdvanceStatusRequest(target_status='scheduled'),
            scheduler=scheduler,
        )


def test_list_appointments_filters_by_status(scheduler, doctor) -> None:
    first = create_appointment(data=booking_request(doctor), scheduler=scheduler)
    second = create_appointment(data=booking_request(doctor, start=time(10, 0), patient_id=102), scheduler=scheduler)
    cancel_appointment(appointment_id=first.id, data=CancelAppointmentRequest(), scheduler=scheduler)

    scheduled = list_appointments(
        doctor_id=doctor.id,
        patient_id=None,
        start_date=None,
        end_date=None,
        appointment_status=AppointmentStatus.SCHEDULED,
        scheduler=scheduler,
    )

    assert [appointment.id for appointment in scheduled] == [second.id]


def test_get_appointment_reports_missing(scheduler) -> None:
    with pytest.raises(AppointmentNotFound):
        get_appointment(appointment_id=999, scheduler=scheduler)


@pytest.mark.parametrize(
    ('error', 'status_code'),
    [
        (InvalidInput('Duration must be positive.'), 400),
        (OutOfAvailability('Outside working hours.'), 400),
        (SlotConflict('Slot taken.'), 409),
        (InvalidTransition('Cannot move.'), 409),
        (AppointmentNotFound('Appointment not found.'), 404),
    ],
)
def test_scheduling_error_handler_maps_errors_to_status_codes(error, status_code: int) -> None:
    response = asyncio.run(scheduling_error_handler(None, error))

    assert response.status_code == status_code
    assert json.loads(response.body) == {'detail': error.message, 'error': type(error).__name__}


def test_create_appointment_rejects_start_time_with_offset(scheduler, doctor) -> None:
    request = CreateAppointmentRequest.model_validate(
        {'patient_id': 101, 'doctor_id': doctor.id, 'date': '2026-01-05', 'start_time': '09:30:00+02:00'}
    )

    with pytest.raises(InvalidInput):
        create_appointment(data=request, scheduler=scheduler)


def test_reschedule_appointment_rejects_start_time_with_offset(scheduler, doctor) -> None:
    original = create_appointment(data=booking_request(doctor), scheduler=scheduler)
    request = RescheduleAppointmentRequest.model_validate(
        {'new_date': '2026-01-05', 'new_start_time': '10:30:00+02:00'}
    )

    with pytest.raises(InvalidInput):
        reschedule_appointment(appointment_id=original.id, data=request, scheduler=scheduler)

    assert get_appointment(appointment_id=original.id, scheduler=scheduler).status == AppointmentStatus.SCHEDULED


def test_update_appointment_request_keeps_blank_text_for_clearing() -> None:
    request = UpdateAppointmentRequest(appointment_type='online', notes='   ')

    assert request.appointment_type == AppointmentType.REMOTE
    assert request.notes == ''
    assert request.reason_for_visit is None

    with pytest.raises(ValidationError):
        UpdateAppointmentRequest(reason_for_visit='x' * 501)


def test_update_appointment_edits_details(scheduler, doctor) -> None:
    created = create_appointment(data=booking_request(doctor, notes='Bring referral'), scheduler=scheduler)

    updated = update_appointment(
        appointment_id=created.id,
        data=UpdateAppointmentRequest(appointment_type='remote', reason_for_visit='Second opinion', notes=''),
        scheduler=scheduler,
    )

    assert updated.appointment_type == AppointmentType.REMOTE
    assert updated.reason_for_visit == 'Second opinion'
    assert updated.notes is None
    assert updated.start_time == time(9, 0)


def test_update_appointment_rejects_cancelled_appointment(scheduler, doctor) -> None:
    created = create_appointment(data=booking_request(doctor), scheduler=scheduler)
    cancel_appointment(appointment_id=created.id, data=CancelAppointmentRequest(), scheduler=scheduler)

    with pytest.raises(InvalidTransition):
        update_appointment(
            appointment_id=created.id,
            data=UpdateAppointmentRequest(notes='Rebook please'),
            scheduler=scheduler,
        )
