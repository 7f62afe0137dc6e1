from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import AppointmentStatus, AppointmentType
from clinic_scheduler.routes.dependencies import database_unavailable, ensure_database_ready, get_scheduler
from clinic_scheduler.scheduling.scheduler import BookingScheduler

router = APIRouter(tags=['appointments'])


def _normalize_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


def _normalize_appointment_type(value):
    if isinstance(value, str):
        normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
        if normalized in {'offline', 'in_clinic'}:
            return AppointmentType.IN_PERSON
        if normalized == 'online':
            return AppointmentType.REMOTE
        return normalized
    return value


class CreateAppointmentRequest(BaseModel):
    patient_id: int
    doctor_id: int
    date: date
    start_time: time
    duration_minutes: int | None = None
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    reason_for_visit: str | None = None
    notes: str | None = None

    @field_validator('appointment_type', mode='before')
    @classmethod
    def validate_appointment_type(cls, value):
        return _normalize_appointment_type(value)

    @field_validator('reason_for_visit')
    @classmethod
    def validate_reason_for_visit(cls, value: str | None) -> str | None:
        return _normalize_text(value, config.MAX_APPOINTMENT_NOTES_LENGTH, 'Reason for visit')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_text(value, config.MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')


class UpdateAppointmentRequest(BaseModel):
    appointment_type: AppointmentType | None = None
    reason_for_visit: str | None = None
    notes: str | None = None

    @field_validator('appointment_type', mode='before')
    @classmethod
    def validate_appointment_type(cls, value):
        return _normalize_appointment_type(value)

    @field_validator('reason_for_visit', 'notes')
    @classmethod
    def validate_text(cls, value: str | None) -> str | None:
        # A blank string is kept so the field gets cleared.
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
        return normalized


class RescheduleAppointmentRequest(BaseModel):
    new_date: date
    new_start_time: time


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_text(value, config.MAX_CANCELLATION_REASON_LENGTH, 'Cancellation reason')


class AdvanceStatusRequest(BaseModel):
    target_status: AppointmentStatus

    @field_validator('target_status', mode='before')
    @classmethod
    def validate_target_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower().replace('-', '_').replace(' ', '_')
        return value


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: AppointmentStatus
    appointment_type: AppointmentType
    reason_for_visit: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    rescheduled_from: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, scheduler: BookingScheduler = Depends(get_scheduler)):
    ensure_database_ready()

    try:
        appointment = scheduler.book(
            patient_id=data.patient_id,
            doctor_id=data.doctor_id,
            on_date=data.date,
            start_time=data.start_time,
            duration_minutes=data.duration_minutes,
            appointment_type=data.appointment_type,
            notes=data.notes,
            reason_for_visit=data.reason_for_visit,
        )

        return AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_id: int | None = Query(default=None),
    patient_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointments = scheduler.list_appointments(
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_date=start_date,
            end_date=end_date,
            status=appointment_status,
        )

        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/upcoming', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    doctor_id: int,
    limit: int = Query(default=config.UPCOMING_APPOINTMENTS_LIMIT, ge=1, le=100),
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointments = scheduler.list_upcoming_for_doctor(doctor_id, limit=limit)

        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, scheduler: BookingScheduler = Depends(get_scheduler)):
    ensure_database_ready()

    try:
        return AppointmentResponse.model_validate(scheduler.get_appointment(appointment_id))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointment = scheduler.update_details(
            appointment_id,
            appointment_type=data.appointment_type,
            reason_for_visit=data.reason_for_visit,
            notes=data.notes,
        )

        return AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointment = scheduler.reschedule(appointment_id, data.new_date, data.new_start_time)

        return AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointment = scheduler.cancel(appointment_id, data.reason)

        return AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/status', response_model=AppointmentResponse)
def advance_appointment_status(
    appointment_id: int,
    data: AdvanceStatusRequest,
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        appointment = scheduler.advance_status(appointment_id, data.target_status)

        return AppointmentResponse.model_validate(appointment)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
