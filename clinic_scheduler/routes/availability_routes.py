from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_repository,
    get_scheduler,
)
from clinic_scheduler.scheduling.repository import SqlAlchemyScheduleRepository
from clinic_scheduler.scheduling.scheduler import BookingScheduler

router = APIRouter(tags=['availability'])

WEEKDAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
MAX_AVAILABILITY_NOTE_LENGTH = 200


def _normalize_note(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_AVAILABILITY_NOTE_LENGTH:
        raise ValueError(f'Must be {MAX_AVAILABILITY_NOTE_LENGTH} characters or fewer.')

    return normalized


class WeeklyAvailabilityRequest(BaseModel):
    start_time: time
    end_time: time
    is_available: bool = True
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_note(value)

    @model_validator(mode='after')
    def validate_hours(self) -> 'WeeklyAvailabilityRequest':
        if self.is_available and self.start_time >= self.end_time:
            raise ValueError('start_time must be before end_time.')
        return self


class WeeklyAvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    weekday: int
    weekday_name: str
    start_time: time
    end_time: time
    is_available: bool
    notes: str | None = None


class DateOverrideRequest(BaseModel):
    is_available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_note(value)

    @model_validator(mode='after')
    def validate_hours(self) -> 'DateOverrideRequest':
        if not self.is_available:
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError('start_time and end_time are required when the doctor is available.')
        if self.start_time >= self.end_time:
            raise ValueError('start_time must be before end_time.')
        return self


class DateOverrideResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool
    reason: str | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start_time: time
    end_time: time


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    duration_minutes: int
    slots: list[SlotResponse]


def parse_weekday(weekday: str) -> int:
    normalized = weekday.strip().lower()
    if normalized.isdigit() and 0 <= int(normalized) <= 6:
        return int(normalized)
    if normalized in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(normalized)

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail='Weekday must be 0-6 (Monday=0) or a day name.',
    )


def build_slots_response(doctor_id: int, slot_date: date, duration_minutes: int, starts: list[time]) -> AvailableSlotsResponse:
    slots = []
    for start in starts:
        end = datetime.combine(slot_date, start) + timedelta(minutes=duration_minutes)
        slots.append(SlotResponse(start_time=start, end_time=end.time()))

    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        date=slot_date,
        duration_minutes=duration_minutes,
        slots=slots,
    )


def to_weekly_response(row) -> WeeklyAvailabilityResponse:
    return WeeklyAvailabilityResponse(
        id=row.id,
        doctor_id=row.doctor_id,
        weekday=row.weekday,
        weekday_name=WEEKDAY_NAMES[row.weekday],
        start_time=row.start_time,
        end_time=row.end_time,
        is_available=row.is_available,
        notes=row.notes,
    )


@router.get('/doctors/{doctor_id}/slots', response_model=AvailableSlotsResponse)
def list_available_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int | None = Query(default=None),
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        duration = duration_minutes if duration_minutes is not None else scheduler.get_doctor(doctor_id).slot_duration_minutes
        starts = scheduler.get_available_slots(doctor_id, slot_date, duration)

        return build_slots_response(doctor_id, slot_date, duration, starts)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/calendar', response_model=list[AvailableSlotsResponse])
def list_calendar_slots(
    doctor_id: int,
    start_date: date = Query(...),
    days: int = Query(default=7, ge=1, le=config.CALENDAR_MAX_DAYS),
    duration_minutes: int | None = Query(default=None),
    scheduler: BookingScheduler = Depends(get_scheduler),
):
    ensure_database_ready()

    try:
        duration = duration_minutes if duration_minutes is not None else scheduler.get_doctor(doctor_id).slot_duration_minutes
        calendar = scheduler.get_available_slots_range(doctor_id, start_date, days, duration)

        return [
            build_slots_response(doctor_id, slot_date, duration, starts)
            for slot_date, starts in calendar.items()
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/weekly', response_model=list[WeeklyAvailabilityResponse])
def list_weekly_availability(
    doctor_id: int,
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        return [to_weekly_response(row) for row in repository.list_weekly_availability(doctor_id)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/doctors/{doctor_id}/weekly/{weekday}', response_model=WeeklyAvailabilityResponse)
def set_weekly_availability(
    doctor_id: int,
    weekday: str,
    data: WeeklyAvailabilityRequest,
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    weekday_number = parse_weekday(weekday)

    ensure_database_ready()

    try:
        if repository.get_doctor(doctor_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        row = repository.upsert_weekly_availability(
            doctor_id,
            weekday_number,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=data.is_available,
            notes=data.notes,
        )
        return to_weekly_response(row)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/doctors/{doctor_id}/weekly/{weekday}', status_code=status.HTTP_204_NO_CONTENT)
def remove_weekly_availability(
    doctor_id: int,
    weekday: str,
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    weekday_number = parse_weekday(weekday)

    ensure_database_ready()

    try:
        if not repository.delete_weekly_availability(doctor_id, weekday_number):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Weekly availability not found.',
            )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/overrides', response_model=list[DateOverrideResponse])
def list_date_overrides(
    doctor_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        overrides = repository.list_date_overrides(doctor_id, start_date=start_date, end_date=end_date)

        return [DateOverrideResponse.model_validate(override) for override in overrides]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/doctors/{doctor_id}/overrides/{override_date}', response_model=DateOverrideResponse)
def set_date_override(
    doctor_id: int,
    override_date: date,
    data: DateOverrideRequest,
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        if repository.get_doctor(doctor_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        override = repository.upsert_date_override(
            doctor_id,
            override_date,
            is_available=data.is_available,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
        )
        return DateOverrideResponse.model_validate(override)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/doctors/{doctor_id}/overrides/{override_date}', status_code=status.HTTP_204_NO_CONTENT)
def remove_date_override(
    doctor_id: int,
    override_date: date,
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        if not repository.delete_date_override(doctor_id, override_date):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Date override not found.',
            )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
