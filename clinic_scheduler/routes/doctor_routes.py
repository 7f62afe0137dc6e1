from datetime import datetime

import pytz
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.routes.dependencies import database_unavailable, ensure_database_ready, get_repository
from clinic_scheduler.scheduling.repository import SqlAlchemyScheduleRepository

router = APIRouter(tags=['doctors'])


class CreateDoctorRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    specialization: str | None = Field(default=None, max_length=100)
    slot_duration_minutes: int = Field(default=config.DEFAULT_SLOT_DURATION_MINUTES, gt=0, le=480)
    timezone: str = config.DEFAULT_TIMEZONE

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = ' '.join(value.split())
        if not normalized:
            raise ValueError('Doctor name is required.')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        if normalized not in pytz.all_timezones_set:
            raise ValueError(f'Unknown timezone: {normalized}')
        return normalized


class DoctorResponse(BaseModel):
    id: int
    full_name: str
    specialization: str | None = None
    slot_duration_minutes: int
    timezone: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(data: CreateDoctorRequest, repository: SqlAlchemyScheduleRepository = Depends(get_repository)):
    ensure_database_ready()

    try:
        doctor = repository.create_doctor(
            full_name=data.full_name,
            specialization=data.specialization,
            slot_duration_minutes=data.slot_duration_minutes,
            timezone=data.timezone,
        )

        return DoctorResponse.model_validate(doctor)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, repository: SqlAlchemyScheduleRepository = Depends(get_repository)):
    ensure_database_ready()

    try:
        doctor = repository.get_doctor(doctor_id)
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        return DoctorResponse.model_validate(doctor)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
