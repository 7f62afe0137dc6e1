from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.database import ensure_appointment_schema, ensure_availability_schema, get_db
from clinic_scheduler.scheduling.repository import SqlAlchemyScheduleRepository
from clinic_scheduler.scheduling.scheduler import BookingScheduler

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_repository(db: Session = Depends(get_db)) -> SqlAlchemyScheduleRepository:
    return SqlAlchemyScheduleRepository(db)


def get_scheduler(
    repository: SqlAlchemyScheduleRepository = Depends(get_repository),
) -> BookingScheduler:
    return BookingScheduler(repository)
