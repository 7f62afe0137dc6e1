import os
from datetime import datetime, time

import pytest
import pytz
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models.appointment import Appointment  # noqa: E402, F401
from clinic_scheduler.models.availability import DateOverride, WeeklyAvailability  # noqa: E402, F401
from clinic_scheduler.models.doctor import Doctor  # noqa: E402, F401
from clinic_scheduler.models.schedule_lock import ScheduleLock  # noqa: E402, F401
from clinic_scheduler.scheduling.repository import SqlAlchemyScheduleRepository  # noqa: E402
from clinic_scheduler.scheduling.scheduler import BookingScheduler  # noqa: E402

# Thursday before the Monday most tests book on (2026-01-05).
FIXED_NOW = datetime(2026, 1, 1, 8, 0)


@pytest.fixture
def schedule_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repository(schedule_db) -> SqlAlchemyScheduleRepository:
    return SqlAlchemyScheduleRepository(schedule_db)


@pytest.fixture
def scheduler(repository) -> BookingScheduler:
    return BookingScheduler(repository, clock=lambda: pytz.UTC.localize(FIXED_NOW))


@pytest.fixture
def doctor(repository):
    """Doctor with Monday hours 09:00-11:00 and 30-minute slots."""
    doctor = repository.create_doctor(
        full_name='Dr. Amara Okafor',
        specialization='General Medicine',
        slot_duration_minutes=30,
        timezone='UTC',
    )
    repository.upsert_weekly_availability(doctor.id, 0, time(9, 0), time(11, 0), is_available=True)
    return doctor
