"""Schedule repository.

The scheduler only talks to storage through ``ScheduleRepository``. The
SQLAlchemy implementation serialises writers per (doctor, date) with a row in
``schedule_locks`` so that the overlap check and the insert that follows it
commit as one unit.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, time
from typing import Callable, Iterable, Iterator

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduler.models.appointment import Appointment, AppointmentStatus
from clinic_scheduler.models.availability import DateOverride, WeeklyAvailability
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.schedule_lock import ScheduleLock
from clinic_scheduler.scheduling.errors import InvalidTransition, SlotConflict
from clinic_scheduler.scheduling.status import CALENDAR_HOLDING_STATUSES

logger = logging.getLogger(__name__)


class ScheduleRepository(ABC):
    @abstractmethod
    def get_doctor(self, doctor_id: int) -> Doctor | None:
        ...

    @abstractmethod
    def get_weekly_availability(self, doctor_id: int, weekday: int) -> WeeklyAvailability | None:
        ...

    @abstractmethod
    def get_date_override(self, doctor_id: int, on_date: date) -> DateOverride | None:
        ...

    @abstractmethod
    def get_active_appointments(self, doctor_id: int, on_date: date) -> list[Appointment]:
        ...

    @abstractmethod
    def get_appointment(self, appointment_id: int) -> Appointment | None:
        ...

    @abstractmethod
    def list_appointments(
        self,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        statuses: Iterable[AppointmentStatus] | None = None,
        limit: int | None = None,
    ) -> list[Appointment]:
        ...

    @abstractmethod
    def atomic(self, doctor_id: int | None = None, on_date: date | None = None):
        """Context manager wrapping one atomic unit of work.

        With a (doctor_id, on_date) scope, no other scoped unit for the same
        doctor and date runs concurrently.
        """

    @abstractmethod
    def conditional_insert_appointment(
        self,
        appointment: Appointment,
        overlap_predicate: Callable[[Appointment], bool],
    ) -> Appointment:
        """Insert ``appointment`` unless an active appointment matches the predicate."""

    @abstractmethod
    def update_appointment_status(
        self,
        appointment_id: int,
        from_status: AppointmentStatus,
        to_status: AppointmentStatus,
        **changes,
    ) -> Appointment:
        """Move an appointment to ``to_status`` only if it is still in ``from_status``."""


class SqlAlchemyScheduleRepository(ScheduleRepository):
    def __init__(self, db: Session):
        self.db = db

    def get_doctor(self, doctor_id: int) -> Doctor | None:
        return self.db.get(Doctor, doctor_id)

    def get_weekly_availability(self, doctor_id: int, weekday: int) -> WeeklyAvailability | None:
        return self.db.query(WeeklyAvailability).filter(
            WeeklyAvailability.doctor_id == doctor_id,
            WeeklyAvailability.weekday == weekday,
        ).first()

    def get_date_override(self, doctor_id: int, on_date: date) -> DateOverride | None:
        return self.db.query(DateOverride).filter(
            DateOverride.doctor_id == doctor_id,
            DateOverride.date == on_date,
        ).first()

    def get_active_appointments(self, doctor_id: int, on_date: date) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == on_date,
            Appointment.status.in_(list(CALENDAR_HOLDING_STATUSES)),
        ).order_by(Appointment.start_time.asc()).all()

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        return self.db.get(Appointment, appointment_id)

    def list_appointments(
        self,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        statuses: Iterable[AppointmentStatus] | None = None,
        limit: int | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if start_date is not None:
            query = query.filter(Appointment.date >= start_date)
        if end_date is not None:
            query = query.filter(Appointment.date <= end_date)
        if statuses is not None:
            query = query.filter(Appointment.status.in_(list(statuses)))

        query = query.order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    @contextmanager
    def atomic(self, doctor_id: int | None = None, on_date: date | None = None) -> Iterator['SqlAlchemyScheduleRepository']:
        try:
            if doctor_id is not None and on_date is not None:
                self._acquire_schedule_lock(doctor_id, on_date)
                # Rows loaded before the lock may be stale.
                self.db.expire_all()
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _acquire_schedule_lock(self, doctor_id: int, on_date: date, retry: bool = True) -> None:
        result = self.db.execute(
            update(ScheduleLock)
            .where(ScheduleLock.doctor_id == doctor_id, ScheduleLock.date == on_date)
            .values(version=ScheduleLock.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return

        self.db.add(ScheduleLock(doctor_id=doctor_id, date=on_date, version=1))
        try:
            self.db.flush()
        except IntegrityError:
            # Another writer created the lock row first; queue behind it.
            self.db.rollback()
            if not retry:
                raise
            logger.debug('Schedule lock for doctor %s on %s created concurrently, retrying', doctor_id, on_date)
            self._acquire_schedule_lock(doctor_id, on_date, retry=False)

    def conditional_insert_appointment(
        self,
        appointment: Appointment,
        overlap_predicate: Callable[[Appointment], bool],
    ) -> Appointment:
        active = self.get_active_appointments(appointment.doctor_id, appointment.date)
        conflicts = [existing for existing in active if overlap_predicate(existing)]
        if conflicts:
            raise SlotConflict(
                f'The requested time overlaps appointment {conflicts[0].id}; choose another slot.'
            )

        self.db.add(appointment)
        self.db.flush()
        return appointment

    def update_appointment_status(
        self,
        appointment_id: int,
        from_status: AppointmentStatus,
        to_status: AppointmentStatus,
        **changes,
    ) -> Appointment:
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == from_status)
            .values(status=to_status, **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f'Appointment {appointment_id} is no longer {AppointmentStatus(from_status).value}.'
            )

        return self.db.get(Appointment, appointment_id, populate_existing=True)

    def create_doctor(
        self,
        full_name: str,
        specialization: str | None,
        slot_duration_minutes: int,
        timezone: str,
    ) -> Doctor:
        doctor = Doctor(
            full_name=full_name,
            specialization=specialization,
            slot_duration_minutes=slot_duration_minutes,
            timezone=timezone,
        )
        with self.atomic():
            self.db.add(doctor)
        self.db.refresh(doctor)
        return doctor

    def list_weekly_availability(self, doctor_id: int) -> list[WeeklyAvailability]:
        return self.db.query(WeeklyAvailability).filter(
            WeeklyAvailability.doctor_id == doctor_id,
        ).order_by(WeeklyAvailability.weekday.asc()).all()

    def upsert_weekly_availability(
        self,
        doctor_id: int,
        weekday: int,
        start_time: time,
        end_time: time,
        is_available: bool,
        notes: str | None = None,
    ) -> WeeklyAvailability:
        with self.atomic():
            row = self.get_weekly_availability(doctor_id, weekday)
            if row is None:
                row = WeeklyAvailability(doctor_id=doctor_id, weekday=weekday)
                self.db.add(row)
            row.start_time = start_time
            row.end_time = end_time
            row.is_available = is_available
            row.notes = notes
        self.db.refresh(row)
        return row

    def delete_weekly_availability(self, doctor_id: int, weekday: int) -> bool:
        with self.atomic():
            row = self.get_weekly_availability(doctor_id, weekday)
            if row is None:
                return False
            self.db.delete(row)
        return True

    def list_date_overrides(
        self,
        doctor_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[DateOverride]:
        query = self.db.query(DateOverride).filter(DateOverride.doctor_id == doctor_id)
        if start_date is not None:
            query = query.filter(DateOverride.date >= start_date)
        if end_date is not None:
            query = query.filter(DateOverride.date <= end_date)
        return query.order_by(DateOverride.date.asc()).all()

    def upsert_date_override(
        self,
        doctor_id: int,
        on_date: date,
        is_available: bool,
        start_time: time | None = None,
        end_time: time | None = None,
        reason: str | None = None,
    ) -> DateOverride:
        # Scoped so a booking on that date never sees half an edit.
        with self.atomic(doctor_id, on_date):
            row = self.get_date_override(doctor_id, on_date)
            if row is None:
                row = DateOverride(doctor_id=doctor_id, date=on_date)
                self.db.add(row)
            row.is_available = is_available
            row.start_time = start_time if is_available else None
            row.end_time = end_time if is_available else None
            row.reason = reason
        self.db.refresh(row)
        return row

    def delete_date_override(self, doctor_id: int, on_date: date) -> bool:
        with self.atomic(doctor_id, on_date):
            row = self.get_date_override(doctor_id, on_date)
            if row is None:
                return False
            self.db.delete(row)
        return True
