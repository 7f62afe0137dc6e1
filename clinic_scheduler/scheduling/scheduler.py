"""Booking scheduler.

The only writer of appointment rows. Reads go through the resolver; every
write re-checks the doctor's window and the active bookings inside a
repository unit scoped to (doctor, date), so two requests that both saw a
slot as free cannot both commit it.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable

import pytz

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import Appointment, AppointmentStatus, AppointmentType
from clinic_scheduler.scheduling import resolver
from clinic_scheduler.scheduling.errors import (
    AppointmentNotFound,
    DoctorNotFound,
    InvalidInput,
    InvalidTransition,
    OutOfAvailability,
    SlotConflict,
)
from clinic_scheduler.scheduling.repository import ScheduleRepository
from clinic_scheduler.scheduling.status import CALENDAR_HOLDING_STATUSES, ensure_transition, is_terminal

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


class BookingScheduler:
    def __init__(self, repository: ScheduleRepository, clock: Callable[[], datetime] = utc_now):
        self.repository = repository
        self.clock = clock

    def _doctor_timezone(self, doctor):
        try:
            return pytz.timezone(doctor.timezone or config.DEFAULT_TIMEZONE)
        except pytz.UnknownTimeZoneError:
            logger.warning('Unknown timezone %r for doctor %s, using UTC', doctor.timezone, doctor.id)
            return pytz.UTC

    def local_now(self, doctor, now: datetime | None = None) -> datetime:
        """Wall-clock time in the doctor's time zone, without tzinfo.

        ``now`` defaults to the scheduler clock. An aware value is converted to
        the doctor's zone; a naive one is taken as already local.
        """
        if now is None:
            now = self.clock()
        if now.tzinfo is None:
            return now
        return now.astimezone(self._doctor_timezone(doctor)).replace(tzinfo=None)

    def get_doctor(self, doctor_id: int):
        doctor = self.repository.get_doctor(doctor_id)
        if doctor is None:
            raise DoctorNotFound(f'Doctor {doctor_id} not found.')
        return doctor

    def _effective_window(self, doctor_id: int, on_date: date) -> resolver.Interval | None:
        return resolver.effective_window(
            on_date,
            self.repository.get_weekly_availability(doctor_id, on_date.weekday()),
            self.repository.get_date_override(doctor_id, on_date),
        )

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id)
        if appointment is None:
            raise AppointmentNotFound(f'Appointment {appointment_id} not found.')
        return appointment

    def get_available_slots(
        self,
        doctor_id: int,
        on_date: date,
        duration_minutes: int | None = None,
        now: datetime | None = None,
    ) -> list[time]:
        doctor = self.get_doctor(doctor_id)
        duration = duration_minutes if duration_minutes is not None else doctor.slot_duration_minutes

        return resolver.resolve_available_slots(
            on_date,
            duration,
            self.repository.get_weekly_availability(doctor_id, on_date.weekday()),
            self.repository.get_date_override(doctor_id, on_date),
            self.repository.get_active_appointments(doctor_id, on_date),
            now=self.local_now(doctor, now),
        )

    def get_available_slots_range(
        self,
        doctor_id: int,
        start_date: date,
        days: int,
        duration_minutes: int | None = None,
        now: datetime | None = None,
    ) -> dict[date, list[time]]:
        if days <= 0:
            raise InvalidInput('The number of days must be positive.')

        doctor = self.get_doctor(doctor_id)
        now = self.local_now(doctor, now)
        if start_date < now.date():
            raise InvalidInput('Availability cannot be requested for a past date.')

        calendar: dict[date, list[time]] = {}
        for offset in range(days):
            current_day = start_date + timedelta(days=offset)
            calendar[current_day] = self.get_available_slots(doctor_id, current_day, duration_minutes, now=now)
        return calendar

    def is_slot_available(
        self,
        doctor_id: int,
        on_date: date,
        start_time: time,
        duration_minutes: int | None = None,
    ) -> bool:
        doctor = self.get_doctor(doctor_id)
        duration = duration_minutes if duration_minutes is not None else doctor.slot_duration_minutes
        start, end = self._interval(on_date, start_time, duration)

        if not resolver.is_within_window(self._effective_window(doctor_id, on_date), start, end):
            return False
        return not resolver.find_conflicts(self.repository.get_active_appointments(doctor_id, on_date), start, end)

    @staticmethod
    def _interval(on_date: date, start_time: time, duration_minutes: int) -> tuple[datetime, datetime]:
        if duration_minutes is None or duration_minutes <= 0:
            raise InvalidInput('Appointment duration must be a positive number of minutes.')
        if start_time.tzinfo is not None:
            raise InvalidInput("Start time must be given in the doctor's local time, without a UTC offset.")
        if start_time.second or start_time.microsecond:
            raise InvalidInput('Start time must be a whole minute.')

        start = datetime.combine(on_date, start_time)
        end = start + timedelta(minutes=duration_minutes)
        if end.date() != on_date:
            raise InvalidInput('Appointments cannot run past midnight.')
        return start, end

    @staticmethod
    def _check_text(value: str | None, label: str, max_length: int) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > max_length:
            raise InvalidInput(f'{label} must be {max_length} characters or fewer.')
        return normalized

    def _check_bookable(self, doctor_id: int, on_date: date, start: datetime, end: datetime) -> None:
        window = self._effective_window(doctor_id, on_date)
        if not resolver.is_within_window(window, start, end):
            raise OutOfAvailability(
                f'Doctor {doctor_id} is not available from {start:%H:%M} to {end:%H:%M} on {on_date.isoformat()}.'
            )

    def book(
        self,
        patient_id: int,
        doctor_id: int,
        on_date: date,
        start_time: time,
        duration_minutes: int | None = None,
        appointment_type: AppointmentType = AppointmentType.IN_PERSON,
        notes: str | None = None,
        reason_for_visit: str | None = None,
        now: datetime | None = None,
    ) -> Appointment:
        doctor = self.get_doctor(doctor_id)
        duration = duration_minutes if duration_minutes is not None else doctor.slot_duration_minutes
        start, end = self._interval(on_date, start_time, duration)
        notes = self._check_text(notes, 'Notes', config.MAX_APPOINTMENT_NOTES_LENGTH)
        reason_for_visit = self._check_text(reason_for_visit, 'Reason for visit', config.MAX_APPOINTMENT_NOTES_LENGTH)

        now = self.local_now(doctor, now)
        if start <= now:
            raise InvalidInput('Appointments must be scheduled in the future.')

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            date=on_date,
            start_time=start.time(),
            end_time=end.time(),
            duration_minutes=duration,
            status=AppointmentStatus.SCHEDULED,
            appointment_type=AppointmentType(appointment_type),
            notes=notes,
            reason_for_visit=reason_for_visit,
        )

        with self.repository.atomic(doctor_id, on_date):
            self._check_bookable(doctor_id, on_date, start, end)
            self._insert(appointment, start, end)

        logger.info(
            'Booked appointment %s for patient %s with doctor %s on %s at %s',
            appointment.id, patient_id, doctor_id, on_date, start.time(),
        )
        return appointment

    def _insert(self, appointment: Appointment, start: datetime, end: datetime, exclude_id: int | None = None) -> None:
        def overlaps(existing: Appointment) -> bool:
            if exclude_id is not None and existing.id == exclude_id:
                return False
            booked = resolver.appointment_interval(existing)
            return resolver.intervals_overlap(start, end, booked.start, booked.end)

        try:
            self.repository.conditional_insert_appointment(appointment, overlaps)
        except SlotConflict as exc:
            logger.warning(
                'Could not book doctor %s on %s at %s: %s',
                appointment.doctor_id, appointment.date, appointment.start_time, exc,
            )
            raise

    def reschedule(
        self,
        appointment_id: int,
        new_date: date,
        new_start_time: time,
        now: datetime | None = None,
    ) -> Appointment:
        original = self.get_appointment(appointment_id)
        ensure_transition(original.status, AppointmentStatus.RESCHEDULED)

        doctor = self.get_doctor(original.doctor_id)
        start, end = self._interval(new_date, new_start_time, original.duration_minutes)
        now = self.local_now(doctor, now)
        if start <= now:
            raise InvalidInput('Appointments must be scheduled in the future.')

        source_status = AppointmentStatus(original.status)
        replacement = Appointment(
            patient_id=original.patient_id,
            doctor_id=original.doctor_id,
            date=new_date,
            start_time=start.time(),
            end_time=end.time(),
            duration_minutes=original.duration_minutes,
            status=AppointmentStatus.SCHEDULED,
            appointment_type=original.appointment_type,
            notes=original.notes,
            reason_for_visit=original.reason_for_visit,
            rescheduled_from=original.id,
        )

        with self.repository.atomic(original.doctor_id, new_date):
            self._check_bookable(original.doctor_id, new_date, start, end)
            self._insert(replacement, start, end, exclude_id=original.id)
            self.repository.update_appointment_status(
                appointment_id,
                source_status,
                AppointmentStatus.RESCHEDULED,
            )

        logger.info(
            'Rescheduled appointment %s to %s on %s at %s',
            appointment_id, replacement.id, new_date, start.time(),
        )
        return replacement

    def cancel(self, appointment_id: int, reason: str | None = None) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)
        reason = self._check_text(reason, 'Cancellation reason', config.MAX_CANCELLATION_REASON_LENGTH)

        with self.repository.atomic():
            cancelled = self.repository.update_appointment_status(
                appointment_id,
                AppointmentStatus(appointment.status),
                AppointmentStatus.CANCELLED,
                cancellation_reason=reason,
            )

        logger.info('Cancelled appointment %s', appointment_id)
        return cancelled

    def update_details(
        self,
        appointment_id: int,
        appointment_type: AppointmentType | None = None,
        reason_for_visit: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        """Edit the type, reason or notes of an open appointment.

        ``None`` leaves a field unchanged; a blank string clears it.
        """
        appointment = self.get_appointment(appointment_id)
        current_status = AppointmentStatus(appointment.status)
        if is_terminal(current_status):
            raise InvalidTransition(f'A {current_status.value} appointment can no longer be edited.')

        changes = {}
        if appointment_type is not None:
            changes['appointment_type'] = AppointmentType(appointment_type)
        if reason_for_visit is not None:
            changes['reason_for_visit'] = self._check_text(
                reason_for_visit, 'Reason for visit', config.MAX_APPOINTMENT_NOTES_LENGTH
            )
        if notes is not None:
            changes['notes'] = self._check_text(notes, 'Notes', config.MAX_APPOINTMENT_NOTES_LENGTH)
        if not changes:
            return appointment

        # Status stays put; the WHERE on it rejects edits racing a cancel or reschedule.
        with self.repository.atomic():
            updated = self.repository.update_appointment_status(
                appointment_id, current_status, current_status, **changes
            )

        logger.info('Updated %s on appointment %s', ', '.join(sorted(changes)), appointment_id)
        return updated

    def advance_status(self, appointment_id: int, target_status: AppointmentStatus) -> Appointment:
        target_status = AppointmentStatus(target_status)
        if target_status == AppointmentStatus.CANCELLED:
            return self.cancel(appointment_id)
        if target_status == AppointmentStatus.RESCHEDULED:
            raise InvalidTransition('Rescheduling needs a new date and time; use the reschedule operation.')

        appointment = self.get_appointment(appointment_id)
        current_status = AppointmentStatus(appointment.status)
        ensure_transition(current_status, target_status)

        with self.repository.atomic():
            updated = self.repository.update_appointment_status(appointment_id, current_status, target_status)

        logger.info('Appointment %s moved from %s to %s', appointment_id, current_status.value, target_status.value)
        return updated

    def list_appointments(
        self,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        if start_date is not None and end_date is not None and end_date < start_date:
            raise InvalidInput('end_date must not be before start_date.')
        return self.repository.list_appointments(
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_date=start_date,
            end_date=end_date,
            statuses=[AppointmentStatus(status)] if status is not None else None,
        )

    def list_upcoming_for_doctor(
        self,
        doctor_id: int,
        now: datetime | None = None,
        limit: int = config.UPCOMING_APPOINTMENTS_LIMIT,
    ) -> list[Appointment]:
        doctor = self.get_doctor(doctor_id)
        now = self.local_now(doctor, now)

        candidates = self.repository.list_appointments(
            doctor_id=doctor_id,
            start_date=now.date(),
            statuses=CALENDAR_HOLDING_STATUSES,
        )
        upcoming = [
            appointment
            for appointment in candidates
            if resolver.appointment_interval(appointment).end > now
        ]
        return upcoming[:limit]
