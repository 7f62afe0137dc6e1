"""Appointment model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Time, func

from clinic_scheduler.database import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class AppointmentType(str, enum.Enum):
    IN_PERSON = "in_person"
    REMOTE = "remote"


class Appointment(Base):
    """Represents a booked appointment between one patient and one doctor."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        SAEnum(
            AppointmentStatus,
            name="appointmentstatus",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    )
    appointment_type = Column(
        SAEnum(
            AppointmentType,
            name="appointmenttype",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AppointmentType.IN_PERSON,
    )
    reason_for_visit = Column(String(500))
    notes = Column(String(500))
    cancellation_reason = Column(String(200))
    rescheduled_from = Column(Integer, ForeignKey("appointments.id"))
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Appointment {self.id} doctor={self.doctor_id} {self.date} {self.start_time} {self.status}>"
