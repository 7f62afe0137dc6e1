"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint

from clinic_scheduler.database import Base


class WeeklyAvailability(Base):
    """Recurring working hours of a doctor for one day of the week."""
    __tablename__ = "weekly_availability"
    __table_args__ = (UniqueConstraint("doctor_id", "weekday", name="uq_weekly_availability_doctor_weekday"),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0=Monday ... 6=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    notes = Column(String(200))


class DateOverride(Base):
    """Replaces the weekly template of a doctor for one calendar date."""
    __tablename__ = "date_overrides"
    __table_args__ = (UniqueConstraint("doctor_id", "date", name="uq_date_overrides_doctor_date"),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time)
    end_time = Column(Time)
    is_available = Column(Boolean, nullable=False, default=False)
    reason = Column(String(200))
