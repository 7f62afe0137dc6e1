"""Schedule lock model definitions."""

from sqlalchemy import Column, Date, Integer

from clinic_scheduler.database import Base


class ScheduleLock(Base):
    """One row per (doctor, date); writers take it before touching that day's bookings."""
    __tablename__ = "schedule_locks"

    doctor_id = Column(Integer, primary_key=True, autoincrement=False)
    date = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
