"""Doctor model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func

from clinic_scheduler.core import config
from clinic_scheduler.database import Base


class Doctor(Base):
    """Scheduling profile of a doctor; the full profile lives elsewhere."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False)
    specialization = Column(String(100))
    slot_duration_minutes = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_DURATION_MINUTES)
    timezone = Column(String(64), nullable=False, default=config.DEFAULT_TIMEZONE)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
