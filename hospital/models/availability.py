"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from hospital.database import Base


class AvailableSlot(Base):
    """Represents a bookable (doctor, date, start, end) slot."""
    __tablename__ = "available_time"

    id = Column("AvailableTimeID", Integer, primary_key=True)
    doctor_id = Column("DoctorID", Integer, ForeignKey("doctors.DoctorID", ondelete="CASCADE"), nullable=False)
    schedule_date = Column("ScheduleDate", Date, nullable=False)
    day_of_week = Column("DayOfWeek", String(16))
    start_time = Column("StartTime", Time, nullable=False)
    end_time = Column("EndTime", Time, nullable=False)
    is_available = Column("IsAvailable", Boolean, nullable=False, default=True)
