"""Appointment model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from hospital.database import Base, utc_now


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class Appointment(Base):
    """Represents a patient's claim on one availability slot."""
    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint("PatientID", "IdempotencyKey", name="uq_appointments_patient_idempotency_key"),
    )

    id = Column("AppointmentID", Integer, primary_key=True)
    patient_id = Column("PatientID", Integer, ForeignKey("patients.PatientID", ondelete="CASCADE"), nullable=False)
    doctor_id = Column("DoctorID", Integer, ForeignKey("doctors.DoctorID", ondelete="CASCADE"), nullable=False)
    available_time_id = Column(
        "AvailableTimeID",
        Integer,
        ForeignKey("available_time.AvailableTimeID", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column("Status", String(16), nullable=False, default=AppointmentStatus.PENDING.value)
    notes = Column("Notes", Text)
    idempotency_key = Column("IdempotencyKey", String(64))
    created_at = Column("CreatedAt", DateTime(timezone=True), default=utc_now)
    updated_at = Column("UpdatedAt", DateTime(timezone=True), default=utc_now, onupdate=utc_now)
