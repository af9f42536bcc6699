"""Doctor model definitions."""

from sqlalchemy import Column, Integer, Numeric, String
from hospital.database import Base


class Doctor(Base):
    """Represents a doctor whose time can be booked."""
    __tablename__ = "doctors"

    id = Column("DoctorID", Integer, primary_key=True)
    full_name = Column("FullName", String(255), nullable=False)
    email = Column("Email", String(255), unique=True)
    specialization = Column("Specialization", String(255))
    consultation_fee = Column("ConsultationFee", Numeric(10, 2))
    current_patient_number = Column("CurrentPatientNumber", Integer, nullable=False, default=0)
    max_patient_number = Column("MaxPatientNumber", Integer, nullable=False, default=0)
