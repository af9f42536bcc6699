"""Patient model definitions."""

from sqlalchemy import Column, Integer, String
from hospital.database import Base


class Patient(Base):
    """Represents a registered patient."""
    __tablename__ = "patients"

    id = Column("PatientID", Integer, primary_key=True)
    full_name = Column("FullName", String(255), nullable=False)
    email = Column("Email", String(255), unique=True, index=True)
