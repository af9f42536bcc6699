"""Seed doctors and upcoming availability slots.

Usage:
    python -m hospital.seed [days]
"""
import logging
import sys
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from hospital.database import Base, engine, ensure_booking_schema, get_executor
from hospital.models import patient, payment  # noqa: F401
from hospital.models.appointment import Appointment
from hospital.models.availability import AvailableSlot
from hospital.models.doctor import Doctor
from hospital.services.availability import create_availability_slots, generate_daily_slots

logger = logging.getLogger(__name__)

DEFAULT_AVAILABILITY_DAYS = 7

DOCTORS = [
    ('Dr. Ayesha Rahman', 'ayesharahman.cardiology@gmail.com', 'Cardiology', '2200', 25),
    ('Dr. Kamal Hossain', 'kamalhossain.cardiology@gmail.com', 'Cardiology', '2600', 20),
    ('Dr. Nabila Karim', 'nabilakarim.dermatology@gmail.com', 'Dermatology', '1800', 18),
    ('Dr. Rezaul Islam', 'rezaulislam.neurology@gmail.com', 'Neurology', '3000', 24),
    ('Dr. Sharmeen Sultana', 'sharmeensultana.pediatrics@gmail.com', 'Pediatrics', '1500', 28),
]


def seed_doctors(session: Session) -> list[Doctor]:
    existing = session.query(Doctor).all()
    if existing:
        return existing

    doctors = [
        Doctor(
            full_name=full_name,
            email=email,
            specialization=specialization,
            consultation_fee=Decimal(fee),
            max_patient_number=max_patients,
            current_patient_number=0,
        )
        for full_name, email, specialization, fee, max_patients in DOCTORS
    ]
    session.add_all(doctors)
    session.flush()
    logger.info('Seeded %s doctor(s).', len(doctors))
    return doctors


def seed_availability(session: Session, days: int, today: date | None = None) -> int:
    today = today or date.today()
    removed = session.query(AvailableSlot).filter(
        AvailableSlot.schedule_date < today,
        AvailableSlot.is_available.is_(True),
        AvailableSlot.id.notin_(select(Appointment.available_time_id)),
    ).delete(synchronize_session=False)
    logger.info('Deleted %s expired free slot(s).', removed)

    total = 0
    slots = generate_daily_slots(today, days)
    for doctor in session.query(Doctor).order_by(Doctor.id).all():
        existing = {
            (schedule_date, start_time)
            for schedule_date, start_time in session.query(AvailableSlot.schedule_date, AvailableSlot.start_time).filter(
                AvailableSlot.doctor_id == doctor.id,
                AvailableSlot.schedule_date >= today,
            )
        }
        missing = [slot for slot in slots if (slot.date, slot.start_time) not in existing]
        if missing:
            total += len(create_availability_slots(session, doctor.id, missing))
    return total


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    days = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_AVAILABILITY_DAYS

    Base.metadata.create_all(bind=engine)
    ensure_booking_schema(engine)

    def work(session: Session) -> int:
        seed_doctors(session)
        return seed_availability(session, days)

    inserted = get_executor().run(work)
    print(f'Inserted {inserted} available time slots.')


if __name__ == '__main__':
    main()
