from datetime import date, time

from hospital.models.appointment import Appointment
from hospital.models.availability import AvailableSlot
from hospital.models.doctor import Doctor
from hospital.seed import DOCTORS, seed_availability, seed_doctors


def test_seed_doctors_only_fills_empty_table(executor, records) -> None:
    with executor.transaction() as session:
        seed_doctors(session)
    with executor.transaction() as session:
        seed_doctors(session)

    assert records.count(Doctor) == len(DOCTORS)


def test_seed_availability_is_repeatable_and_keeps_booked_history(executor, records) -> None:
    doctor_id = records.doctor()
    expired_free = records.slot(doctor_id, date(2024, 5, 1), time(9, 0), time(10, 0))
    expired_booked = records.slot(doctor_id, date(2024, 5, 1), time(10, 0), time(11, 0))
    patient_id = records.patient()
    with executor.transaction() as session:
        session.add(Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            available_time_id=expired_booked,
            status='cancelled',
        ))

    with executor.transaction() as session:
        first = seed_availability(session, days=2, today=date(2024, 6, 1))
    with executor.transaction() as session:
        second = seed_availability(session, days=2, today=date(2024, 6, 1))
        remaining = {slot.id for slot in session.query(AvailableSlot).filter(AvailableSlot.schedule_date < date(2024, 6, 1))}

    assert first == 16
    assert second == 0
    assert remaining == {expired_booked}
    assert expired_free not in remaining
