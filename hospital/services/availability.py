import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from hospital.core.errors import ConflictError, NotFoundError
from hospital.database import TransactionExecutor
from hospital.models.appointment import ACTIVE_APPOINTMENT_STATUSES, Appointment
from hospital.models.availability import AvailableSlot
from hospital.models.doctor import Doctor

logger = logging.getLogger(__name__)

DEFAULT_DAY_START_HOUR = 9
DEFAULT_DAY_END_HOUR = 17
DEFAULT_SLOT_MINUTES = 60


@dataclass(frozen=True)
class SlotInput:
    date: date
    start_time: time
    end_time: time


def day_of_week(slot_date: date) -> str:
    return slot_date.strftime('%A')


def create_availability_slots(session: Session, doctor_id: int, slots: Iterable[SlotInput]) -> list[AvailableSlot]:
    # Duplicate detection is left to the caller.
    if session.get(Doctor, doctor_id) is None:
        raise NotFoundError('Doctor not found.')

    created = [
        AvailableSlot(
            doctor_id=doctor_id,
            schedule_date=slot.date,
            day_of_week=day_of_week(slot.date),
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_available=True,
        )
        for slot in slots
    ]
    session.add_all(created)
    session.flush()

    logger.info('Created %s availability slot(s) for doctor %s', len(created), doctor_id)
    return created


def update_availability_slot_status(session: Session, slot_id: int, doctor_id: int, is_available: bool) -> int:
    """Flip a slot owned by ``doctor_id``; 0 means not found or not owned."""
    return session.query(AvailableSlot).filter(
        AvailableSlot.id == slot_id,
        AvailableSlot.doctor_id == doctor_id,
    ).update({AvailableSlot.is_available: is_available}, synchronize_session=False)


def has_active_appointment_for_slot(session: Session, slot_id: int) -> bool:
    return session.query(Appointment.id).filter(
        Appointment.available_time_id == slot_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
    ).first() is not None


def reopen_availability_slot(session: Session, slot_id: int) -> int:
    return session.query(AvailableSlot).filter(
        AvailableSlot.id == slot_id,
    ).update({AvailableSlot.is_available: True}, synchronize_session=False)


def set_slot_availability(
    executor: TransactionExecutor,
    *,
    doctor_id: int,
    slot_id: int,
    is_available: bool,
) -> None:
    """Doctor-side toggle of one slot.

    The slot row is locked first so a concurrent booking cannot slip in between
    the appointment check and the update. A slot held by a pending or confirmed
    appointment cannot be toggled in either direction: closing it would orphan
    the booking, reopening it would let a second patient claim it.
    """

    def work(session: Session) -> None:
        slot = session.query(AvailableSlot).filter(
            AvailableSlot.id == slot_id,
            AvailableSlot.doctor_id == doctor_id,
        ).with_for_update().first()
        if slot is None:
            raise NotFoundError('Availability slot not found.')

        if has_active_appointment_for_slot(session, slot_id):
            if is_available:
                raise ConflictError('Cannot reopen this slot because an appointment is scheduled.')
            raise ConflictError('Cannot mark this slot as unavailable because an appointment is scheduled.')

        if not update_availability_slot_status(session, slot_id, doctor_id, is_available):
            raise NotFoundError('Availability slot not found.')

        logger.info('Doctor %s set slot %s available=%s', doctor_id, slot_id, is_available)

    executor.run(work)


def add_availability(executor: TransactionExecutor, doctor_id: int, slots: list[SlotInput]) -> list[AvailableSlot]:
    return executor.run(lambda session: create_availability_slots(session, doctor_id, slots))


def generate_daily_slots(
    start_date: date,
    days: int,
    start_hour: int = DEFAULT_DAY_START_HOUR,
    end_hour: int = DEFAULT_DAY_END_HOUR,
    slot_minutes: int = DEFAULT_SLOT_MINUTES,
) -> list[SlotInput]:
    slots: list[SlotInput] = []
    for offset in range(days):
        current_day = start_date + timedelta(days=offset)
        minute = start_hour * 60
        while minute + slot_minutes <= end_hour * 60:
            end_minute = minute + slot_minutes
            slots.append(
                SlotInput(
                    date=current_day,
                    start_time=time(minute // 60, minute % 60),
                    end_time=time(end_minute // 60 % 24, end_minute % 60),
                )
            )
            minute = end_minute
    return slots
