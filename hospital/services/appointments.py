import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import and_, func
from sqlalchemy.orm import Query, Session

from hospital.core.errors import ConflictError, InvalidRequestError, NotFoundError
from hospital.database import TransactionExecutor
from hospital.models.appointment import ACTIVE_APPOINTMENT_STATUSES, Appointment, AppointmentStatus
from hospital.models.availability import AvailableSlot
from hospital.models.doctor import Doctor
from hospital.models.patient import Patient
from hospital.models.payment import Payment
from hospital.services.availability import reopen_availability_slot

logger = logging.getLogger(__name__)

ALLOWED_STATUS_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


@dataclass(frozen=True)
class PaymentSummary:
    payment_id: int
    amount: Decimal
    currency: str
    method: str
    status: str
    reference: str | None
    paid_at: datetime | None


@dataclass(frozen=True)
class AppointmentSummary:
    appointment_id: int
    status: str
    notes: str | None
    doctor_id: int
    doctor_name: str | None
    patient_id: int
    patient_name: str | None
    available_time_id: int
    schedule_date: date
    start_time: time
    end_time: time
    payment: PaymentSummary | None


@dataclass(frozen=True)
class PatientHistory:
    patient_id: int
    full_name: str
    email: str | None
    appointments: list[AppointmentSummary]


@dataclass(frozen=True)
class ManagedSlot:
    id: int
    doctor_id: int
    schedule_date: date
    day_of_week: str | None
    start_time: time
    end_time: time
    is_available: bool
    appointment_id: int | None
    appointment_status: str | None


@dataclass(frozen=True)
class DoctorListing:
    id: int
    full_name: str
    specialization: str | None
    consultation_fee: Decimal | None
    current_patient_number: int
    max_patient_number: int
    next_schedule_date: date | None
    next_start_time: time | None
    next_end_time: time | None
    available_slot_count: int


def summarize_payment(payment: Payment | None) -> PaymentSummary | None:
    if payment is None:
        return None
    return PaymentSummary(
        payment_id=payment.id,
        amount=payment.amount,
        currency=payment.currency,
        method=payment.method,
        status=payment.status,
        reference=payment.transaction_reference,
        paid_at=payment.paid_at,
    )


def _appointment_rows(session: Session) -> Query:
    return session.query(Appointment, AvailableSlot, Doctor, Patient, Payment).join(
        AvailableSlot, AvailableSlot.id == Appointment.available_time_id,
    ).outerjoin(
        Doctor, Doctor.id == Appointment.doctor_id,
    ).outerjoin(
        Patient, Patient.id == Appointment.patient_id,
    ).outerjoin(
        Payment, Payment.appointment_id == Appointment.id,
    )


def _summarize(rows) -> list[AppointmentSummary]:
    return [
        AppointmentSummary(
            appointment_id=appointment.id,
            status=appointment.status,
            notes=appointment.notes,
            doctor_id=appointment.doctor_id,
            doctor_name=doctor.full_name if doctor else None,
            patient_id=appointment.patient_id,
            patient_name=patient.full_name if patient else None,
            available_time_id=slot.id,
            schedule_date=slot.schedule_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            payment=summarize_payment(payment),
        )
        for appointment, slot, doctor, patient, payment in rows
    ]


def has_doctor_seen_patient(session: Session, doctor_id: int, patient_id: int) -> bool:
    return session.query(Appointment.id).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.patient_id == patient_id,
    ).first() is not None


def list_patient_history_for_doctor(session: Session, doctor_id: int, patient_id: int) -> PatientHistory:
    """A patient's full appointment record, visible only to doctors who have booked them."""
    patient = session.get(Patient, patient_id)
    if patient is None:
        raise NotFoundError('Patient not found.')
    if not has_doctor_seen_patient(session, doctor_id, patient_id):
        raise NotFoundError('No appointments found for this patient.')

    rows = _appointment_rows(session).filter(
        Appointment.patient_id == patient_id,
    ).order_by(AvailableSlot.schedule_date.desc(), AvailableSlot.start_time.desc()).all()

    return PatientHistory(
        patient_id=patient.id,
        full_name=patient.full_name,
        email=patient.email,
        appointments=_summarize(rows),
    )


def get_available_times(session: Session, doctor_id: int, today: date | None = None) -> list[AvailableSlot]:
    today = today or date.today()
    return session.query(AvailableSlot).filter(
        AvailableSlot.doctor_id == doctor_id,
        AvailableSlot.is_available.is_(True),
        AvailableSlot.schedule_date >= today,
    ).order_by(AvailableSlot.schedule_date.asc(), AvailableSlot.start_time.asc()).all()


def list_availability_for_doctor_management(
    session: Session,
    doctor_id: int,
    today: date | None = None,
) -> list[ManagedSlot]:
    today = today or date.today()
    rows = session.query(AvailableSlot, Appointment).outerjoin(
        Appointment,
        and_(
            Appointment.available_time_id == AvailableSlot.id,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        ),
    ).filter(
        AvailableSlot.doctor_id == doctor_id,
        AvailableSlot.schedule_date >= today,
    ).order_by(AvailableSlot.schedule_date.asc(), AvailableSlot.start_time.asc()).all()

    return [
        ManagedSlot(
            id=slot.id,
            doctor_id=slot.doctor_id,
            schedule_date=slot.schedule_date,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_available=slot.is_available,
            appointment_id=appointment.id if appointment else None,
            appointment_status=appointment.status if appointment else None,
        )
        for slot, appointment in rows
    ]


def list_upcoming_appointments_for_patient(
    session: Session,
    patient_id: int,
    today: date | None = None,
) -> list[AppointmentSummary]:
    today = today or date.today()
    rows = _appointment_rows(session).filter(
        Appointment.patient_id == patient_id,
        AvailableSlot.schedule_date >= today,
    ).order_by(AvailableSlot.schedule_date.asc(), AvailableSlot.start_time.asc()).all()
    return _summarize(rows)


def list_appointment_history_for_patient(
    session: Session,
    patient_id: int,
    today: date | None = None,
) -> list[AppointmentSummary]:
    today = today or date.today()
    rows = _appointment_rows(session).filter(
        Appointment.patient_id == patient_id,
        AvailableSlot.schedule_date < today,
    ).order_by(AvailableSlot.schedule_date.desc(), AvailableSlot.start_time.desc()).all()
    return _summarize(rows)


def list_upcoming_appointments_for_doctor(
    session: Session,
    doctor_id: int,
    today: date | None = None,
) -> list[AppointmentSummary]:
    today = today or date.today()
    rows = _appointment_rows(session).filter(
        Appointment.doctor_id == doctor_id,
        AvailableSlot.schedule_date >= today,
    ).order_by(AvailableSlot.schedule_date.asc(), AvailableSlot.start_time.asc()).all()
    return _summarize(rows)


def list_doctors(session: Session, today: date | None = None) -> list[DoctorListing]:
    """Doctor directory with each doctor's open slot count and next open slot."""
    today = today or date.today()
    open_slot_filter = (
        AvailableSlot.is_available.is_(True),
        AvailableSlot.schedule_date >= today,
    )

    slot_counts = session.query(
        AvailableSlot.doctor_id.label('doctor_id'),
        func.count(AvailableSlot.id).label('slot_count'),
    ).filter(*open_slot_filter).group_by(AvailableSlot.doctor_id).subquery()

    ranked_slots = session.query(
        AvailableSlot.doctor_id.label('doctor_id'),
        AvailableSlot.schedule_date.label('schedule_date'),
        AvailableSlot.start_time.label('start_time'),
        AvailableSlot.end_time.label('end_time'),
        func.row_number().over(
            partition_by=AvailableSlot.doctor_id,
            order_by=(AvailableSlot.schedule_date.asc(), AvailableSlot.start_time.asc()),
        ).label('position'),
    ).filter(*open_slot_filter).subquery()

    rows = session.query(
        Doctor,
        slot_counts.c.slot_count,
        ranked_slots.c.schedule_date,
        ranked_slots.c.start_time,
        ranked_slots.c.end_time,
    ).outerjoin(
        slot_counts, slot_counts.c.doctor_id == Doctor.id,
    ).outerjoin(
        ranked_slots, and_(ranked_slots.c.doctor_id == Doctor.id, ranked_slots.c.position == 1),
    ).order_by(Doctor.full_name.asc(), Doctor.id.asc()).all()

    return [
        DoctorListing(
            id=doctor.id,
            full_name=doctor.full_name,
            specialization=doctor.specialization,
            consultation_fee=doctor.consultation_fee,
            current_patient_number=doctor.current_patient_number or 0,
            max_patient_number=doctor.max_patient_number or 0,
            next_schedule_date=next_date,
            next_start_time=next_start,
            next_end_time=next_end,
            available_slot_count=slot_count or 0,
        )
        for doctor, slot_count, next_date, next_start, next_end in rows
    ]


def get_appointment_by_id(session: Session, appointment_id: int) -> Appointment | None:
    return session.get(Appointment, appointment_id)


def count_appointments_for_slot(session: Session, slot_id: int) -> int:
    return session.query(func.count(Appointment.id)).filter(
        Appointment.available_time_id == slot_id,
    ).scalar()


def parse_status(value: str) -> AppointmentStatus:
    try:
        return AppointmentStatus((value or '').strip().lower())
    except ValueError as exc:
        raise InvalidRequestError('Invalid appointment status.') from exc


def update_appointment_status(
    executor: TransactionExecutor,
    *,
    appointment_id: int,
    doctor_id: int,
    status: str,
    notes: str | None = None,
) -> Appointment:
    """Move an appointment along its lifecycle on behalf of its doctor.

    Cancelling reopens the claimed slot in the same transaction so the slot
    becomes bookable again at the moment the cancellation commits.
    """
    target = parse_status(status)
    if target is AppointmentStatus.PENDING:
        raise InvalidRequestError('Invalid appointment status.')

    def work(session: Session) -> Appointment:
        appointment = session.query(Appointment).filter(
            Appointment.id == appointment_id,
        ).with_for_update().first()
        if appointment is None or appointment.doctor_id != doctor_id:
            raise NotFoundError('Appointment not found.')

        current = AppointmentStatus(appointment.status)
        if target not in ALLOWED_STATUS_TRANSITIONS[current]:
            raise ConflictError(f'Cannot change an appointment from {current.value} to {target.value}.')

        appointment.status = target.value
        if notes:
            appointment.notes = notes.strip()

        if target is AppointmentStatus.CANCELLED:
            reopen_availability_slot(session, appointment.available_time_id)

        session.flush()
        logger.info(
            'Appointment %s moved from %s to %s by doctor %s',
            appointment.id,
            current.value,
            target.value,
            doctor_id,
        )
        return appointment

    return executor.run(work)
