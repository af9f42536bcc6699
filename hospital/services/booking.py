"""Appointment booking: the atomic claim of one availability slot.

A booking locks the slot row, validates the payment against the doctor's
consultation fee, then writes the appointment, the slot flip and the payment
in a single transaction. Two patients racing for the same slot serialize on
the row lock; the loser finds the slot unavailable once the winner commits.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hospital.core import config
from hospital.core.errors import ConflictError, FatalError, InvalidRequestError, SlotUnavailableError
from hospital.database import TransactionExecutor, utc_now
from hospital.models.appointment import Appointment, AppointmentStatus
from hospital.models.availability import AvailableSlot
from hospital.models.doctor import Doctor
from hospital.models.payment import Payment, PaymentStatus
from hospital.services.payments import NormalizedPayment, ensure_amount_matches_fee, normalize_payment

logger = logging.getLogger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 64


@dataclass(frozen=True)
class BookedPayment:
    payment_id: int
    method: str
    amount: Decimal
    currency: str
    reference: str | None
    status: str


@dataclass(frozen=True)
class BookingResult:
    appointment_id: int
    doctor_id: int
    schedule_date: date
    start_time: time
    end_time: time
    status: str
    notes: str | None
    payment: BookedPayment
    replayed: bool = False


def lock_available_slot(session: Session, slot_id: int) -> tuple[AvailableSlot, Doctor | None] | None:
    # Only the slot row is locked; the doctor's fee is read, never written.
    return session.query(AvailableSlot, Doctor).outerjoin(
        Doctor, Doctor.id == AvailableSlot.doctor_id,
    ).filter(
        AvailableSlot.id == slot_id,
        AvailableSlot.is_available.is_(True),
    ).with_for_update(of=AvailableSlot).first()


def claim_slot(session: Session, slot_id: int) -> bool:
    claimed = session.query(AvailableSlot).filter(
        AvailableSlot.id == slot_id,
        AvailableSlot.is_available.is_(True),
    ).update({AvailableSlot.is_available: False}, synchronize_session=False)
    return claimed == 1


def record_payment(session: Session, appointment: Appointment, payment: NormalizedPayment) -> Payment:
    row = Payment(
        appointment_id=appointment.id,
        amount=payment.amount,
        currency=payment.currency,
        method=payment.method,
        status=PaymentStatus.PAID.value,
        transaction_reference=payment.reference,
        paid_at=utc_now(),
    )
    session.add(row)
    session.flush()
    return row


def _find_previous_booking(session: Session, patient_id: int, idempotency_key: str | None) -> Appointment | None:
    if not idempotency_key:
        return None
    return session.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.idempotency_key == idempotency_key,
    ).first()


def _replay(session: Session, appointment: Appointment, slot_id: int) -> BookingResult:
    if appointment.available_time_id != slot_id:
        raise ConflictError('This idempotency key was already used to book a different slot.')

    slot = session.get(AvailableSlot, appointment.available_time_id)
    payment = session.query(Payment).filter(Payment.appointment_id == appointment.id).first()
    if slot is None or payment is None:
        raise FatalError(f'Appointment {appointment.id} is missing its slot or payment.')

    return _build_result(appointment, slot, payment, replayed=True)


def _build_result(appointment: Appointment, slot: AvailableSlot, payment: Payment, replayed: bool = False) -> BookingResult:
    return BookingResult(
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        schedule_date=slot.schedule_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        status=appointment.status,
        notes=appointment.notes,
        payment=BookedPayment(
            payment_id=payment.id,
            method=payment.method,
            amount=Decimal(payment.amount),
            currency=payment.currency,
            reference=payment.transaction_reference,
            status=payment.status,
        ),
        replayed=replayed,
    )


def normalize_idempotency_key(value: str | None) -> str | None:
    if value is None:
        return None
    key = value.strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise InvalidRequestError(f'Idempotency key must be {MAX_IDEMPOTENCY_KEY_LENGTH} characters or fewer.')
    return key


def book_appointment(
    executor: TransactionExecutor,
    *,
    patient_id: int,
    slot_id: int,
    payment: Any,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> BookingResult:
    """Claim ``slot_id`` for ``patient_id`` and record its payment atomically.

    Raises ``SlotUnavailableError`` when the slot is missing or already taken,
    ``InvalidPaymentError`` / ``FeeMismatchError`` before any write when the
    payment does not hold up, and ``TransientError`` for infrastructure
    failures. Nothing is persisted unless every step succeeds.

    With an ``idempotency_key`` a repeated request returns the original
    booking instead of failing on the slot it already claimed.
    """
    idempotency_key = normalize_idempotency_key(idempotency_key)
    tolerance = Decimal(config.FEE_TOLERANCE)

    def work(session: Session) -> BookingResult:
        previous = _find_previous_booking(session, patient_id, idempotency_key)
        if previous is not None:
            return _replay(session, previous, slot_id)

        locked = lock_available_slot(session, slot_id)
        if locked is None:
            # The original request may have committed while this one waited.
            previous = _find_previous_booking(session, patient_id, idempotency_key)
            if previous is not None:
                return _replay(session, previous, slot_id)
            raise SlotUnavailableError()

        slot, doctor = locked
        if doctor is None:
            raise FatalError(f'Slot {slot.id} references missing doctor {slot.doctor_id}.')
        if doctor.consultation_fee is None:
            raise FatalError(f'Doctor {doctor.id} has no consultation fee on record.')

        normalized = normalize_payment(payment, config.DEFAULT_CURRENCY)
        ensure_amount_matches_fee(normalized, doctor.consultation_fee, tolerance)

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=slot.doctor_id,
            available_time_id=slot.id,
            status=AppointmentStatus.PENDING.value,
            notes=notes or None,
            idempotency_key=idempotency_key,
        )
        session.add(appointment)
        try:
            session.flush()
        except IntegrityError as exc:
            if idempotency_key is None:
                raise
            # A concurrent request with the same key committed first on another slot.
            raise ConflictError('This idempotency key was already used to book a different slot.') from exc

        if not claim_slot(session, slot.id):
            raise SlotUnavailableError()

        payment_row = record_payment(session, appointment, normalized)
        return _build_result(appointment, slot, payment_row)

    try:
        result = executor.run(work)
    except (SlotUnavailableError, ConflictError) as exc:
        logger.info('Booking of slot %s by patient %s rejected: %s', slot_id, patient_id, exc.message)
        raise

    if result.replayed:
        logger.info('Replayed booking %s for patient %s', result.appointment_id, patient_id)
    else:
        logger.info(
            'Patient %s booked slot %s as appointment %s',
            patient_id,
            slot_id,
            result.appointment_id,
        )
    return result
