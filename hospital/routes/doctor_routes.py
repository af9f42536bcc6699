from fastapi import APIRouter, Depends, HTTPException, Query, status

from hospital.auth.dependencies import CurrentUser, get_current_user
from hospital.core.errors import NotFoundError
from hospital.database import TransactionExecutor, get_executor
from hospital.models.doctor import Doctor
from hospital.routes.schemas import (
    AppointmentStatusResponse,
    AppointmentSummaryResponse,
    AvailableSlotResponse,
    CreateAvailabilityRequest,
    DoctorListingResponse,
    ManagedSlotResponse,
    MessageResponse,
    PatientHistoryResponse,
    PatientResponse,
    UpdateAppointmentStatusRequest,
    UpdateSlotStatusRequest,
)
from hospital.services import appointments, availability

router = APIRouter(tags=['doctors'])


def require_doctor(user: CurrentUser, doctor_id: int | None = None) -> None:
    if user.role != 'doctor' or (doctor_id is not None and user.id != doctor_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied.')


@router.get('/', response_model=list[DoctorListingResponse])
def list_doctors(executor: TransactionExecutor = Depends(get_executor)):
    with executor.transaction() as session:
        listings = appointments.list_doctors(session)
    return [DoctorListingResponse.model_validate(listing) for listing in listings]


@router.get('/{doctor_id}/availability', response_model=list[AvailableSlotResponse])
def get_doctor_availability(
    doctor_id: int,
    limit: int | None = Query(default=None),
    executor: TransactionExecutor = Depends(get_executor),
):
    with executor.transaction() as session:
        if session.get(Doctor, doctor_id) is None:
            raise NotFoundError('Doctor not found.')
        slots = [AvailableSlotResponse.model_validate(slot) for slot in appointments.get_available_times(session, doctor_id)]

    if limit is None or limit <= 0:
        return slots
    return slots[:limit]


@router.get('/{doctor_id}/availability/manage', response_model=list[ManagedSlotResponse])
def get_doctor_availability_for_management(
    doctor_id: int,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user, doctor_id)

    with executor.transaction() as session:
        managed = appointments.list_availability_for_doctor_management(session, doctor_id)
    return [ManagedSlotResponse.model_validate(slot) for slot in managed]


@router.post(
    '/{doctor_id}/availability',
    response_model=list[AvailableSlotResponse],
    status_code=status.HTTP_201_CREATED,
)
def add_availability(
    doctor_id: int,
    data: CreateAvailabilityRequest,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user, doctor_id)

    slots = [
        availability.SlotInput(date=slot.date, start_time=slot.start_time, end_time=slot.end_time)
        for slot in data.slots
    ]
    created = availability.add_availability(executor, doctor_id, slots)
    return [AvailableSlotResponse.model_validate(slot) for slot in created]


@router.patch('/{doctor_id}/availability/{slot_id}', response_model=MessageResponse)
def update_doctor_availability_status(
    doctor_id: int,
    slot_id: int,
    data: UpdateSlotStatusRequest,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user, doctor_id)

    availability.set_slot_availability(
        executor,
        doctor_id=doctor_id,
        slot_id=slot_id,
        is_available=data.is_available,
    )

    return MessageResponse(
        message='Availability slot restored.' if data.is_available else 'Availability slot marked as unavailable.',
    )


@router.get('/{doctor_id}/appointments', response_model=list[AppointmentSummaryResponse])
def get_doctor_appointments(
    doctor_id: int,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user, doctor_id)

    with executor.transaction() as session:
        summaries = appointments.list_upcoming_appointments_for_doctor(session, doctor_id)
    return [AppointmentSummaryResponse.model_validate(summary) for summary in summaries]


@router.patch('/appointments/{appointment_id}/status', response_model=AppointmentStatusResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user)

    appointment = appointments.update_appointment_status(
        executor,
        appointment_id=appointment_id,
        doctor_id=user.id,
        status=data.status,
        notes=data.notes,
    )

    return AppointmentStatusResponse(
        message='Appointment status updated.',
        appointment_id=appointment.id,
        status=appointment.status,
    )


@router.get('/{doctor_id}/patients/{patient_id}/history', response_model=PatientHistoryResponse)
def get_patient_history_for_doctor(
    doctor_id: int,
    patient_id: int,
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_doctor(user, doctor_id)

    with executor.transaction() as session:
        history = appointments.list_patient_history_for_doctor(session, doctor_id, patient_id)

    return PatientHistoryResponse(
        patient=PatientResponse(id=history.patient_id, full_name=history.full_name, email=history.email),
        appointments=[AppointmentSummaryResponse.model_validate(summary) for summary in history.appointments],
    )
