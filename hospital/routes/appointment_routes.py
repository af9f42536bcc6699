from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status

from hospital.auth.dependencies import CurrentUser, get_current_user
from hospital.database import TransactionExecutor, get_executor
from hospital.routes.schemas import (
    AppointmentSummaryResponse,
    AvailableSlotResponse,
    BookAppointmentRequest,
    BookedAppointmentResponse,
    BookingResponse,
)
from hospital.services import appointments, booking

router = APIRouter(tags=['appointments'])


def require_patient(user: CurrentUser, detail: str) -> None:
    if user.role != 'patient':
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.get('/available-times', response_model=list[AvailableSlotResponse])
def get_available_times(
    doctor_id: int = Query(..., alias='doctorId'),
    executor: TransactionExecutor = Depends(get_executor),
):
    with executor.transaction() as session:
        slots = appointments.get_available_times(session, doctor_id)
        return [AvailableSlotResponse.model_validate(slot) for slot in slots]


@router.post('/book', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    response: Response,
    idempotency_key: str | None = Header(default=None, alias='Idempotency-Key'),
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_patient(user, 'Only patients can book appointments.')

    result = booking.book_appointment(
        executor,
        patient_id=user.id,
        slot_id=data.available_time_id,
        payment=data.payment.model_dump() if data.payment else None,
        notes=data.notes,
        idempotency_key=idempotency_key,
    )

    if result.replayed:
        response.status_code = status.HTTP_200_OK

    return BookingResponse(
        message='Appointment booked successfully',
        appointment=BookedAppointmentResponse.model_validate(result),
    )


@router.get('/upcoming', response_model=list[AppointmentSummaryResponse])
def list_my_upcoming_appointments(
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_patient(user, 'Only patients can view their own appointments.')

    with executor.transaction() as session:
        summaries = appointments.list_upcoming_appointments_for_patient(session, user.id)
    return [AppointmentSummaryResponse.model_validate(summary) for summary in summaries]


@router.get('/history', response_model=list[AppointmentSummaryResponse])
def list_my_appointment_history(
    user: CurrentUser = Depends(get_current_user),
    executor: TransactionExecutor = Depends(get_executor),
):
    require_patient(user, 'Only patients can view their own appointments.')

    with executor.transaction() as session:
        summaries = appointments.list_appointment_history_for_patient(session, user.id)
    return [AppointmentSummaryResponse.model_validate(summary) for summary in summaries]
