from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_serializer, field_validator
from pydantic.alias_generators import to_camel

MAX_APPOINTMENT_NOTES_LENGTH = 600


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class PaymentRequest(BaseModel):
    # Validated by the booking engine, not by the schema.
    method: Any = None
    amount: Any = None
    currency: Any = None
    reference: Any = None


class BookAppointmentRequest(BaseModel):
    available_time_id: int = Field(alias='availableTimeID')
    notes: str | None = None
    payment: PaymentRequest | None = None

    class Config:
        populate_by_name = True

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class SlotRequest(CamelModel):
    date: date
    start_time: time
    end_time: time

    @field_validator('end_time')
    @classmethod
    def validate_end_time(cls, value: time, info: ValidationInfo) -> time:
        start_time = info.data.get('start_time')
        if start_time is not None and value <= start_time:
            raise ValueError('End time must be after start time.')
        return value


class CreateAvailabilityRequest(CamelModel):
    slots: list[SlotRequest]

    @field_validator('slots')
    @classmethod
    def validate_slots(cls, value: list[SlotRequest]) -> list[SlotRequest]:
        if not value:
            raise ValueError('At least one availability slot is required.')
        return value


class UpdateSlotStatusRequest(CamelModel):
    is_available: bool

    @field_validator('is_available', mode='before')
    @classmethod
    def validate_is_available(cls, value: Any) -> bool:
        if not isinstance(value, bool):
            raise ValueError('The availability status must be provided as a boolean value.')
        return value


class UpdateAppointmentStatusRequest(CamelModel):
    status: str
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class TimeRangeModel(CamelModel):
    start_time: time
    end_time: time

    @field_serializer('start_time', 'end_time')
    def serialize_time(self, value: time) -> str:
        return value.strftime('%H:%M')


class AvailableSlotResponse(TimeRangeModel):
    id: int = Field(alias='availableTimeID')
    doctor_id: int
    schedule_date: date
    day_of_week: str | None = None


class ManagedSlotResponse(TimeRangeModel):
    id: int = Field(alias='availableTimeID')
    doctor_id: int
    schedule_date: date
    day_of_week: str | None = None
    is_available: bool
    appointment_id: int | None = None
    appointment_status: str | None = None


class PaymentSummaryResponse(CamelModel):
    payment_id: int
    amount: Decimal
    currency: str
    method: str
    status: str
    reference: str | None = None
    paid_at: datetime | None = None


class AppointmentSummaryResponse(TimeRangeModel):
    appointment_id: int
    status: str
    notes: str | None = None
    doctor_id: int
    doctor_name: str | None = None
    patient_id: int
    patient_name: str | None = None
    available_time_id: int = Field(alias='availableTimeID')
    schedule_date: date
    payment: PaymentSummaryResponse | None = None


class BookedPaymentResponse(CamelModel):
    payment_id: int
    method: str
    amount: Decimal
    currency: str
    reference: str | None = None
    status: str


class BookedAppointmentResponse(TimeRangeModel):
    appointment_id: int
    doctor_id: int
    schedule_date: date
    status: str
    notes: str | None = None
    payment: BookedPaymentResponse


class BookingResponse(CamelModel):
    message: str
    appointment: BookedAppointmentResponse


class AppointmentStatusResponse(CamelModel):
    message: str
    appointment_id: int
    status: str


class DoctorListingResponse(CamelModel):
    id: int = Field(alias='doctorID')
    full_name: str
    specialization: str | None = None
    consultation_fee: Decimal | None = None
    current_patient_number: int
    max_patient_number: int
    next_schedule_date: date | None = None
    next_start_time: time | None = None
    next_end_time: time | None = None
    available_slot_count: int

    @field_serializer('next_start_time', 'next_end_time')
    def serialize_time(self, value: time | None) -> str | None:
        return value.strftime('%H:%M') if value else None


class MessageResponse(BaseModel):
    message: str


class PatientResponse(CamelModel):
    id: int = Field(alias='patientID')
    full_name: str
    email: str | None = None


class PatientHistoryResponse(CamelModel):
    patient: PatientResponse
    appointments: list[AppointmentSummaryResponse]
