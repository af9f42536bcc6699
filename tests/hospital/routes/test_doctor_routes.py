from datetime import time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from hospital.auth.dependencies import CurrentUser
from hospital.models.availability import AvailableSlot
from hospital.routes.doctor_routes import require_doctor
from hospital.routes.schemas import CreateAvailabilityRequest, UpdateSlotStatusRequest


def test_require_doctor_checks_role_and_ownership() -> None:
    require_doctor(CurrentUser(id=3, role='doctor'), 3)
    require_doctor(CurrentUser(id=3, role='doctor'))

    with pytest.raises(HTTPException) as exception_info:
        require_doctor(CurrentUser(id=3, role='doctor'), 4)
    assert exception_info.value.status_code == 403

    with pytest.raises(HTTPException):
        require_doctor(CurrentUser(id=3, role='patient'), 3)


def test_create_availability_request_rejects_inverted_range(next_week) -> None:
    with pytest.raises(ValidationError):
        CreateAvailabilityRequest.model_validate(
            {'slots': [{'date': next_week.isoformat(), 'startTime': '10:00', 'endTime': '09:00'}]},
        )

    with pytest.raises(ValidationError):
        CreateAvailabilityRequest.model_validate({'slots': []})


def test_update_slot_status_request_requires_boolean() -> None:
    assert UpdateSlotStatusRequest.model_validate({'isAvailable': False}).is_available is False

    with pytest.raises(ValidationError):
        UpdateSlotStatusRequest.model_validate({'isAvailable': 'false'})


def test_doctor_adds_availability(api, records, next_week) -> None:
    doctor_id = records.doctor()
    api.login(doctor_id, 'doctor')

    response = api.post(
        f'/api/doctors/{doctor_id}/availability',
        json={
            'slots': [
                {'date': next_week.isoformat(), 'startTime': '09:00', 'endTime': '09:30'},
                {'date': next_week.isoformat(), 'startTime': '09:30', 'endTime': '10:00'},
            ],
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert [slot['startTime'] for slot in body] == ['09:00', '09:30']
    assert body[0]['dayOfWeek'] == next_week.strftime('%A')
    assert records.count(AvailableSlot) == 2


def test_doctor_cannot_manage_another_doctors_availability(api, records, next_week) -> None:
    owner = records.doctor('Dr. Owner')
    intruder = records.doctor('Dr. Intruder')
    slot_id = records.slot(owner, next_week)
    api.login(intruder, 'doctor')

    response = api.patch(f'/api/doctors/{owner}/availability/{slot_id}', json={'isAvailable': False})

    assert response.status_code == 403
    assert response.json() == {'error': 'Access denied.'}
    assert records.slot_is_available(slot_id) is True


def test_doctor_toggles_free_slot(api, records, next_week) -> None:
    doctor_id = records.doctor()
    slot_id = records.slot(doctor_id, next_week)
    api.login(doctor_id, 'doctor')

    closed = api.patch(f'/api/doctors/{doctor_id}/availability/{slot_id}', json={'isAvailable': False})
    reopened = api.patch(f'/api/doctors/{doctor_id}/availability/{slot_id}', json={'isAvailable': True})

    assert closed.json() == {'message': 'Availability slot marked as unavailable.'}
    assert reopened.json() == {'message': 'Availability slot restored.'}
    assert records.slot_is_available(slot_id) is True


def test_booked_slot_cannot_be_toggled(api, records, next_week) -> None:
    doctor_id = records.doctor()
    slot_id = records.slot(doctor_id, next_week)
    api.login(records.patient(), 'patient')
    api.post('/api/appointments/book', json={'availableTimeID': slot_id, 'payment': {'method': 'visa', 'amount': 2200}})

    api.login(doctor_id, 'doctor')
    response = api.patch(f'/api/doctors/{doctor_id}/availability/{slot_id}', json={'isAvailable': True})
    missing = api.patch(f'/api/doctors/{doctor_id}/availability/999', json={'isAvailable': True})

    assert response.status_code == 409
    assert missing.status_code == 404


def test_doctor_confirms_and_cancels_appointment(api, records, next_week) -> None:
    doctor_id = records.doctor()
    slot_id = records.slot(doctor_id, next_week)
    api.login(records.patient(), 'patient')
    booked = api.post(
        '/api/appointments/book',
        json={'availableTimeID': slot_id, 'payment': {'method': 'visa', 'amount': 2200}},
    ).json()
    appointment_id = booked['appointment']['appointmentId']

    api.login(doctor_id, 'doctor')
    confirmed = api.patch(f'/api/doctors/appointments/{appointment_id}/status', json={'status': 'confirmed'})
    cancelled = api.patch(f'/api/doctors/appointments/{appointment_id}/status', json={'status': 'cancelled'})
    again = api.patch(f'/api/doctors/appointments/{appointment_id}/status', json={'status': 'confirmed'})
    invalid = api.patch(f'/api/doctors/appointments/{appointment_id}/status', json={'status': 'lost'})

    assert confirmed.status_code == 200
    assert confirmed.json()['status'] == 'confirmed'
    assert cancelled.json()['appointmentId'] == appointment_id
    assert records.slot_is_available(slot_id) is True
    assert again.status_code == 409
    assert invalid.status_code == 400


def test_doctor_views_schedule(api, records, next_week) -> None:
    doctor_id = records.doctor()
    booked_slot = records.slot(doctor_id, next_week, time(9, 0), time(10, 0))
    records.slot(doctor_id, next_week, time(10, 0), time(11, 0))
    api.login(records.patient(), 'patient')
    api.post('/api/appointments/book', json={'availableTimeID': booked_slot, 'payment': {'method': 'card', 'amount': 2200}})

    api.login(doctor_id, 'doctor')
    managed = api.get(f'/api/doctors/{doctor_id}/availability/manage').json()
    upcoming = api.get(f'/api/doctors/{doctor_id}/appointments').json()

    assert [(slot['availableTimeID'], slot['isAvailable']) for slot in managed][0] == (booked_slot, False)
    assert managed[0]['appointmentStatus'] == 'pending'
    assert managed[1]['appointmentId'] is None
    assert [item['patientName'] for item in upcoming] == ['Rahim Uddin']


def test_public_availability_honours_limit(api, records, next_week) -> None:
    doctor_id = records.doctor()
    for offset in range(3):
        records.slot(doctor_id, next_week + timedelta(days=offset))

    limited = api.get(f'/api/doctors/{doctor_id}/availability', params={'limit': 2})
    unknown = api.get('/api/doctors/999/availability')

    assert len(limited.json()) == 2
    assert unknown.status_code == 404
    assert unknown.json() == {'error': 'Doctor not found.'}


def test_doctor_directory_lists_next_slot(api, records, next_week) -> None:
    doctor_id = records.doctor()
    records.slot(doctor_id, next_week, time(14, 0), time(15, 0))

    response = api.get('/api/doctors/')

    assert response.status_code == 200
    listing = response.json()[0]
    assert listing['doctorID'] == doctor_id
    assert listing['nextStartTime'] == '14:00'
    assert listing['availableSlotCount'] == 1


def test_doctor_reads_history_of_own_patient_only(api, records, next_week) -> None:
    doctor_id = records.doctor('Dr. Owner')
    stranger = records.doctor('Dr. Stranger')
    slot_id = records.slot(doctor_id, next_week)
    patient_id = records.patient()
    api.login(patient_id, 'patient')
    api.post('/api/appointments/book', json={'availableTimeID': slot_id, 'payment': {'method': 'card', 'amount': 2200}})

    api.login(doctor_id, 'doctor')
    history = api.get(f'/api/doctors/{doctor_id}/patients/{patient_id}/history')
    missing_patient = api.get(f'/api/doctors/{doctor_id}/patients/999/history')
    other_doctor = api.get(f'/api/doctors/{stranger}/patients/{patient_id}/history')

    api.login(stranger, 'doctor')
    unrelated = api.get(f'/api/doctors/{stranger}/patients/{patient_id}/history')

    assert history.status_code == 200
    assert history.json()['patient'] == {'patientID': patient_id, 'fullName': 'Rahim Uddin', 'email': None}
    assert [item['availableTimeID'] for item in history.json()['appointments']] == [slot_id]
    assert missing_patient.json() == {'error': 'Patient not found.'}
    assert other_doctor.status_code == 403
    assert unrelated.status_code == 404
    assert unrelated.json() == {'error': 'No appointments found for this patient.'}
