from datetime import time

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from backend.auth.jwt_handler import create_access_token
from backend.database import get_db
from backend.main import app
from backend.models.appointment import Appointment, AppointmentRequest
from backend.routes.appointment_routes import CreateAppointmentRequest
from backend.services.notifications import get_notifier


@pytest.fixture
def client(booking_db, notifier, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.routes.appointment_routes.ensure_booking_schema', lambda: None)

    def override_get_db():
        yield booking_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def doctor(make_user):
    return make_user('Grey', role='doctor')


@pytest.fixture
def patient(make_user):
    return make_user('Alice')


def auth_header(user) -> dict:
    return {'Authorization': f'Bearer {create_access_token(user.id, user.role)}'}


def book(client, patient, doctor, slot_time='09:00', slot_date='2026-01-05'):
    return client.post(
        '/appointment/request',
        json={'doctorId': doctor.id, 'date': slot_date, 'time': slot_time, 'reason': 'Checkup'},
        headers=auth_header(patient),
    )


def test_create_appointment_request_strips_reason() -> None:
    request = CreateAppointmentRequest(doctorId=1, date='2026-01-05', time='09:00', reason='  Fever  ')

    assert request.reason == 'Fever'


def test_create_appointment_request_rejects_blank_reason() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(doctorId=1, date='2026-01-05', time='09:00', reason='   ')


def test_list_slots_returns_half_hour_slots(client, doctor) -> None:
    response = client.get(f'/doctors/{doctor.id}/slots', params={'date': '2026-01-05'})

    assert response.status_code == 200
    slots = response.json()
    assert len(slots) == 6
    assert slots[0] == {'start': '2026-01-05T09:00:00', 'end': '2026-01-05T09:30:00'}
    assert slots[-1] == {'start': '2026-01-05T11:30:00', 'end': '2026-01-05T12:00:00'}


def test_list_slots_is_empty_on_day_off(client, doctor) -> None:
    response = client.get(f'/doctors/{doctor.id}/slots', params={'date': '2026-01-04'})

    assert response.status_code == 200
    assert response.json() == []


def test_list_slots_rejects_malformed_date(client, doctor) -> None:
    response = client.get(f'/doctors/{doctor.id}/slots', params={'date': '01/05/2026'})

    assert response.status_code == 400
    assert response.json()['code'] == 'invalid_input'


def test_list_slots_for_unknown_doctor_is_not_found(client) -> None:
    response = client.get('/doctors/999/slots', params={'date': '2026-01-05'})

    assert response.status_code == 404
    assert response.json() == {'detail': 'Doctor not found.', 'code': 'not_found'}


def test_request_appointment_returns_request_id(client, booking_db, doctor, patient, notifier) -> None:
    response = book(client, patient, doctor)

    assert response.status_code == 201
    request_id = response.json()['requestId']
    stored = booking_db.query(AppointmentRequest).filter(AppointmentRequest.id == request_id).one()
    assert stored.status == 'pending'
    assert stored.time == time(9, 0)
    assert notifier.events[0][0] == doctor.id


@pytest.mark.parametrize(
    ('slot_date', 'slot_time', 'status_code', 'code'),
    [
        ('2026-01-04', '09:00', 422, 'doctor_unavailable'),
        ('2026-01-05', '11:45', 422, 'outside_window'),
        ('2026-01-05', '09:15', 422, 'outside_window'),
        ('2026-01-05', '9:00', 400, 'invalid_input'),
        ('2026-13-01', '09:00', 400, 'invalid_input'),
    ],
)
def test_request_appointment_rejects_invalid_slots(
    client, doctor, patient, slot_date, slot_time, status_code, code,
) -> None:
    response = book(client, patient, doctor, slot_time=slot_time, slot_date=slot_date)

    assert response.status_code == status_code
    assert response.json()['code'] == code


def test_request_appointment_requires_patient_role(client, doctor) -> None:
    response = book(client, doctor, doctor)

    assert response.status_code == 403
    assert response.json()['detail'] == 'Access denied: Not a patient'


def test_request_appointment_requires_token(client, doctor) -> None:
    response = client.post(
        '/appointment/request',
        json={'doctorId': doctor.id, 'date': '2026-01-05', 'time': '09:00', 'reason': 'Checkup'},
    )

    assert response.status_code in (401, 403)


def test_accept_then_reaccept_and_conflicting_accept(client, booking_db, doctor, patient, make_user) -> None:
    first_id = book(client, patient, doctor).json()['requestId']
    second_id = book(client, make_user('Bob'), doctor).json()['requestId']

    accepted = client.post('/appointment/accept', json={'requestId': first_id}, headers=auth_header(doctor))
    assert accepted.status_code == 200
    assert accepted.json()['message'] == 'Appointment accepted'

    again = client.post('/appointment/accept', json={'requestId': first_id}, headers=auth_header(doctor))
    assert again.status_code == 409
    assert again.json()['code'] == 'already_resolved'

    conflicting = client.post('/appointment/accept', json={'requestId': second_id}, headers=auth_header(doctor))
    assert conflicting.status_code == 409
    assert conflicting.json()['code'] == 'slot_taken'

    assert booking_db.query(Appointment).count() == 1

    taken = book(client, make_user('Carol'), doctor)
    assert taken.status_code == 409
    assert taken.json()['code'] == 'slot_taken'

    slots = client.get(f'/doctors/{doctor.id}/slots', params={'date': '2026-01-05'}).json()
    assert '2026-01-05T09:00:00' not in [slot['start'] for slot in slots]


def test_accept_by_other_doctor_is_forbidden(client, doctor, patient, make_user) -> None:
    request_id = book(client, patient, doctor).json()['requestId']
    other_doctor = make_user('Shepherd', role='doctor')

    response = client.post('/appointment/accept', json={'requestId': request_id}, headers=auth_header(other_doctor))

    assert response.status_code == 403
    assert response.json()['code'] == 'not_owner'


def test_reject_request(client, booking_db, doctor, patient) -> None:
    request_id = book(client, patient, doctor).json()['requestId']

    response = client.post('/appointment/reject', json={'requestId': request_id}, headers=auth_header(doctor))

    assert response.status_code == 200
    assert response.json() == {'message': 'Appointment rejected'}
    stored = booking_db.query(AppointmentRequest).filter(AppointmentRequest.id == request_id).one()
    assert stored.status == 'rejected'


def test_reject_missing_request_is_not_found(client, doctor) -> None:
    response = client.post('/appointment/reject', json={'requestId': 4242}, headers=auth_header(doctor))

    assert response.status_code == 404


def test_every_listed_slot_can_be_requested(client, doctor, patient) -> None:
    slots = client.get(f'/doctors/{doctor.id}/slots', params={'date': '2026-01-06'}).json()

    for slot in slots:
        response = book(client, patient, doctor, slot_time=slot['start'][11:16], slot_date=slot['start'][:10])
        assert response.status_code == 201


def test_list_my_appointments_filters_by_status(client, doctor, patient) -> None:
    first_id = book(client, patient, doctor).json()['requestId']
    second_id = book(client, patient, doctor, slot_time='10:00').json()['requestId']
    client.post('/appointment/reject', json={'requestId': first_id}, headers=auth_header(doctor))

    everything = client.get('/appointments', headers=auth_header(patient))
    rejected = client.get('/appointments', params={'status': 'rejected'}, headers=auth_header(patient))
    by_doctor = client.get('/appointments', params={'doctorId': doctor.id, 'time': 'week'}, headers=auth_header(patient))

    assert {item['id'] for item in everything.json()} == {first_id, second_id}
    assert [item['id'] for item in rejected.json()] == [first_id]
    assert rejected.json()[0]['time'] == '09:00'
    assert {item['id'] for item in by_doctor.json()} == {first_id, second_id}


def test_list_my_appointments_rejects_unknown_status(client, patient) -> None:
    response = client.get('/appointments', params={'status': 'cancelled'}, headers=auth_header(patient))

    assert response.status_code == 400
    assert response.json()['code'] == 'invalid_input'
