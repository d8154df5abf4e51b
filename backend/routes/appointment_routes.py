from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_doctor, require_patient
from backend.database import ensure_booking_schema, get_db
from backend.models.user import User
from backend.services import booking
from backend.services.notifications import Notifier, get_notifier
from backend.services.slots import format_wire_time, parse_wire_date, parse_wire_time

router = APIRouter(tags=['appointments'])

MAX_REASON_LENGTH = 500


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class CreateAppointmentRequest(BaseModel):
    doctor_id: int = Field(alias='doctorId')
    date: str
    time: str
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Reason is required.')
        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')
        return normalized


class RequestDecision(BaseModel):
    request_id: int = Field(alias='requestId')


class AppointmentRequestResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    date: date
    time: str
    reason: str
    status: str
    created_at: datetime


class AppointmentResponse(BaseModel):
    id: int
    request_id: int | None = None
    patient_id: int
    doctor_id: int
    date: date
    time: str
    reason: str | None = None


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def to_request_response(appointment_request) -> AppointmentRequestResponse:
    return AppointmentRequestResponse(
        id=appointment_request.id,
        patient_id=appointment_request.patient_id,
        doctor_id=appointment_request.doctor_id,
        date=appointment_request.date,
        time=format_wire_time(appointment_request.time),
        reason=appointment_request.reason,
        status=appointment_request.status,
        created_at=appointment_request.created_at,
    )


def to_appointment_response(appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        request_id=appointment.request_id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        date=appointment.date,
        time=format_wire_time(appointment.time),
        reason=appointment.reason,
    )


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_doctor_slots(
    doctor_id: int,
    slot_date: str = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    on_date = parse_wire_date(slot_date)
    ensure_database_ready()

    try:
        slots = booking.list_available_slots(db, doctor_id, on_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [SlotResponse(start=slot.start, end=slot.end) for slot in slots]


@router.post('/appointment/request', status_code=status.HTTP_201_CREATED)
def request_appointment(
    data: CreateAppointmentRequest,
    patient: User = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    on_date = parse_wire_date(data.date)
    start_time = parse_wire_time(data.time)
    ensure_database_ready()

    try:
        appointment_request = booking.create_appointment_request(
            db,
            patient,
            data.doctor_id,
            on_date,
            start_time,
            data.reason,
            notifier,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'requestId': appointment_request.id, 'message': 'Appointment request sent successfully'}


@router.post('/appointment/accept')
def accept_appointment(
    data: RequestDecision,
    doctor: User = Depends(require_doctor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = booking.accept_appointment_request(db, data.request_id, doctor.id, notifier)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'message': 'Appointment accepted', 'appointmentId': appointment.id}


@router.post('/appointment/reject')
def reject_appointment(
    data: RequestDecision,
    doctor: User = Depends(require_doctor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        booking.reject_appointment_request(db, data.request_id, doctor.id, notifier)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'message': 'Appointment rejected'}


@router.get('/appointments', response_model=list[AppointmentRequestResponse])
def list_my_appointment_requests(
    time_filter: str | None = Query(default=None, alias='time'),
    status_filter: str | None = Query(default=None, alias='status'),
    doctor_id: int | None = Query(default=None, alias='doctorId'),
    patient: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        requests = booking.list_patient_requests(
            db,
            patient.id,
            time_filter=time_filter or None,
            status=status_filter or None,
            doctor_id=doctor_id,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [to_request_response(appointment_request) for appointment_request in requests]
