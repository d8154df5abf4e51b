import json
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_doctor, require_patient
from backend.database import get_db
from backend.models.user import User
from backend.routes.appointment_routes import (
    AppointmentRequestResponse,
    AppointmentResponse,
    database_unavailable,
    ensure_database_ready,
    to_appointment_response,
    to_request_response,
)
from backend.services import booking
from backend.services.errors import InvalidInput
from backend.services.slots import WEEKDAYS, parse_wire_time
from backend.services.uploads import remove_profile_picture, save_profile_picture

doctor_router = APIRouter(tags=['doctor'])
patient_router = APIRouter(tags=['patient'])

logger = logging.getLogger(__name__)


class AvailabilityResponse(BaseModel):
    days: list[str]
    startTime: str | None = None
    endTime: str | None = None


class ProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    specialization: str | None = None
    profilePicture: str | None = None
    twoFAEnabled: bool
    availability: AvailabilityResponse | None = None


def to_profile_response(user: User) -> ProfileResponse:
    availability = None
    if user.role == 'doctor':
        availability = AvailabilityResponse(
            days=list(user.availability_days or []),
            startTime=user.availability_start,
            endTime=user.availability_end,
        )
    return ProfileResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        specialization=user.specialization,
        profilePicture=user.profile_picture,
        twoFAEnabled=bool(user.two_fa_enabled),
        availability=availability,
    )


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def parse_availability_form(days: str | None, start_time: str | None, end_time: str | None) -> list[str]:
    """Validate the weekly availability fields of the doctor profile form."""
    if not days:
        raise _bad_request('Shift days are required')
    try:
        parsed_days = json.loads(days)
    except ValueError as exc:
        raise _bad_request('Invalid days format') from exc

    if not isinstance(parsed_days, list) or not parsed_days:
        raise _bad_request('At least one shift day is required')
    if not all(day in WEEKDAYS for day in parsed_days):
        raise _bad_request('Invalid day names provided')

    if not start_time or not end_time:
        raise _bad_request('Start and end times are required')
    try:
        start = parse_wire_time(start_time)
        end = parse_wire_time(end_time)
    except InvalidInput as exc:
        raise _bad_request('Invalid time format (use HH:mm)') from exc
    if start >= end:
        raise _bad_request('Start time must be before end time')

    return sorted(set(parsed_days), key=WEEKDAYS.index)


def _apply_profile_picture(db: Session, user: User, profile_picture: UploadFile | None) -> None:
    old_picture = user.profile_picture
    new_picture = None
    if profile_picture is not None and profile_picture.filename:
        new_picture = save_profile_picture(profile_picture)
        user.profile_picture = new_picture

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
    db.refresh(user)

    # Only drop the old file once the new path is persisted.
    if new_picture and old_picture and old_picture != new_picture:
        remove_profile_picture(old_picture)


@doctor_router.get('/user', response_model=ProfileResponse)
def get_doctor_profile(doctor: User = Depends(require_doctor)):
    return to_profile_response(doctor)


@doctor_router.put('/profile')
def update_doctor_profile(
    name: str = Form(...),
    specialization: str | None = Form(default=None),
    two_fa_enabled: str | None = Form(default=None, alias='twoFAEnabled'),
    start_time: str | None = Form(default=None, alias='startTime'),
    end_time: str | None = Form(default=None, alias='endTime'),
    days: str | None = Form(default=None),
    profile_picture: UploadFile | None = File(default=None, alias='profilePicture'),
    doctor: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    if not name.strip():
        raise _bad_request('Name is required')
    parsed_days = parse_availability_form(days, start_time, end_time)

    doctor.name = name.strip()
    doctor.specialization = specialization.strip() if specialization and specialization.strip() else None
    if two_fa_enabled is not None:
        doctor.two_fa_enabled = two_fa_enabled.strip().lower() == 'true'
    doctor.availability_days = parsed_days
    doctor.availability_start = start_time
    doctor.availability_end = end_time

    _apply_profile_picture(db, doctor, profile_picture)
    logger.info('Doctor %s updated profile, availability %s %s-%s', doctor.id, parsed_days, start_time, end_time)
    return {'message': 'Profile updated successfully', 'user': to_profile_response(doctor)}


@doctor_router.get('/appointment/requests', response_model=list[AppointmentRequestResponse])
def list_doctor_requests(doctor: User = Depends(require_doctor), db: Session = Depends(get_db)):
    ensure_database_ready()
    try:
        requests = booking.list_doctor_requests(db, doctor.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return [to_request_response(appointment_request) for appointment_request in requests]


@doctor_router.get('/appointments', response_model=list[AppointmentResponse])
def list_doctor_appointments(doctor: User = Depends(require_doctor), db: Session = Depends(get_db)):
    try:
        appointments = booking.list_doctor_appointments(db, doctor.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return [to_appointment_response(appointment) for appointment in appointments]


@patient_router.get('/user', response_model=ProfileResponse)
def get_patient_profile(patient: User = Depends(require_patient)):
    return to_profile_response(patient)


@patient_router.put('/profile')
def update_patient_profile(
    name: str = Form(...),
    profile_picture: UploadFile | None = File(default=None, alias='profilePicture'),
    patient: User = Depends(require_patient),
    db: Session = Depends(get_db),
):
    if not name.strip():
        raise _bad_request('Name is required')

    patient.name = name.strip()
    _apply_profile_picture(db, patient, profile_picture)
    logger.info('Patient %s updated profile', patient.id)
    return {'message': 'Profile updated successfully', 'user': to_profile_response(patient)}


@patient_router.get('/doctors', response_model=list[ProfileResponse])
def list_doctors(patient: User = Depends(require_patient), db: Session = Depends(get_db)):
    del patient
    try:
        doctors = db.query(User).filter(User.role == 'doctor').order_by(User.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    return [to_profile_response(doctor) for doctor in doctors]
