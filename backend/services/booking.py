"""Appointment request workflow backed by the database.

The session and the notifier are always passed in by the caller. Realtime
events are published only after the state change has been committed.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.models.appointment import (
    REQUEST_STATUSES,
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Appointment,
    AppointmentRequest,
)
from backend.models.user import User
from backend.services.errors import AlreadyResolved, InvalidInput, NotFound, NotOwner, SlotTaken
from backend.services.notifications import (
    EVENT_APPOINTMENT_UPDATE,
    EVENT_NEW_REQUEST,
    Notifier,
    record_notification,
)
from backend.services.slots import (
    Slot,
    WeeklyAvailability,
    available_slots,
    check_slot_in_window,
    format_wire_time,
)

logger = logging.getLogger(__name__)

TIME_FILTER_DAYS = {
    '3days': 3,
    'week': 7,
    '15days': 15,
    'month': 30,
}


def doctor_availability(doctor: User) -> WeeklyAvailability:
    return WeeklyAvailability(
        days=frozenset(doctor.availability_days or []),
        start_time=doctor.availability_start,
        end_time=doctor.availability_end,
    )


def get_doctor(db: Session, doctor_id: int) -> User:
    doctor = db.query(User).filter(User.id == doctor_id, User.role == 'doctor').first()
    if doctor is None:
        raise NotFound('Doctor not found.')
    return doctor


def booked_start_times(db: Session, doctor_id: int, on_date: date) -> set[time]:
    accepted_requests = db.query(AppointmentRequest.time).filter(
        AppointmentRequest.doctor_id == doctor_id,
        AppointmentRequest.date == on_date,
        AppointmentRequest.status == STATUS_ACCEPTED,
    ).all()
    appointments = db.query(Appointment.time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == on_date,
    ).all()

    return {row[0] for row in accepted_requests} | {row[0] for row in appointments}


def list_available_slots(db: Session, doctor_id: int, on_date: date) -> list[Slot]:
    doctor = get_doctor(db, doctor_id)
    return available_slots(doctor_availability(doctor), on_date, booked_start_times(db, doctor_id, on_date))


def _slot_is_booked(db: Session, doctor_id: int, on_date: date, start_time: time) -> bool:
    appointment = db.query(Appointment.id).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == on_date,
        Appointment.time == start_time,
    ).first()
    return appointment is not None


def _accepted_request_exists(db: Session, doctor_id: int, on_date: date, start_time: time) -> bool:
    accepted = db.query(AppointmentRequest.id).filter(
        AppointmentRequest.doctor_id == doctor_id,
        AppointmentRequest.date == on_date,
        AppointmentRequest.time == start_time,
        AppointmentRequest.status == STATUS_ACCEPTED,
    ).first()
    return accepted is not None


def validate_booking_request(db: Session, doctor: User, on_date: date, start_time: time) -> Slot:
    """Gate a new request: doctor works that day, slot fits, slot is free."""
    slot = check_slot_in_window(doctor_availability(doctor), on_date, start_time)

    if _accepted_request_exists(db, doctor.id, on_date, start_time):
        raise SlotTaken('This time slot is already booked.')

    return slot


def create_appointment_request(
    db: Session,
    patient: User,
    doctor_id: int,
    on_date: date,
    start_time: time,
    reason: str,
    notifier: Notifier,
) -> AppointmentRequest:
    doctor = get_doctor(db, doctor_id)
    validate_booking_request(db, doctor, on_date, start_time)

    # Not atomic with the check above; acceptance is the authoritative guard.
    appointment_request = AppointmentRequest(
        patient_id=patient.id,
        doctor_id=doctor.id,
        date=on_date,
        time=start_time,
        reason=reason,
        status=STATUS_PENDING,
    )
    db.add(appointment_request)
    db.flush()

    message = f'New appointment request from {patient.name}'
    notification = record_notification(db, doctor.id, message, 'appointment_request', appointment_request.id)
    db.commit()
    db.refresh(appointment_request)

    logger.info(
        'Appointment request %s created by patient %s for doctor %s at %s %s',
        appointment_request.id,
        patient.id,
        doctor.id,
        on_date.isoformat(),
        format_wire_time(start_time),
    )
    notifier.publish(doctor.id, EVENT_NEW_REQUEST, {
        'requestId': appointment_request.id,
        'notificationId': notification.id,
        'message': message,
        'patient': {'id': patient.id, 'name': patient.name},
        'date': on_date.isoformat(),
        'time': format_wire_time(start_time),
        'reason': reason,
    })
    return appointment_request


def _load_pending_request(db: Session, request_id: int, doctor_id: int) -> AppointmentRequest:
    appointment_request = db.query(AppointmentRequest).filter(AppointmentRequest.id == request_id).first()
    if appointment_request is None:
        raise NotFound('Appointment request not found.')
    if appointment_request.doctor_id != doctor_id:
        raise NotOwner('Only the requested doctor can respond to this appointment request.')
    if appointment_request.status != STATUS_PENDING:
        raise AlreadyResolved(f'Appointment request is already {appointment_request.status}.')
    return appointment_request


def accept_appointment_request(
    db: Session,
    request_id: int,
    doctor_id: int,
    notifier: Notifier,
) -> Appointment:
    """Accept a pending request and create its appointment in one commit.

    Other pending requests for the same slot are left pending; the doctor
    rejects them explicitly or hits ``SlotTaken`` when accepting them.
    """
    appointment_request = _load_pending_request(db, request_id, doctor_id)
    patient_id = appointment_request.patient_id
    on_date = appointment_request.date
    start_time = appointment_request.time

    if _slot_is_booked(db, doctor_id, on_date, start_time):
        raise SlotTaken('This time slot is already booked.')

    appointment = Appointment(
        request_id=appointment_request.id,
        doctor_id=doctor_id,
        patient_id=patient_id,
        date=on_date,
        time=start_time,
        reason=appointment_request.reason,
    )
    appointment_request.status = STATUS_ACCEPTED
    db.add(appointment)

    message = f'Your appointment on {on_date.isoformat()} at {format_wire_time(start_time)} was accepted'
    notification = record_notification(db, patient_id, message, 'appointment_accepted', request_id)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SlotTaken('This time slot is already booked.') from exc

    db.refresh(appointment)
    logger.info('Appointment request %s accepted by doctor %s', request_id, doctor_id)
    notifier.publish(patient_id, EVENT_APPOINTMENT_UPDATE, {
        'requestId': request_id,
        'status': STATUS_ACCEPTED,
        'message': message,
        'notificationId': notification.id,
    })
    return appointment


def reject_appointment_request(
    db: Session,
    request_id: int,
    doctor_id: int,
    notifier: Notifier,
) -> AppointmentRequest:
    appointment_request = _load_pending_request(db, request_id, doctor_id)
    patient_id = appointment_request.patient_id

    appointment_request.status = STATUS_REJECTED
    message = (
        f'Your appointment on {appointment_request.date.isoformat()} at '
        f'{format_wire_time(appointment_request.time)} was rejected'
    )
    notification = record_notification(db, patient_id, message, 'appointment_rejected', request_id)
    db.commit()
    db.refresh(appointment_request)

    logger.info('Appointment request %s rejected by doctor %s', request_id, doctor_id)
    notifier.publish(patient_id, EVENT_APPOINTMENT_UPDATE, {
        'requestId': request_id,
        'status': STATUS_REJECTED,
        'message': message,
        'notificationId': notification.id,
    })
    return appointment_request


def list_patient_requests(
    db: Session,
    patient_id: int,
    time_filter: str | None = None,
    status: str | None = None,
    doctor_id: int | None = None,
    now: datetime | None = None,
) -> list[AppointmentRequest]:
    query = db.query(AppointmentRequest).filter(AppointmentRequest.patient_id == patient_id)

    if time_filter:
        if time_filter not in TIME_FILTER_DAYS:
            raise InvalidInput(f'Invalid time filter. Use one of: {", ".join(TIME_FILTER_DAYS)}.')
        since = (now or datetime.utcnow()) - timedelta(days=TIME_FILTER_DAYS[time_filter])
        query = query.filter(AppointmentRequest.created_at >= since)

    if status:
        if status not in REQUEST_STATUSES:
            raise InvalidInput(f'Invalid status. Use one of: {", ".join(REQUEST_STATUSES)}.')
        query = query.filter(AppointmentRequest.status == status)

    if doctor_id is not None:
        query = query.filter(AppointmentRequest.doctor_id == doctor_id)

    return query.order_by(AppointmentRequest.created_at.desc(), AppointmentRequest.id.desc()).all()


def list_doctor_requests(db: Session, doctor_id: int) -> list[AppointmentRequest]:
    return db.query(AppointmentRequest).filter(
        AppointmentRequest.doctor_id == doctor_id,
    ).order_by(AppointmentRequest.created_at.desc(), AppointmentRequest.id.desc()).all()


def list_doctor_appointments(db: Session, doctor_id: int) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
    ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()
