import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.dependencies import SessionContext, get_session_context, require_role
from medibook.core import config
from medibook.database import get_db
from medibook.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Appointment,
)
from medibook.models.doctor import Doctor
from medibook.models.user import ROLE_DOCTOR, ROLE_PATIENT
from medibook.routes.common import database_unavailable, ensure_database_ready
from medibook.scheduling.slots import format_clock_time
from medibook.services import notifications
from medibook.services.availability import compute_doctor_slots

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_REASON_LENGTH = 300
NON_CANCELLABLE_STATUSES = (STATUS_CANCELLED, STATUS_COMPLETED, STATUS_REJECTED)


def _normalize_reason(value: str, message: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(message)
    if len(normalized) > MAX_REASON_LENGTH:
        raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')
    return normalized


def _normalize_optional_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    appointment_date: date
    appointment_time: time
    reason: str
    notes: str | None = None
    duration_minutes: int | None = Field(
        default=None,
        ge=config.MIN_SLOT_DURATION_MINUTES,
        le=config.MAX_SLOT_DURATION_MINUTES,
    )

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        return _normalize_reason(value, 'Reason for visit is required.')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')

    @field_validator('appointment_time')
    @classmethod
    def validate_appointment_time(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)


class RejectAppointmentRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        return _normalize_reason(value, 'Rejection reason is required.')


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')


class RescheduleAppointmentRequest(BaseModel):
    new_date: date
    new_time: time
    reason: str | None = None

    @field_validator('new_time')
    @classmethod
    def validate_new_time(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int | None = None
    consultation_fee: float
    reason: str
    notes: str | None = None
    status: str
    cancellation_reason: str | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    class Config:
        from_attributes = True


def describe_slot(appointment_date: date, appointment_time: time) -> str:
    return f'{appointment_date.isoformat()} at {format_clock_time(appointment_time)}'


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    return appointment


def ensure_participant(appointment: Appointment, session: SessionContext, action: str) -> None:
    if session.user_id not in (appointment.patient_id, appointment.doctor_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You don't have permission to {action} this appointment.",
        )


def ensure_treating_doctor(appointment: Appointment, session: SessionContext, action: str) -> None:
    if appointment.doctor_id != session.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'You can only {action} your own appointments.',
        )


def claim_slot(
    db: Session,
    doctor: Doctor,
    slot_date: date,
    slot_time: time,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    """Raise unless ``slot_time`` is a free, bookable slot for ``doctor``."""
    if not doctor.is_available:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Doctor is not available for appointments.',
        )

    if datetime.combine(slot_date, slot_time) <= now:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    if slot_date > now.date() + timedelta(days=config.BOOKING_WINDOW_DAYS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Appointments can only be booked within the next {config.BOOKING_WINDOW_DAYS} days.',
        )

    requested = format_clock_time(slot_time)
    slots = compute_doctor_slots(db, doctor, slot_date, now=now, exclude_appointment_id=exclude_appointment_id)
    slot = next((candidate for candidate in slots if candidate.time == requested), None)

    if slot is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The requested time is not within the doctor's schedule.",
        )

    if not slot.available:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This appointment slot is no longer available.',
        )


@router.post('/', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    session: SessionContext = Depends(require_role(ROLE_PATIENT)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.id == data.doctor_id).first()
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        claim_slot(db, doctor, data.appointment_date, data.appointment_time, datetime.now())

        appointment = Appointment(
            patient_id=session.user_id,
            doctor_id=doctor.id,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            duration_minutes=data.duration_minutes or config.DEFAULT_SLOT_DURATION_MINUTES,
            consultation_fee=doctor.consultation_fee or config.DEFAULT_CONSULTATION_FEE,
            reason=data.reason,
            notes=data.notes,
            status=STATUS_PENDING,
        )
        db.add(appointment)
        db.flush()

        notifications.queue_notification(
            db,
            user_id=doctor.id,
            notification_type=notifications.APPOINTMENT_BOOKED,
            title='New Appointment Request',
            message=(
                'You have a new appointment request for '
                f'{describe_slot(appointment.appointment_date, appointment.appointment_time)}'
            ),
            data={'appointment_id': appointment.id, 'patient_id': session.user_id},
        )
        db.commit()
        db.refresh(appointment)
        logger.info('Patient %s booked appointment %s with doctor %s', session.user_id, appointment.id, doctor.id)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    upcoming_only: bool = Query(default=False),
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    if status_filter is not None and status_filter not in APPOINTMENT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid appointment status.',
        )

    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if session.is_doctor:
            query = query.filter(Appointment.doctor_id == session.user_id)
        else:
            query = query.filter(Appointment.patient_id == session.user_id)

        if status_filter is not None:
            query = query.filter(Appointment.status == status_filter)

        if upcoming_only:
            query = query.filter(Appointment.appointment_date >= date.today())

        return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_treating_doctor(appointment, session, 'confirm')

        if appointment.status != STATUS_PENDING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Only pending appointments can be confirmed.',
            )

        appointment.status = STATUS_CONFIRMED
        appointment.confirmed_at = datetime.now()

        notifications.queue_notification(
            db,
            user_id=appointment.patient_id,
            notification_type=notifications.APPOINTMENT_CONFIRMED,
            title='Appointment Confirmed',
            message=(
                f'Your appointment on {describe_slot(appointment.appointment_date, appointment.appointment_time)} '
                'has been confirmed by the doctor.'
            ),
            data={'appointment_id': appointment.id},
        )
        db.commit()
        db.refresh(appointment)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    data: RejectAppointmentRequest,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_treating_doctor(appointment, session, 'reject')

        if appointment.status != STATUS_PENDING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Only pending appointments can be rejected.',
            )

        appointment.status = STATUS_REJECTED
        appointment.cancellation_reason = data.reason

        notifications.queue_notification(
            db,
            user_id=appointment.patient_id,
            notification_type=notifications.APPOINTMENT_REJECTED,
            title='Appointment Rejected',
            message=(
                f'Your appointment request for '
                f'{describe_slot(appointment.appointment_date, appointment.appointment_time)} was rejected.'
            ),
            data={'appointment_id': appointment.id, 'reason': data.reason},
        )
        db.commit()
        db.refresh(appointment)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_treating_doctor(appointment, session, 'complete')

        if appointment.status != STATUS_CONFIRMED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Only confirmed appointments can be completed.',
            )

        appointment.status = STATUS_COMPLETED
        appointment.completed_at = datetime.now()

        notifications.queue_notification(
            db,
            user_id=appointment.patient_id,
            notification_type=notifications.APPOINTMENT_COMPLETED,
            title='Appointment Completed',
            message=(
                f'Your appointment on {describe_slot(appointment.appointment_date, appointment.appointment_time)} '
                'has been marked as completed.'
            ),
            data={'appointment_id': appointment.id},
        )
        db.commit()
        db.refresh(appointment)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_participant(appointment, session, 'cancel')

        if appointment.status in NON_CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This appointment cannot be cancelled.',
            )

        appointment.status = STATUS_CANCELLED
        appointment.cancellation_reason = data.reason
        appointment.cancelled_at = datetime.now()

        other_party = appointment.doctor_id if session.user_id == appointment.patient_id else appointment.patient_id
        notifications.queue_notification(
            db,
            user_id=other_party,
            notification_type=notifications.APPOINTMENT_CANCELLED,
            title='Appointment Cancelled',
            message=(
                f'Your appointment on {describe_slot(appointment.appointment_date, appointment.appointment_time)} '
                'has been cancelled.'
            ),
            data={'appointment_id': appointment.id, 'cancellation_reason': data.reason},
        )
        db.commit()
        db.refresh(appointment)
        logger.info('User %s cancelled appointment %s', session.user_id, appointment.id)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    session: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(db, appointment_id)
        ensure_participant(appointment, session, 'reschedule')

        if appointment.status in NON_CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Cannot reschedule completed or cancelled appointments.',
            )

        doctor = db.query(Doctor).filter(Doctor.id == appointment.doctor_id).first()
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        claim_slot(db, doctor, data.new_date, data.new_time, datetime.now(), exclude_appointment_id=appointment.id)

        old_slot = describe_slot(appointment.appointment_date, appointment.appointment_time)
        new_slot = describe_slot(data.new_date, data.new_time)
        payload = {
            'appointment_id': appointment.id,
            'old_date': appointment.appointment_date.isoformat(),
            'old_time': format_clock_time(appointment.appointment_time),
            'new_date': data.new_date.isoformat(),
            'new_time': format_clock_time(data.new_time),
            'reason': data.reason,
        }

        appointment.appointment_date = data.new_date
        appointment.appointment_time = data.new_time
        appointment.status = STATUS_CONFIRMED

        for user_id in (appointment.patient_id, appointment.doctor_id):
            notifications.queue_notification(
                db,
                user_id=user_id,
                notification_type=notifications.APPOINTMENT_RESCHEDULED,
                title='Appointment Rescheduled',
                message=f'Appointment moved from {old_slot} to {new_slot}.',
                data=payload,
            )
        db.commit()
        db.refresh(appointment)
        logger.info('User %s rescheduled appointment %s to %s', session.user_id, appointment.id, new_slot)

        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
