import logging
from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.dependencies import SessionContext, require_role
from medibook.core import config
from medibook.database import get_db
from medibook.models.appointment import STATUS_CONFIRMED, STATUS_PENDING, Appointment
from medibook.models.schedule import DoctorSchedule
from medibook.models.user import ROLE_DOCTOR
from medibook.routes.common import database_unavailable, ensure_database_ready
from medibook.scheduling.slots import DayOfWeek

router = APIRouter(tags=['schedules'])

logger = logging.getLogger(__name__)


class CreateScheduleRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int | None = None
    is_active: bool = True


class UpdateScheduleRequest(BaseModel):
    day_of_week: int | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = None
    is_active: bool | None = None


class ScheduleResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int | None = None
    is_active: bool | None = None

    class Config:
        from_attributes = True


def validate_schedule_fields(day_of_week: int, start_time: time, end_time: time, slot_duration_minutes: int) -> None:
    if day_of_week not in {day.value for day in DayOfWeek}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Day of week must be between 0 (Sunday) and 6 (Saturday).',
        )

    if end_time <= start_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End time must be after start time.',
        )

    if not config.MIN_SLOT_DURATION_MINUTES <= slot_duration_minutes <= config.MAX_SLOT_DURATION_MINUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f'Slot duration must be between {config.MIN_SLOT_DURATION_MINUTES} '
                f'and {config.MAX_SLOT_DURATION_MINUTES} minutes.'
            ),
        )


def find_overlapping_schedule(
    db: Session,
    doctor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> DoctorSchedule | None:
    query = db.query(DoctorSchedule).filter(
        DoctorSchedule.doctor_id == doctor_id,
        DoctorSchedule.day_of_week == day_of_week,
        DoctorSchedule.is_active.is_(True),
        DoctorSchedule.start_time < end_time,
        DoctorSchedule.end_time > start_time,
    )
    if exclude_id is not None:
        query = query.filter(DoctorSchedule.id != exclude_id)
    return query.first()


def get_owned_schedule(db: Session, schedule_id: int, doctor_id: int, action: str) -> DoctorSchedule:
    schedule = db.query(DoctorSchedule).filter(DoctorSchedule.id == schedule_id).first()
    if schedule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Schedule not found.',
        )
    if schedule.doctor_id != doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'You can only {action} your own schedules.',
        )
    return schedule


def _pick(changes: dict, field_name: str, current):
    value = changes.get(field_name)
    return current if value is None else value


def list_schedules_for_doctor(db: Session, doctor_id: int) -> list[DoctorSchedule]:
    return db.query(DoctorSchedule).filter(
        DoctorSchedule.doctor_id == doctor_id,
    ).order_by(DoctorSchedule.day_of_week.asc(), DoctorSchedule.start_time.asc()).all()


@router.get('/', response_model=list[ScheduleResponse])
def list_my_schedules(
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    doctor = session.require_doctor_profile()
    ensure_database_ready()

    try:
        return list_schedules_for_doctor(db, doctor.id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/doctor/{doctor_id}', response_model=list[ScheduleResponse])
def list_doctor_schedules(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return list_schedules_for_doctor(db, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: CreateScheduleRequest,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    doctor = session.require_doctor_profile()
    slot_duration_minutes = data.slot_duration_minutes
    if slot_duration_minutes is None:
        slot_duration_minutes = config.DEFAULT_SLOT_DURATION_MINUTES
    validate_schedule_fields(data.day_of_week, data.start_time, data.end_time, slot_duration_minutes)

    ensure_database_ready()

    try:
        if data.is_active and find_overlapping_schedule(
            db, doctor.id, data.day_of_week, data.start_time, data.end_time
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Schedule overlaps an existing schedule for this day.',
            )

        schedule = DoctorSchedule(
            doctor_id=doctor.id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=slot_duration_minutes,
            is_active=data.is_active,
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        logger.info('Doctor %s added schedule %s for %s', doctor.id, schedule.id, DayOfWeek(schedule.day_of_week).name)

        return schedule
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/{schedule_id}', response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: UpdateScheduleRequest,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    doctor = session.require_doctor_profile()
    ensure_database_ready()

    try:
        schedule = get_owned_schedule(db, schedule_id, doctor.id, 'update')
        changes = data.model_dump(exclude_unset=True)

        day_of_week = _pick(changes, 'day_of_week', schedule.day_of_week)
        start_time = _pick(changes, 'start_time', schedule.start_time)
        end_time = _pick(changes, 'end_time', schedule.end_time)
        slot_duration_minutes = changes.get('slot_duration_minutes')
        if slot_duration_minutes is None:
            slot_duration_minutes = schedule.slot_duration_minutes or config.DEFAULT_SLOT_DURATION_MINUTES
        is_active = changes.get('is_active')
        if is_active is None:
            is_active = bool(schedule.is_active)

        validate_schedule_fields(day_of_week, start_time, end_time, slot_duration_minutes)

        if is_active and find_overlapping_schedule(
            db, doctor.id, day_of_week, start_time, end_time, exclude_id=schedule.id
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Schedule overlaps an existing schedule for this day.',
            )

        schedule.day_of_week = day_of_week
        schedule.start_time = start_time
        schedule.end_time = end_time
        schedule.slot_duration_minutes = slot_duration_minutes
        schedule.is_active = is_active
        db.commit()
        db.refresh(schedule)

        return schedule
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/{schedule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: int,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    doctor = session.require_doctor_profile()
    ensure_database_ready()

    try:
        schedule = get_owned_schedule(db, schedule_id, doctor.id, 'delete')

        upcoming = db.query(Appointment.appointment_date).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_date >= date.today(),
            Appointment.status.in_([STATUS_PENDING, STATUS_CONFIRMED]),
        ).all()
        if any(DayOfWeek.from_date(appointment_date) == schedule.day_of_week for (appointment_date,) in upcoming):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    'Cannot delete schedule with future appointments. '
                    'Please cancel or reschedule appointments first.'
                ),
            )

        db.delete(schedule)
        db.commit()
        logger.info('Doctor %s deleted schedule %s', doctor.id, schedule_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
