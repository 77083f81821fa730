from datetime import time

import pytest
from fastapi import HTTPException

from medibook.auth.dependencies import SessionContext
from medibook.models.appointment import Appointment
from medibook.models.doctor import Doctor
from medibook.models.schedule import DoctorSchedule
from medibook.models.user import ROLE_DOCTOR, User
from medibook.routes.schedule_routes import (
    CreateScheduleRequest,
    UpdateScheduleRequest,
    create_schedule,
    delete_schedule,
    list_doctor_schedules,
    list_my_schedules,
    update_schedule,
    validate_schedule_fields,
)
from medibook.scheduling.slots import DayOfWeek


def _create(db, session, day=DayOfWeek.MONDAY, start=time(8, 0), end=time(12, 0), **kwargs) -> DoctorSchedule:
    return create_schedule(
        CreateScheduleRequest(day_of_week=int(day), start_time=start, end_time=end, **kwargs),
        session=session,
        db=db,
    )


def _other_doctor_session(db) -> SessionContext:
    user = User(email='cameron@clinic.test', hashed_password='x', full_name='Allison Cameron', role=ROLE_DOCTOR)
    db.add(user)
    db.commit()
    profile = Doctor(id=user.id, specialization='Immunology', is_available=True)
    db.add(profile)
    db.commit()
    return SessionContext(user=user, doctor=profile)


@pytest.mark.parametrize(
    ('day_of_week', 'start', 'end', 'duration', 'error_detail'),
    [
        (7, time(8, 0), time(9, 0), 30, 'Day of week must be between 0 (Sunday) and 6 (Saturday).'),
        (-1, time(8, 0), time(9, 0), 30, 'Day of week must be between 0 (Sunday) and 6 (Saturday).'),
        (1, time(9, 0), time(9, 0), 30, 'End time must be after start time.'),
        (1, time(10, 0), time(9, 0), 30, 'End time must be after start time.'),
        (1, time(8, 0), time(9, 0), 10, 'Slot duration must be between 15 and 120 minutes.'),
        (1, time(8, 0), time(12, 0), 121, 'Slot duration must be between 15 and 120 minutes.'),
    ],
)
def test_validate_schedule_fields_rejects_bad_input(day_of_week, start, end, duration, error_detail) -> None:
    with pytest.raises(HTTPException) as exception_info:
        validate_schedule_fields(day_of_week, start, end, duration)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == error_detail


def test_create_schedule_defaults_slot_duration(db, doctor_session) -> None:
    schedule = _create(db, doctor_session)

    assert schedule.doctor_id == doctor_session.user_id
    assert schedule.slot_duration_minutes == 30
    assert schedule.is_active is True


def test_create_schedule_allows_separate_blocks_on_one_day(db, doctor_session) -> None:
    _create(db, doctor_session, start=time(8, 0), end=time(12, 0))
    _create(db, doctor_session, start=time(13, 0), end=time(17, 0))

    schedules = list_my_schedules(session=doctor_session, db=db)

    assert [(s.start_time, s.end_time) for s in schedules] == [
        (time(8, 0), time(12, 0)),
        (time(13, 0), time(17, 0)),
    ]


def test_create_schedule_rejects_overlap_on_same_day(db, doctor_session) -> None:
    _create(db, doctor_session, start=time(8, 0), end=time(12, 0))

    with pytest.raises(HTTPException) as exception_info:
        _create(db, doctor_session, start=time(11, 30), end=time(14, 0))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Schedule overlaps an existing schedule for this day.'


def test_create_schedule_allows_overlap_with_inactive_schedule(db, doctor_session) -> None:
    _create(db, doctor_session, start=time(8, 0), end=time(12, 0), is_active=False)

    schedule = _create(db, doctor_session, start=time(9, 0), end=time(11, 0))

    assert schedule.id is not None


def test_create_schedule_requires_doctor_profile(db, patient_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _create(db, patient_session)

    assert exception_info.value.status_code == 403


def test_list_doctor_schedules_orders_by_day_then_start(db, doctor_session) -> None:
    _create(db, doctor_session, day=DayOfWeek.WEDNESDAY, start=time(9, 0), end=time(10, 0))
    _create(db, doctor_session, day=DayOfWeek.MONDAY, start=time(13, 0), end=time(14, 0))
    _create(db, doctor_session, day=DayOfWeek.MONDAY, start=time(8, 0), end=time(9, 0))

    schedules = list_doctor_schedules(doctor_id=doctor_session.user_id, db=db)

    assert [(s.day_of_week, s.start_time) for s in schedules] == [
        (DayOfWeek.MONDAY, time(8, 0)),
        (DayOfWeek.MONDAY, time(13, 0)),
        (DayOfWeek.WEDNESDAY, time(9, 0)),
    ]


def test_update_schedule_applies_partial_changes(db, doctor_session) -> None:
    schedule = _create(db, doctor_session)

    updated = update_schedule(
        schedule_id=schedule.id,
        data=UpdateScheduleRequest(end_time=time(10, 0), slot_duration_minutes=20),
        session=doctor_session,
        db=db,
    )

    assert updated.start_time == time(8, 0)
    assert updated.end_time == time(10, 0)
    assert updated.slot_duration_minutes == 20


def test_update_schedule_validates_merged_times(db, doctor_session) -> None:
    schedule = _create(db, doctor_session)

    with pytest.raises(HTTPException) as exception_info:
        update_schedule(
            schedule_id=schedule.id,
            data=UpdateScheduleRequest(start_time=time(12, 0)),
            session=doctor_session,
            db=db,
        )

    assert exception_info.value.detail == 'End time must be after start time.'


def test_update_schedule_rejects_other_doctors(db, doctor_session) -> None:
    schedule = _create(db, doctor_session)
    intruder = _other_doctor_session(db)

    with pytest.raises(HTTPException) as exception_info:
        update_schedule(
            schedule_id=schedule.id,
            data=UpdateScheduleRequest(is_active=False),
            session=intruder,
            db=db,
        )

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'You can only update your own schedules.'


def test_update_missing_schedule_returns_not_found(db, doctor_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_schedule(schedule_id=999, data=UpdateScheduleRequest(), session=doctor_session, db=db)

    assert exception_info.value.status_code == 404


def test_delete_schedule_refuses_when_future_appointments_fall_on_that_day(
    db, doctor_session, patient, upcoming_date
) -> None:
    schedule = _create(db, doctor_session)
    db.add(
        Appointment(
            patient_id=patient.id,
            doctor_id=doctor_session.user_id,
            appointment_date=upcoming_date(DayOfWeek.MONDAY),
            appointment_time=time(8, 0),
            consultation_fee=150.0,
            reason='Checkup',
            status='pending',
        )
    )
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        delete_schedule(schedule_id=schedule.id, session=doctor_session, db=db)

    assert exception_info.value.status_code == 409


def test_delete_schedule_removes_row(db, doctor_session, patient, upcoming_date) -> None:
    schedule = _create(db, doctor_session)
    db.add(
        Appointment(
            patient_id=patient.id,
            doctor_id=doctor_session.user_id,
            appointment_date=upcoming_date(DayOfWeek.TUESDAY),
            appointment_time=time(8, 0),
            consultation_fee=150.0,
            reason='Checkup',
            status='confirmed',
        )
    )
    db.commit()

    delete_schedule(schedule_id=schedule.id, session=doctor_session, db=db)

    assert db.query(DoctorSchedule).filter(DoctorSchedule.id == schedule.id).first() is None
