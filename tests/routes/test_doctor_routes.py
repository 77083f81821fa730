from datetime import time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from medibook.auth.dependencies import SessionContext
from medibook.models.schedule import DoctorSchedule
from medibook.models.user import ROLE_DOCTOR, User
from medibook.routes.doctor_routes import (
    DoctorProfileRequest,
    DoctorProfileUpdateRequest,
    create_profile,
    get_doctor_details,
    search_doctors,
    update_profile,
)
from medibook.scheduling.slots import DayOfWeek


def test_profile_request_requires_specialization() -> None:
    with pytest.raises(ValidationError):
        DoctorProfileRequest(specialization='  ')


def test_create_profile_for_doctor_without_one(db) -> None:
    user = User(email='chase@clinic.test', hashed_password='x', full_name='Robert Chase', role=ROLE_DOCTOR)
    db.add(user)
    db.commit()

    response = create_profile(
        DoctorProfileRequest(specialization='Surgery', consultation_fee=90),
        session=SessionContext(user=user),
        db=db,
    )

    assert response.id == user.id
    assert response.specialization == 'Surgery'
    assert response.is_available is True


def test_create_profile_twice_conflicts(db, doctor_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_profile(DoctorProfileRequest(specialization='Surgery'), session=doctor_session, db=db)

    assert exception_info.value.status_code == 409


def test_update_profile_toggles_availability(db, doctor_session) -> None:
    response = update_profile(
        DoctorProfileUpdateRequest(is_available=False, bio='Diagnostics lead'),
        session=doctor_session,
        db=db,
    )

    assert response.is_available is False
    assert response.bio == 'Diagnostics lead'
    assert response.specialization == 'Diagnostics'


def test_update_profile_ignores_nulls_for_required_fields(db, doctor_session) -> None:
    response = update_profile(
        DoctorProfileUpdateRequest(is_available=None, specialization=None, bio=None),
        session=doctor_session,
        db=db,
    )

    assert response.is_available is True
    assert response.specialization == 'Diagnostics'
    assert response.bio is None


def test_search_doctors_filters_by_specialization_and_availability(db, doctor) -> None:
    assert [d.id for d in search_doctors(query=None, specialization='diag', available_only=True, limit=20, db=db)] == [
        doctor.id
    ]
    assert search_doctors(query=None, specialization='cardio', available_only=False, limit=20, db=db) == []

    doctor.is_available = False
    db.commit()

    assert search_doctors(query='house', specialization=None, available_only=True, limit=20, db=db) == []


def test_get_doctor_details_includes_active_schedules(db, doctor) -> None:
    db.add_all([
        DoctorSchedule(doctor_id=doctor.id, day_of_week=DayOfWeek.FRIDAY, start_time=time(9, 0),
                       end_time=time(12, 0), slot_duration_minutes=30, is_active=True),
        DoctorSchedule(doctor_id=doctor.id, day_of_week=DayOfWeek.MONDAY, start_time=time(9, 0),
                       end_time=time(12, 0), slot_duration_minutes=30, is_active=False),
    ])
    db.commit()

    details = get_doctor_details(doctor_id=doctor.id, db=db)

    assert details.full_name == 'Gregory House'
    assert [schedule.day_of_week for schedule in details.schedules] == [DayOfWeek.FRIDAY]


def test_get_doctor_details_for_unknown_doctor(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_doctor_details(doctor_id=12345, db=db)

    assert exception_info.value.status_code == 404
