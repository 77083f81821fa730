import os
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from medibook.auth.dependencies import SessionContext  # noqa: E402
from medibook.auth.passwords import hash_password  # noqa: E402
from medibook.database import Base  # noqa: E402
from medibook.models import appointment, notification, schedule  # noqa: E402,F401
from medibook.models.doctor import Doctor  # noqa: E402
from medibook.models.user import ROLE_DOCTOR, ROLE_PATIENT, User  # noqa: E402
from medibook.scheduling.slots import DayOfWeek  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _add_user(db, email: str, role: str, full_name: str) -> User:
    user = User(email=email, hashed_password=hash_password('password123'), full_name=full_name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor(db) -> Doctor:
    user = _add_user(db, 'house@clinic.test', ROLE_DOCTOR, 'Gregory House')
    profile = Doctor(
        id=user.id,
        specialization='Diagnostics',
        consultation_fee=150.0,
        is_available=True,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def doctor_session(db, doctor) -> SessionContext:
    user = db.query(User).filter(User.id == doctor.id).first()
    return SessionContext(user=user, doctor=doctor)


@pytest.fixture
def patient(db) -> User:
    return _add_user(db, 'patient@example.test', ROLE_PATIENT, 'Pat Patient')


@pytest.fixture
def patient_session(patient) -> SessionContext:
    return SessionContext(user=patient)


@pytest.fixture
def other_patient_session(db) -> SessionContext:
    return SessionContext(user=_add_user(db, 'other@example.test', ROLE_PATIENT, 'Olive Other'))


@pytest.fixture
def upcoming_date():
    """Return the next date (at least one day out) falling on the given weekday."""

    def _upcoming(day: DayOfWeek, weeks_ahead: int = 0) -> date:
        candidate = date.today() + timedelta(days=1)
        while DayOfWeek.from_date(candidate) != day:
            candidate += timedelta(days=1)
        return candidate + timedelta(weeks=weeks_ahead)

    return _upcoming
