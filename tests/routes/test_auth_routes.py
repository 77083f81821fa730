import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from medibook.auth import jwt_handler
from medibook.auth.dependencies import get_session_context, require_role
from medibook.routes.auth_routes import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    change_password,
    login,
    register,
)


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_register_request_normalizes_email_and_role() -> None:
    request = RegisterRequest(
        email=' NEW.Patient@Example.TEST ',
        password='longenough',
        full_name=' New Patient ',
        role=' Patient ',
    )

    assert request.email == 'new.patient@example.test'
    assert request.full_name == 'New Patient'
    assert request.role == 'patient'


@pytest.mark.parametrize(
    'overrides',
    [
        {'email': 'not-an-email'},
        {'password': 'short'},
        {'full_name': '   '},
        {'role': 'admin'},
    ],
)
def test_register_request_rejects_invalid_input(overrides: dict) -> None:
    payload = {'email': 'a@b.test', 'password': 'longenough', 'full_name': 'A B', **overrides}

    with pytest.raises(ValidationError):
        RegisterRequest(**payload)


def test_register_hashes_password_and_rejects_duplicates(db) -> None:
    data = RegisterRequest(email='wilson@clinic.test', password='longenough', full_name='James Wilson', role='doctor')

    user = register(data, db=db)

    assert user.id is not None
    assert user.role == 'doctor'
    assert user.hashed_password != 'longenough'

    with pytest.raises(HTTPException) as exception_info:
        register(data, db=db)

    assert exception_info.value.status_code == 409


def test_login_returns_token_for_valid_credentials(db, patient) -> None:
    response = login(LoginRequest(email='PATIENT@example.test', password='password123'), db=db)

    payload = jwt_handler.decode_access_token(response.access_token)
    assert payload['sub'] == str(patient.id)
    assert payload['role'] == 'patient'
    assert response.token_type == 'bearer'


def test_login_rejects_wrong_password(db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email='patient@example.test', password='wrong-password'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid email or password.'


def test_session_context_loads_doctor_profile(db, doctor) -> None:
    token = jwt_handler.create_access_token(subject=str(doctor.id), role='doctor')

    session = get_session_context(credentials=_credentials(token), db=db)

    assert session.is_doctor
    assert session.doctor.id == doctor.id
    assert session.require_doctor_profile() is session.doctor


def test_session_context_for_patient_has_no_doctor_profile(db, patient) -> None:
    token = jwt_handler.create_access_token(subject=str(patient.id), role='patient')

    session = get_session_context(credentials=_credentials(token), db=db)

    assert session.is_patient
    assert session.doctor is None
    with pytest.raises(HTTPException) as exception_info:
        session.require_doctor_profile()
    assert exception_info.value.status_code == 403


@pytest.mark.parametrize(
    ('token_factory', 'detail'),
    [
        (lambda: 'not-a-jwt', 'Invalid token'),
        (lambda: jwt_handler.create_access_token(subject='abc', role='patient'), 'Invalid token subject'),
        (lambda: jwt_handler.create_access_token(subject='999', role='patient'), 'User not found'),
        (lambda: jwt_handler.create_access_token(subject='1', role='patient', expires_minutes=-5), 'Invalid token'),
    ],
)
def test_session_context_rejects_bad_tokens(db, token_factory, detail: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_session_context(credentials=_credentials(token_factory()), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == detail


def test_require_role_blocks_other_roles(patient_session, doctor_session) -> None:
    doctors_only = require_role('doctor')

    assert doctors_only(session=doctor_session) is doctor_session
    with pytest.raises(HTTPException) as exception_info:
        doctors_only(session=patient_session)
    assert exception_info.value.status_code == 403


def test_change_password_requires_current_password(db, patient_session) -> None:
    with pytest.raises(HTTPException) as exception_info:
        change_password(
            ChangePasswordRequest(current_password='nope', new_password='brand-new-pass'),
            session=patient_session,
            db=db,
        )

    assert exception_info.value.detail == 'Current password is incorrect.'


def test_change_password_allows_login_with_new_password(db, patient_session) -> None:
    change_password(
        ChangePasswordRequest(current_password='password123', new_password='brand-new-pass'),
        session=patient_session,
        db=db,
    )

    response = login(LoginRequest(email='patient@example.test', password='brand-new-pass'), db=db)
    assert response.role == 'patient'
