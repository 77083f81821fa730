import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.auth.dependencies import SessionContext, require_role
from medibook.database import get_db
from medibook.models.doctor import Doctor
from medibook.models.schedule import DoctorSchedule
from medibook.models.user import ROLE_DOCTOR, User
from medibook.routes.common import database_unavailable, ensure_database_ready
from medibook.routes.schedule_routes import ScheduleResponse

router = APIRouter(tags=['doctors'])

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50
# Explicit nulls on these leave the stored value untouched.
REQUIRED_PROFILE_FIELDS = ('specialization', 'is_available')


class DoctorProfileRequest(BaseModel):
    specialization: str
    qualification: str | None = None
    license_number: str | None = None
    experience_years: int | None = Field(default=None, ge=0, le=80)
    consultation_fee: float | None = Field(default=None, ge=0)
    bio: str | None = None
    clinic_address: str | None = None

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Specialization is required.')
        return normalized


class DoctorProfileUpdateRequest(BaseModel):
    specialization: str | None = None
    qualification: str | None = None
    license_number: str | None = None
    experience_years: int | None = Field(default=None, ge=0, le=80)
    consultation_fee: float | None = Field(default=None, ge=0)
    bio: str | None = None
    clinic_address: str | None = None
    is_available: bool | None = None


class DoctorResponse(BaseModel):
    id: int
    full_name: str | None = None
    email: str | None = None
    specialization: str | None = None
    qualification: str | None = None
    experience_years: int | None = None
    consultation_fee: float | None = None
    bio: str | None = None
    clinic_address: str | None = None
    is_available: bool


class DoctorDetailsResponse(DoctorResponse):
    schedules: list[ScheduleResponse] = []


def to_doctor_response(doctor: Doctor, user: User | None) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        full_name=user.full_name if user else None,
        email=user.email if user else None,
        specialization=doctor.specialization,
        qualification=doctor.qualification,
        experience_years=doctor.experience_years,
        consultation_fee=doctor.consultation_fee,
        bio=doctor.bio,
        clinic_address=doctor.clinic_address,
        is_available=bool(doctor.is_available),
    )


@router.post('/profile', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_profile(
    data: DoctorProfileRequest,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    if session.doctor is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Doctor profile already exists.',
        )

    try:
        doctor = Doctor(id=session.user_id, is_available=True, **data.model_dump())
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        logger.info('Created doctor profile %s', doctor.id)

        return to_doctor_response(doctor, session.user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/profile', response_model=DoctorResponse)
def update_profile(
    data: DoctorProfileUpdateRequest,
    session: SessionContext = Depends(require_role(ROLE_DOCTOR)),
    db: Session = Depends(get_db),
):
    session.require_doctor_profile()

    try:
        doctor = db.query(Doctor).filter(Doctor.id == session.user_id).first()
        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is None and field_name in REQUIRED_PROFILE_FIELDS:
                continue
            if field_name == 'specialization' and value is not None and not value.strip():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Specialization is required.',
                )
            setattr(doctor, field_name, value)

        db.commit()
        db.refresh(doctor)

        return to_doctor_response(doctor, session.user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/', response_model=list[DoctorResponse])
def search_doctors(
    query: str | None = Query(default=None),
    specialization: str | None = Query(default=None),
    available_only: bool = Query(default=False),
    limit: int = Query(default=20, ge=1, le=MAX_SEARCH_RESULTS),
    db: Session = Depends(get_db),
):
    try:
        doctors_query = db.query(Doctor, User).join(User, User.id == Doctor.id)

        if specialization and specialization.strip():
            doctors_query = doctors_query.filter(Doctor.specialization.ilike(f'%{specialization.strip()}%'))

        if query and query.strip():
            pattern = f'%{query.strip()}%'
            doctors_query = doctors_query.filter(
                User.full_name.ilike(pattern) | Doctor.specialization.ilike(pattern)
            )

        if available_only:
            doctors_query = doctors_query.filter(Doctor.is_available.is_(True))

        rows = doctors_query.order_by(User.full_name.asc()).limit(limit).all()

        return [to_doctor_response(doctor, user) for doctor, user in rows]
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{doctor_id}', response_model=DoctorDetailsResponse)
def get_doctor_details(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        row = db.query(Doctor, User).join(User, User.id == Doctor.id).filter(Doctor.id == doctor_id).first()
        if row is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        doctor, user = row
        schedules = db.query(DoctorSchedule).filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.is_active.is_(True),
        ).order_by(DoctorSchedule.day_of_week.asc(), DoctorSchedule.start_time.asc()).all()

        return DoctorDetailsResponse(
            **to_doctor_response(doctor, user).model_dump(),
            schedules=[ScheduleResponse.model_validate(schedule) for schedule in schedules],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
