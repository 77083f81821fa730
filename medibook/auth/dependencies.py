from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from medibook.auth import jwt_handler
from medibook.database import get_db
from medibook.models.doctor import Doctor
from medibook.models.user import ROLE_DOCTOR, ROLE_PATIENT, User

security = HTTPBearer()


@dataclass
class SessionContext:
    """Authenticated user, their role and, for doctors, their profile."""

    user: User
    doctor: Doctor | None = None

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT

    def require_doctor_profile(self) -> Doctor:
        if not self.is_doctor or self.doctor is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='User must be a doctor with a profile to perform this action.',
            )
        return self.doctor


def get_session_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> SessionContext:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid token') from exc

    subject = payload.get('sub')
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid token subject')

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='User not found')

    doctor = None
    if user.role == ROLE_DOCTOR:
        doctor = db.query(Doctor).filter(Doctor.id == user.id).first()

    return SessionContext(user=user, doctor=doctor)


def require_role(*roles: str):
    def dependency(session: SessionContext = Depends(get_session_context)) -> SessionContext:
        if session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='You do not have permission to perform this action.',
            )
        return session

    return dependency
