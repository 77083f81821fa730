import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medibook.database import get_db
from medibook.models.doctor import Doctor
from medibook.routes.common import database_unavailable, ensure_database_ready
from medibook.services.availability import compute_doctor_slots

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)


class SlotResponse(BaseModel):
    time: str
    available: bool


class AvailableSlotsResponse(BaseModel):
    success: bool
    data: list[SlotResponse] | None = None
    error: str | None = None


@router.get('/doctors/{doctor_id}/slots', response_model=AvailableSlotsResponse)
def get_available_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        slots = compute_doctor_slots(db, doctor, slot_date)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return AvailableSlotsResponse(
        success=True,
        data=[SlotResponse(**slot.as_dict()) for slot in slots],
    )
