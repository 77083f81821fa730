"""Loads schedules and bookings for a doctor/date and runs the slot generator."""

from datetime import date, datetime

from sqlalchemy.orm import Session

from medibook.core import config
from medibook.models.appointment import STATUS_CANCELLED, STATUS_REJECTED, Appointment
from medibook.models.doctor import Doctor
from medibook.models.schedule import DoctorSchedule
from medibook.scheduling.slots import DayOfWeek, Slot, generate_slots


def fetch_active_schedules(db: Session, doctor_id: int, target_date: date) -> list[DoctorSchedule]:
    return db.query(DoctorSchedule).filter(
        DoctorSchedule.doctor_id == doctor_id,
        DoctorSchedule.day_of_week == int(DayOfWeek.from_date(target_date)),
        DoctorSchedule.is_active.is_(True),
    ).all()


def fetch_active_bookings(
    db: Session,
    doctor_id: int,
    target_date: date,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == target_date,
        Appointment.status.not_in([STATUS_CANCELLED, STATUS_REJECTED]),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.all()


def compute_doctor_slots(
    db: Session,
    doctor: Doctor,
    target_date: date,
    now: datetime | None = None,
    exclude_appointment_id: int | None = None,
) -> list[Slot]:
    """Slots for ``doctor`` on ``target_date`` with booking policy applied.

    ``exclude_appointment_id`` frees the slot held by an appointment that is
    being moved, so rescheduling within the same day works.
    """
    schedules = fetch_active_schedules(db, doctor.id, target_date)
    if not schedules:
        return []

    bookings = fetch_active_bookings(db, doctor.id, target_date, exclude_appointment_id)
    return generate_slots(
        doctor.id,
        target_date,
        schedules,
        bookings,
        now=now or datetime.now(),
        doctor_available=bool(doctor.is_available),
        booking_window_days=config.BOOKING_WINDOW_DAYS,
    )
