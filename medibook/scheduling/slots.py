"""Bookable slot computation for a doctor's weekly schedule.

Turns a doctor's recurring weekly intervals plus the bookings already made
for one calendar date into the ordered list of candidate start times, each
flagged available or taken. Everything here is pure: no database access, no
clock reads unless the caller passes ``now``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import IntEnum
from typing import Any, Iterable

from medibook.core import config

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
SLOT_RELEASING_STATUSES = frozenset({'cancelled', 'rejected'})


class DayOfWeek(IntEnum):
    """Day index stored on schedules. Sunday is 0, unlike ``date.weekday()``."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_date(cls, value: date) -> 'DayOfWeek':
        return cls((value.weekday() + 1) % 7)


@dataclass(frozen=True)
class WeeklySchedule:
    day_of_week: int
    start_time: Any
    end_time: Any
    slot_duration_minutes: int | None = None
    is_active: bool = True
    id: int | None = None


@dataclass(frozen=True)
class Booking:
    appointment_time: Any
    status: str | None = None


@dataclass(frozen=True)
class Slot:
    time: str
    available: bool

    def as_dict(self) -> dict:
        return {'time': self.time, 'available': self.available}


def parse_clock_time(value: Any) -> time:
    """Accept a ``time`` or an ``HH:MM`` / ``HH:MM:SS`` string."""
    if isinstance(value, time):
        return value

    if not isinstance(value, str):
        raise ValueError(f'Unsupported time value: {value!r}')

    parts = value.strip().split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ValueError(f'Malformed time string: {value!r}')

    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def format_clock_time(value: Any) -> str:
    parsed = parse_clock_time(value)
    return f'{parsed.hour:02d}:{parsed.minute:02d}'


def _minutes_of(value: Any) -> int:
    parsed = parse_clock_time(value)
    return parsed.hour * 60 + parsed.minute


def _format_minutes(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def _slot_duration(value: Any) -> int:
    if value is None:
        return config.DEFAULT_SLOT_DURATION_MINUTES
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f'Slot duration must be an integer, got {value!r}')
    if value <= 0:
        raise ValueError(f'Slot duration must be positive, got {value}')
    return value


def _booked_minutes(existing_bookings: Iterable[Any]) -> set[int]:
    booked: set[int] = set()
    for booking in existing_bookings:
        status = getattr(booking, 'status', None)
        if status in SLOT_RELEASING_STATUSES:
            continue
        try:
            booked.add(_minutes_of(booking.appointment_time))
        except ValueError:
            logger.warning('Ignoring booking with malformed time %r', booking.appointment_time)
    return booked


def _schedule_slot_starts(schedule: Any) -> list[int]:
    start = _minutes_of(schedule.start_time)
    end = _minutes_of(schedule.end_time)
    duration = _slot_duration(schedule.slot_duration_minutes)

    if end <= start:
        raise ValueError(f'End time {_format_minutes(end)} is not after start time {_format_minutes(start)}')

    return list(range(start, min(end, MINUTES_PER_DAY), duration))


def generate_slots(
    doctor_id: Any,
    target_date: date,
    schedules: Iterable[Any],
    existing_bookings: Iterable[Any],
    *,
    now: datetime | None = None,
    doctor_available: bool = True,
    booking_window_days: int | None = None,
) -> list[Slot]:
    """Return the ordered slots a doctor offers on ``target_date``.

    ``schedules`` and ``existing_bookings`` may be ORM rows or the dataclasses
    above; only attribute access is used. A schedule with bad times or
    duration contributes nothing instead of failing the whole day. When two
    schedules yield the same start time the slot is available only if every
    contributor says so.

    The optional keyword arguments move booking policy in from the caller:
    an unavailable doctor gets no slots, ``now`` removes past dates (and,
    with ``booking_window_days``, dates beyond the window) and marks slots on
    today that have already started as unavailable.
    """
    if not doctor_available:
        return []

    if now is not None:
        today = now.date()
        if target_date < today:
            return []
        if booking_window_days is not None and target_date > today + timedelta(days=booking_window_days):
            return []

    day_of_week = DayOfWeek.from_date(target_date)
    matching = [
        schedule for schedule in schedules
        if schedule.is_active and schedule.day_of_week == day_of_week
    ]
    if not matching:
        return []

    booked = _booked_minutes(existing_bookings)
    merged: dict[int, bool] = {}

    for schedule in matching:
        try:
            starts = _schedule_slot_starts(schedule)
        except ValueError as exc:
            logger.warning(
                'Skipping invalid schedule %s for doctor %s: %s',
                getattr(schedule, 'id', None),
                doctor_id,
                exc,
            )
            continue

        for minutes in starts:
            available = minutes not in booked
            merged[minutes] = merged.get(minutes, True) and available

    if now is not None and target_date == now.date():
        for minutes in merged:
            slot_start = datetime.combine(target_date, time(minutes // 60, minutes % 60), tzinfo=now.tzinfo)
            if slot_start <= now:
                merged[minutes] = False

    return [Slot(time=_format_minutes(minutes), available=merged[minutes]) for minutes in sorted(merged)]
