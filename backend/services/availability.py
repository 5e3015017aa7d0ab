"""Interval arithmetic behind slot generation and booking checks.

Everything here is pure: callers load working hours, appointments and
schedule blocks from the database and pass plain datetimes in.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from backend.core.errors import InvalidStatusTransitionError
from backend.models.appointment import AppointmentStatus

SLOT_STRIDE_MINUTES = 30
DEFAULT_SLOT_DURATION_MINUTES = 30

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


class TimeSlot(NamedTuple):
    start_time: datetime
    end_time: datetime


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap: [a, b) and [c, d) share time iff a < d and c < b."""
    return start_a < end_b and start_b < end_a


def day_of_week(value: date) -> int:
    """Weekday index with 0 = Sunday, the convention working hours are stored in."""
    return (value.weekday() + 1) % 7


def minute_of_day(value: datetime | time) -> int:
    return value.hour * 60 + value.minute


def day_bounds(value: date) -> tuple[datetime, datetime]:
    start = datetime.combine(value, time.min)
    return start, start + timedelta(days=1)


def generate_slots(
    target_date: date,
    work_start: time,
    work_end: time,
    duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES,
    stride_minutes: int = SLOT_STRIDE_MINUTES,
) -> list[TimeSlot]:
    slots: list[TimeSlot] = []
    duration = timedelta(minutes=duration_minutes)
    stride = timedelta(minutes=stride_minutes)

    day_end = datetime.combine(target_date, work_end)
    current = datetime.combine(target_date, work_start)

    while current < day_end:
        slot_end = current + duration
        if slot_end <= day_end:
            slots.append(TimeSlot(current, slot_end))
        current += stride

    return slots


def remove_busy_slots(
    slots: Iterable[TimeSlot],
    busy_ranges: Iterable[tuple[datetime, datetime]],
) -> list[TimeSlot]:
    busy = list(busy_ranges)
    return [
        slot for slot in slots
        if not any(overlaps(slot.start_time, slot.end_time, busy_start, busy_end) for busy_start, busy_end in busy)
    ]


def is_within_working_hours(start: datetime, end: datetime, work_start: time, work_end: time) -> bool:
    # Compares minute-of-day only; ranges crossing midnight are not supported.
    return (
        minute_of_day(start) >= minute_of_day(work_start)
        and minute_of_day(end) <= minute_of_day(work_end)
    )


def validate_status_transition(current: AppointmentStatus, requested: AppointmentStatus) -> None:
    current = AppointmentStatus(current)
    requested = AppointmentStatus(requested)
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f'Invalid status transition: {current.value} -> {requested.value}'
        )


def as_naive(value: datetime) -> datetime:
    """Stored datetimes are naive local time; aware inputs are converted to it."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
