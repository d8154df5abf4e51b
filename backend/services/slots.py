"""Slot computation for doctor availability.

A doctor's recurring weekly availability is resolved against a calendar date
into a concrete window, the window is cut into fixed 30-minute slots, and
slots whose start is already booked are dropped. Everything here is pure.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from backend.services.errors import DoctorUnavailable, InvalidInput, OutsideWindow

SLOT_DURATION = timedelta(minutes=30)
WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

NOT_A_WORKING_DAY = 'not a working day'
INVALID_CONFIGURATION = 'invalid availability configuration'

_DATE_PATTERN = re.compile(r'\d{4}-\d{2}-\d{2}')
_TIME_PATTERN = re.compile(r'([01][0-9]|2[0-3]):[0-5][0-9]')


@dataclass(frozen=True)
class WeeklyAvailability:
    days: frozenset[str]
    start_time: str | time | None
    end_time: str | time | None


@dataclass(frozen=True)
class AvailabilityWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Unavailable:
    reason: str


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime


def parse_wire_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` date."""
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
        raise InvalidInput('Invalid date format (use YYYY-MM-DD).')
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInput('Invalid date format (use YYYY-MM-DD).') from exc


def parse_wire_time(value: str) -> time:
    """Parse a strict 24-hour ``HH:mm`` time."""
    if not isinstance(value, str) or not _TIME_PATTERN.fullmatch(value):
        raise InvalidInput('Invalid time format (use HH:mm).')
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def format_wire_time(value: time) -> str:
    return value.strftime('%H:%M')


def _coerce_time(value: str | time | None) -> time | None:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str) and _TIME_PATTERN.match(value):
        return parse_wire_time(value)
    return None


def resolve_window(availability: WeeklyAvailability, on_date: date) -> AvailabilityWindow | Unavailable:
    weekday_name = WEEKDAYS[on_date.weekday()]
    if weekday_name not in availability.days:
        return Unavailable(NOT_A_WORKING_DAY)

    start_time = _coerce_time(availability.start_time)
    end_time = _coerce_time(availability.end_time)
    if start_time is None or end_time is None:
        return Unavailable(INVALID_CONFIGURATION)

    window_start = datetime.combine(on_date, start_time)
    window_end = datetime.combine(on_date, end_time)
    if window_start >= window_end:
        return Unavailable(INVALID_CONFIGURATION)

    return AvailabilityWindow(start=window_start, end=window_end)


def generate_slots(
    window_start: datetime,
    window_end: datetime,
    slot_duration: timedelta = SLOT_DURATION,
) -> list[Slot]:
    slots: list[Slot] = []
    current = window_start

    while current + slot_duration <= window_end:
        slots.append(Slot(start=current, end=current + slot_duration))
        current += slot_duration

    return slots


def filter_booked_slots(candidate_slots: Iterable[Slot], booked_start_times: Iterable[time]) -> list[Slot]:
    # Bookings all sit on the same grid, so identity of the start time is enough.
    booked = {booked_start.replace(second=0, microsecond=0) for booked_start in booked_start_times}
    return [slot for slot in candidate_slots if slot.start.time() not in booked]


def available_slots(
    availability: WeeklyAvailability,
    on_date: date,
    booked_start_times: Iterable[time],
) -> list[Slot]:
    window = resolve_window(availability, on_date)
    if isinstance(window, Unavailable):
        return []
    return filter_booked_slots(generate_slots(window.start, window.end), booked_start_times)


def check_slot_in_window(availability: WeeklyAvailability, on_date: date, start_time: time) -> Slot:
    """Return the slot starting at ``start_time`` if it fits the doctor's window.

    Raises ``DoctorUnavailable`` when the doctor does not work that date and
    ``OutsideWindow`` when the slot starts before or ends after the window, or
    does not start on the window's 30-minute grid.
    """
    window = resolve_window(availability, on_date)
    if isinstance(window, Unavailable):
        raise DoctorUnavailable(f'Doctor is unavailable on {on_date.isoformat()}: {window.reason}.')

    slot_start = datetime.combine(on_date, start_time)
    slot_end = slot_start + SLOT_DURATION
    if slot_start < window.start or slot_end > window.end:
        raise OutsideWindow(
            f'Requested time must fall between {format_wire_time(window.start.time())} '
            f'and {format_wire_time(window.end.time())}.'
        )
    if (slot_start - window.start) % SLOT_DURATION != timedelta(0):
        raise OutsideWindow(
            f'Requested time must start on a {int(SLOT_DURATION.total_seconds() // 60)}-minute slot '
            f'from {format_wire_time(window.start.time())}.'
        )

    return Slot(start=slot_start, end=slot_end)
