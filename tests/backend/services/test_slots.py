from datetime import date, datetime, time, timedelta

import pytest

from backend.services.errors import DoctorUnavailable, InvalidInput, OutsideWindow
from backend.services.slots import (
    INVALID_CONFIGURATION,
    NOT_A_WORKING_DAY,
    AvailabilityWindow,
    Slot,
    Unavailable,
    WeeklyAvailability,
    available_slots,
    check_slot_in_window,
    filter_booked_slots,
    generate_slots,
    parse_wire_date,
    parse_wire_time,
    resolve_window,
)

MONDAY = date(2026, 1, 5)
SUNDAY = date(2026, 1, 4)
WEEKDAYS_NINE_TO_NOON = WeeklyAvailability(
    days=frozenset({'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday'}),
    start_time='09:00',
    end_time='12:00',
)


def test_resolve_window_spans_start_to_end_on_working_day() -> None:
    window = resolve_window(WEEKDAYS_NINE_TO_NOON, MONDAY)

    assert window == AvailabilityWindow(start=datetime(2026, 1, 5, 9, 0), end=datetime(2026, 1, 5, 12, 0))


def test_resolve_window_rejects_day_off() -> None:
    assert resolve_window(WEEKDAYS_NINE_TO_NOON, SUNDAY) == Unavailable(NOT_A_WORKING_DAY)


def test_resolve_window_uses_calendar_weekday_across_year_boundary() -> None:
    thursday_only = WeeklyAvailability(days=frozenset({'Thursday'}), start_time='10:00', end_time='11:00')

    # 2026-12-31 is a Thursday, 2027-01-01 a Friday.
    assert isinstance(resolve_window(thursday_only, date(2026, 12, 31)), AvailabilityWindow)
    assert resolve_window(thursday_only, date(2027, 1, 1)) == Unavailable(NOT_A_WORKING_DAY)


def test_resolve_window_checks_every_day_of_the_week() -> None:
    for offset in range(7):
        on_date = MONDAY + timedelta(days=offset)
        result = resolve_window(WEEKDAYS_NINE_TO_NOON, on_date)
        if offset < 5:
            assert isinstance(result, AvailabilityWindow)
        else:
            assert result == Unavailable(NOT_A_WORKING_DAY)


@pytest.mark.parametrize(
    ('start_time', 'end_time'),
    [
        ('12:00', '09:00'),
        ('09:00', '09:00'),
        ('9am', '12:00'),
        ('09:00', None),
        ('24:00', '25:00'),
    ],
)
def test_resolve_window_rejects_invalid_configuration(start_time, end_time) -> None:
    availability = WeeklyAvailability(days=frozenset({'Monday'}), start_time=start_time, end_time=end_time)

    assert resolve_window(availability, MONDAY) == Unavailable(INVALID_CONFIGURATION)


def test_resolve_window_accepts_time_objects() -> None:
    availability = WeeklyAvailability(days=frozenset({'Monday'}), start_time=time(14, 0), end_time=time(15, 30))

    window = resolve_window(availability, MONDAY)

    assert window.start == datetime(2026, 1, 5, 14, 0)
    assert window.end == datetime(2026, 1, 5, 15, 30)


def test_generate_slots_splits_hour_into_two_half_hour_slots() -> None:
    slots = generate_slots(datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 10, 0))

    assert slots == [
        Slot(start=datetime(2026, 1, 5, 9, 0), end=datetime(2026, 1, 5, 9, 30)),
        Slot(start=datetime(2026, 1, 5, 9, 30), end=datetime(2026, 1, 5, 10, 0)),
    ]


def test_generate_slots_returns_nothing_for_window_shorter_than_a_slot() -> None:
    assert generate_slots(datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 9, 20)) == []


def test_generate_slots_drops_trailing_partial_slot() -> None:
    slots = generate_slots(datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 10, 15))

    assert [slot.start.time() for slot in slots] == [time(9, 0), time(9, 30)]
    assert slots[-1].end == datetime(2026, 1, 5, 10, 0)


def test_generate_slots_is_deterministic() -> None:
    start, end = datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 17, 0)

    assert generate_slots(start, end) == generate_slots(start, end)
    assert len(generate_slots(start, end)) == 16


def test_filter_booked_slots_removes_matching_start_times() -> None:
    slots = generate_slots(datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 10, 0))

    remaining = filter_booked_slots(slots, {time(9, 30)})

    assert remaining == [Slot(start=datetime(2026, 1, 5, 9, 0), end=datetime(2026, 1, 5, 9, 30))]


@pytest.mark.parametrize('start_time', [time(9, 15), time(10, 1), time(11, 29)])
def test_check_slot_in_window_rejects_start_off_the_slot_grid(start_time: time) -> None:
    with pytest.raises(OutsideWindow):
        check_slot_in_window(WEEKDAYS_NINE_TO_NOON, MONDAY, start_time)


def test_check_slot_in_window_grid_follows_window_start() -> None:
    availability = WeeklyAvailability(days=frozenset({'Monday'}), start_time='09:10', end_time='10:40')

    assert check_slot_in_window(availability, MONDAY, time(9, 40)).start == datetime(2026, 1, 5, 9, 40)
    with pytest.raises(OutsideWindow):
        check_slot_in_window(availability, MONDAY, time(9, 30))


def test_available_slots_is_empty_on_day_off() -> None:
    assert available_slots(WEEKDAYS_NINE_TO_NOON, SUNDAY, set()) == []


def test_every_listed_slot_passes_the_window_check() -> None:
    for slot in available_slots(WEEKDAYS_NINE_TO_NOON, MONDAY, {time(10, 0)}):
        assert check_slot_in_window(WEEKDAYS_NINE_TO_NOON, MONDAY, slot.start.time()) == slot


def test_check_slot_in_window_rejects_day_off() -> None:
    with pytest.raises(DoctorUnavailable):
        check_slot_in_window(WEEKDAYS_NINE_TO_NOON, SUNDAY, time(9, 0))


@pytest.mark.parametrize('start_time', [time(8, 30), time(11, 45), time(12, 0)])
def test_check_slot_in_window_rejects_slot_outside_window(start_time: time) -> None:
    with pytest.raises(OutsideWindow):
        check_slot_in_window(WEEKDAYS_NINE_TO_NOON, MONDAY, start_time)


def test_check_slot_in_window_accepts_last_full_slot() -> None:
    slot = check_slot_in_window(WEEKDAYS_NINE_TO_NOON, MONDAY, time(11, 30))

    assert slot.end == datetime(2026, 1, 5, 12, 0)


def test_parse_wire_date_and_time_accept_strict_formats() -> None:
    assert parse_wire_date('2026-01-05') == MONDAY
    assert parse_wire_time('23:59') == time(23, 59)


@pytest.mark.parametrize('value', ['2026-1-5', '05/01/2026', '2026-02-30', '', '2026-01-05T09:00', '2026-01-05\n'])
def test_parse_wire_date_rejects_malformed_input(value: str) -> None:
    with pytest.raises(InvalidInput):
        parse_wire_date(value)


@pytest.mark.parametrize('value', ['9:00', '24:00', '09:60', '09:00:00', 'noon', '09:00\n'])
def test_parse_wire_time_rejects_malformed_input(value: str) -> None:
    with pytest.raises(InvalidInput):
        parse_wire_time(value)
