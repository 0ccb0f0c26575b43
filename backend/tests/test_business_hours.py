from __future__ import annotations

import datetime as dt
from types import SimpleNamespace

import pytest

from sla_engine.services.sla.business_hours import (
    ALL_DAYS,
    BusinessHours,
    add_business_minutes,
    elapsed_business_minutes,
    is_within_business_hours,
    next_business_start,
    parse_days_of_week,
    parse_minute_of_day,
    profile_for_sla,
    remaining_business_minutes,
)

UTC = dt.timezone.utc
WEEKDAYS_9_TO_5 = BusinessHours(days_of_week=frozenset({1, 2, 3, 4, 5}), start_minute=9 * 60, end_minute=17 * 60)


def _at(day: int, hour: int, minute: int = 0) -> dt.datetime:
    # January 2024: the 1st is a Monday.
    return dt.datetime(2024, 1, day, hour, minute, tzinfo=UTC)


def test_monday_morning_plus_four_hours_lands_same_day() -> None:
    assert add_business_minutes(_at(1, 9), 240, WEEKDAYS_9_TO_5) == _at(1, 13)


def test_friday_afternoon_rolls_over_weekend() -> None:
    assert add_business_minutes(_at(5, 16, 30), 120, WEEKDAYS_9_TO_5) == _at(8, 10, 30)


def test_start_outside_hours_snaps_before_consuming_minutes() -> None:
    assert add_business_minutes(_at(6, 12), 30, WEEKDAYS_9_TO_5) == _at(8, 9, 30)
    assert add_business_minutes(_at(1, 7), 60, WEEKDAYS_9_TO_5) == _at(1, 10)


def test_minutes_ending_exactly_at_close_stay_on_that_day() -> None:
    assert add_business_minutes(_at(1, 16), 60, WEEKDAYS_9_TO_5) == _at(1, 17)


@pytest.mark.parametrize("profile", [None, BusinessHours(is_24x7=True)])
def test_round_the_clock_profiles_use_calendar_time(profile) -> None:
    start = _at(6, 23, 15)
    assert add_business_minutes(start, 135, profile) == start + dt.timedelta(minutes=135)
    assert elapsed_business_minutes(start, start + dt.timedelta(minutes=135), profile) == 135
    assert elapsed_business_minutes(start, start - dt.timedelta(minutes=5), profile) == 0
    assert next_business_start(start, profile) == start
    assert is_within_business_hours(start, profile) is True


@pytest.mark.parametrize("minutes", [1, 59, 405, 480, 481, 2000])
def test_elapsed_inverts_add_for_in_hours_start(minutes: int) -> None:
    start = _at(1, 10, 15)
    end = add_business_minutes(start, minutes, WEEKDAYS_9_TO_5)
    assert elapsed_business_minutes(start, end, WEEKDAYS_9_TO_5) == pytest.approx(minutes)


@pytest.mark.parametrize(
    "instant",
    [_at(1, 7), _at(1, 12), _at(1, 17), _at(1, 22, 30), _at(5, 18), _at(6, 10), _at(7, 23, 59)],
)
def test_next_business_start_is_always_within_hours(instant: dt.datetime) -> None:
    start = next_business_start(instant, WEEKDAYS_9_TO_5)
    assert start >= instant
    assert is_within_business_hours(start, WEEKDAYS_9_TO_5)


def test_next_business_start_cases() -> None:
    assert next_business_start(_at(1, 12), WEEKDAYS_9_TO_5) == _at(1, 12)
    assert next_business_start(_at(1, 7), WEEKDAYS_9_TO_5) == _at(1, 9)
    assert next_business_start(_at(1, 18), WEEKDAYS_9_TO_5) == _at(2, 9)
    assert next_business_start(_at(6, 10), WEEKDAYS_9_TO_5) == _at(8, 9)


def test_window_end_is_exclusive() -> None:
    assert is_within_business_hours(_at(1, 9), WEEKDAYS_9_TO_5) is True
    assert is_within_business_hours(_at(1, 16, 59), WEEKDAYS_9_TO_5) is True
    assert is_within_business_hours(_at(1, 17), WEEKDAYS_9_TO_5) is False
    assert is_within_business_hours(_at(6, 12), WEEKDAYS_9_TO_5) is False


def test_elapsed_counts_only_window_overlap() -> None:
    assert elapsed_business_minutes(_at(5, 16), _at(8, 10), WEEKDAYS_9_TO_5) == 120
    assert elapsed_business_minutes(_at(6, 0), _at(7, 23), WEEKDAYS_9_TO_5) == 0
    assert elapsed_business_minutes(_at(1, 10), _at(1, 9), WEEKDAYS_9_TO_5) == 0


def test_arithmetic_runs_in_profile_timezone() -> None:
    new_york = BusinessHours(
        timezone="America/New_York",
        days_of_week=frozenset({1, 2, 3, 4, 5}),
        start_minute=9 * 60,
        end_minute=17 * 60,
    )
    # 14:00 UTC is 09:00 EST in January.
    assert is_within_business_hours(_at(1, 14), new_york) is True
    assert is_within_business_hours(_at(1, 13, 59), new_york) is False
    assert add_business_minutes(_at(1, 14), 60, new_york) == _at(1, 15)
    assert next_business_start(_at(1, 12), new_york) == _at(1, 14)


def test_unknown_timezone_falls_back_to_utc() -> None:
    profile = BusinessHours(timezone="Mars/Olympus_Mons", start_minute=540, end_minute=1020)
    assert profile.zone == UTC
    assert add_business_minutes(_at(1, 9), 60, profile) == _at(1, 10)


def test_non_positive_daily_window_falls_back_to_calendar() -> None:
    inverted = BusinessHours(start_minute=17 * 60, end_minute=9 * 60)
    start = _at(1, 10)
    assert add_business_minutes(start, 90, inverted) == start + dt.timedelta(minutes=90)
    assert elapsed_business_minutes(start, start + dt.timedelta(minutes=90), inverted) == 90


def test_remaining_minutes_goes_negative_when_overdue() -> None:
    assert remaining_business_minutes(_at(1, 12), WEEKDAYS_9_TO_5, _at(1, 10)) == 120
    assert remaining_business_minutes(_at(5, 16), WEEKDAYS_9_TO_5, _at(8, 10)) == -120
    assert remaining_business_minutes(None, WEEKDAYS_9_TO_5, _at(1, 10)) is None


@pytest.mark.parametrize("raw", [None, "", "[]", "not json", "[0, 8, \"x\"]", 42])
def test_unusable_weekday_lists_mean_every_day(raw) -> None:
    assert parse_days_of_week(raw) == ALL_DAYS


def test_weekday_list_parsing() -> None:
    assert parse_days_of_week("[1,2,3]") == frozenset({1, 2, 3})
    assert parse_days_of_week(["6", 7]) == frozenset({6, 7})


def test_time_of_day_parsing() -> None:
    assert parse_minute_of_day("09:30") == 570
    assert parse_minute_of_day("17:00:59") == 1020
    assert parse_minute_of_day(dt.time(8, 15)) == 495
    assert parse_minute_of_day(dt.timedelta(hours=18)) == 1080
    assert parse_minute_of_day(None) == 0


def test_profile_is_built_from_sla_row() -> None:
    row = SimpleNamespace(
        timezone="Europe/Paris",
        days_of_week="[1,2,3,4,5]",
        start_time="08:00:00",
        end_time="18:00",
        is_24x7=False,
    )
    sla = SimpleNamespace(business_hours_profile_id=3, business_hours_profile=row)
    profile = profile_for_sla(sla)
    assert profile is not None
    assert profile.timezone == "Europe/Paris"
    assert profile.days_of_week == frozenset({1, 2, 3, 4, 5})
    assert (profile.start_minute, profile.end_minute) == (480, 1080)
    assert profile_for_sla(SimpleNamespace(business_hours_profile_id=None)) is None
    assert profile_for_sla(None) is None
