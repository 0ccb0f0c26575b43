"""Business calendar arithmetic over a business-hours profile.

All math runs on wall-clock time in the profile's timezone: an instant is
converted to local time, stepped through the daily windows and converted
back to UTC. A profile that cannot describe a usable window (24x7, no
weekdays, zero or negative daily width) degrades to plain calendar time;
none of these functions raise for a malformed profile.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sla_engine.core.clock import as_utc

logger = logging.getLogger(__name__)

ALL_DAYS = frozenset(range(1, 8))
NEXT_START_MAX_DAYS = 14
ADD_MAX_ITERATIONS = 10_000
ELAPSED_MAX_DAYS = 365
_UTC = dt.timezone.utc


def parse_days_of_week(value: Any) -> frozenset[int]:
    """Normalize a stored weekday list (JSON text or sequence) to ISO days; empty or bad -> all days."""
    raw = value
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="ignore")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return ALL_DAYS
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return ALL_DAYS

    days: set[int] = set()
    for item in raw:
        try:
            day = int(item)
        except (TypeError, ValueError):
            continue
        if 1 <= day <= 7:
            days.add(day)
    return frozenset(days) if days else ALL_DAYS


def parse_minute_of_day(value: Any) -> int:
    """Accept "HH:MM", "HH:MM:SS", time or timedelta; seconds are ignored."""
    if value is None:
        return 0
    if isinstance(value, dt.time):
        return value.hour * 60 + value.minute
    if isinstance(value, dt.timedelta):
        return int(value.total_seconds() // 60)
    parts = str(value).strip().split(":")
    try:
        hours = int(parts[0]) if parts and parts[0] else 0
    except ValueError:
        hours = 0
    try:
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        minutes = 0
    return hours * 60 + minutes


def _resolve_zone(name: str | None) -> dt.tzinfo:
    key = (name or "UTC").strip() or "UTC"
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown business hours timezone %r; using UTC", key)
        return _UTC


@dataclass(frozen=True)
class BusinessHours:
    timezone: str = "UTC"
    days_of_week: frozenset[int] = ALL_DAYS
    start_minute: int = 0
    end_minute: int = 0
    is_24x7: bool = False
    zone: dt.tzinfo = field(default=_UTC, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.zone is _UTC and self.timezone.strip().upper() != "UTC":
            object.__setattr__(self, "zone", _resolve_zone(self.timezone))

    @classmethod
    def from_row(cls, row: Any) -> BusinessHours:
        timezone = str(getattr(row, "timezone", None) or "UTC")
        return cls(
            timezone=timezone,
            days_of_week=parse_days_of_week(getattr(row, "days_of_week", None)),
            start_minute=parse_minute_of_day(getattr(row, "start_time", None)),
            end_minute=parse_minute_of_day(getattr(row, "end_time", None)),
            is_24x7=bool(getattr(row, "is_24x7", False)),
        )

    @property
    def daily_minutes(self) -> int:
        return self.end_minute - self.start_minute


def profile_for_sla(sla: Any) -> BusinessHours | None:
    """Business hours bound to an SLA definition; None means the SLA runs 24x7."""
    if sla is None or not getattr(sla, "business_hours_profile_id", None):
        return None
    row = getattr(sla, "business_hours_profile", None)
    if row is None:
        return None
    return BusinessHours.from_row(row)


def _calendar_only(profile: BusinessHours | None) -> bool:
    return profile is None or profile.is_24x7 or not profile.days_of_week or profile.daily_minutes <= 0


def _to_local(instant: dt.datetime, profile: BusinessHours) -> dt.datetime:
    return as_utc(instant).astimezone(profile.zone)


def _day_window(profile: BusinessHours, day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    midnight = dt.datetime.combine(day, dt.time(0, 0), tzinfo=profile.zone)
    return (
        midnight + dt.timedelta(minutes=profile.start_minute),
        midnight + dt.timedelta(minutes=profile.end_minute),
    )


def _next_day_start(profile: BusinessHours, current: dt.datetime) -> dt.datetime:
    return _day_window(profile, current.date() + dt.timedelta(days=1))[0]


def is_within_business_hours(instant: dt.datetime, profile: BusinessHours | None) -> bool:
    if profile is None or profile.is_24x7 or not profile.days_of_week:
        return True
    local = _to_local(instant, profile)
    if local.isoweekday() not in profile.days_of_week:
        return False
    minute_of_day = local.hour * 60 + local.minute
    return profile.start_minute <= minute_of_day < profile.end_minute


def next_business_start(
    instant: dt.datetime,
    profile: BusinessHours | None,
    max_iterations: int = NEXT_START_MAX_DAYS,
) -> dt.datetime:
    original = as_utc(instant)
    if profile is None or profile.is_24x7 or not profile.days_of_week:
        return original

    current = _to_local(original, profile)
    for _ in range(max_iterations):
        if current.isoweekday() in profile.days_of_week:
            window_start, window_end = _day_window(profile, current.date())
            if current < window_start:
                return window_start.astimezone(_UTC)
            if current < window_end:
                return current.astimezone(_UTC)
        current = _next_day_start(profile, current)

    return original


def add_business_minutes(
    start: dt.datetime,
    minutes: float,
    profile: BusinessHours | None,
    max_iterations: int = ADD_MAX_ITERATIONS,
) -> dt.datetime:
    start_utc = as_utc(start)
    calendar_result = start_utc + dt.timedelta(minutes=minutes)
    if _calendar_only(profile):
        return calendar_result

    current = _to_local(next_business_start(start_utc, profile), profile)
    remaining = dt.timedelta(minutes=minutes)
    zero = dt.timedelta(0)
    iterations = 0

    while remaining > zero and iterations < max_iterations:
        iterations += 1
        if current.isoweekday() not in profile.days_of_week:
            current = _next_day_start(profile, current)
            continue

        window_start, window_end = _day_window(profile, current.date())
        if current < window_start:
            current = window_start
        left_today = window_end - current
        if left_today <= zero:
            current = _next_day_start(profile, current)
            continue

        if remaining <= left_today:
            current = current + remaining
            remaining = zero
        else:
            remaining -= left_today
            current = _next_day_start(profile, current)

    if remaining > zero:
        logger.warning("Business minute addition did not converge after %s iterations; using calendar time", iterations)
        return calendar_result
    return current.astimezone(_UTC)


def elapsed_business_minutes(
    start: dt.datetime,
    end: dt.datetime,
    profile: BusinessHours | None,
    max_days: int = ELAPSED_MAX_DAYS,
) -> float:
    start_utc = as_utc(start)
    end_utc = as_utc(end)
    if _calendar_only(profile):
        return max(0.0, (end_utc - start_utc).total_seconds() / 60)
    if end_utc <= start_utc:
        return 0.0

    local_start = _to_local(start_utc, profile)
    local_end = _to_local(end_utc, profile)
    total = dt.timedelta(0)
    day = local_start.date()
    for _ in range(max_days):
        if day > local_end.date():
            break
        if day.isoweekday() in profile.days_of_week:
            window_start, window_end = _day_window(profile, day)
            lower = max(window_start, local_start)
            upper = min(window_end, local_end)
            if upper > lower:
                total += upper - lower
        day += dt.timedelta(days=1)

    return total.total_seconds() / 60


def remaining_business_minutes(
    due_at: dt.datetime | None,
    profile: BusinessHours | None,
    now: dt.datetime,
) -> int | None:
    """Business minutes left until due_at; negative once overdue."""
    if due_at is None:
        return None
    due = as_utc(due_at)
    current = as_utc(now)
    if current > due:
        return -round(elapsed_business_minutes(due, current, profile))
    return round(elapsed_business_minutes(current, due, profile))
