"""
ISO week helpers. Weeks start on Monday, in UTC.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

from playtest_levels.engines.errors import InvalidWeekError

_ISO_WEEK = re.compile(r"^(\d{4})-W(\d{2})$")

WeekSpec = Union[None, str, date, datetime]


def current_week_start(now: Optional[datetime] = None) -> date:
    """Monday of the current UTC week."""
    today = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()
    return today - timedelta(days=today.weekday())


def parse_week(value: WeekSpec, now: Optional[datetime] = None) -> date:
    """
    Resolve a week specifier to its Monday.

    Accepts None (current week), a Monday date, "YYYY-MM-DD" naming a Monday,
    or an ISO week "YYYY-Www". Anything else raises InvalidWeekError.
    """
    if value is None:
        return current_week_start(now)
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        if value.weekday() != 0:
            raise InvalidWeekError(f"{value.isoformat()} is not a Monday")
        return value

    text = str(value).strip()
    match = _ISO_WEEK.match(text)
    if match:
        try:
            return date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
        except ValueError as exc:
            raise InvalidWeekError(f"Invalid ISO week '{text}'") from exc
    try:
        parsed = date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidWeekError(f"Invalid week specifier '{text}'") from exc
    if parsed.weekday() != 0:
        raise InvalidWeekError(f"{parsed.isoformat()} is not a Monday")
    return parsed


def week_end(week_start: date) -> date:
    """Sunday of the week."""
    return week_start + timedelta(days=6)


def week_bounds(week_start: date) -> Tuple[datetime, datetime]:
    """[Monday 00:00 UTC, next Monday 00:00 UTC)."""
    start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def iso_week_label(week_start: date) -> str:
    year, week, _ = week_start.isocalendar()
    return f"{year}-W{week:02d}"
