"""Resolution of relative date phrases into concrete ranges.

Every function takes `now` explicitly; nothing here reads the clock.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Callable
from datetime import datetime, timedelta

from crm_assistant.types import DateRange


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def day_range(moment: datetime, label: str) -> DateRange:
    return DateRange(start=start_of_day(moment), end=end_of_day(moment), label=label)


def today(now: datetime) -> DateRange:
    return day_range(now, "today")


def last_n_days(now: datetime, days: int) -> DateRange:
    """The `days` calendar days ending with today, today included."""
    if days < 1:
        raise ValueError("days must be positive")
    label = "today" if days == 1 else f"last {days} days"
    return DateRange(
        start=start_of_day(now - timedelta(days=days - 1)),
        end=end_of_day(now),
        label=label,
    )


def _week(now: datetime, offset_weeks: int, label: str) -> DateRange:
    # Weeks start on Sunday.
    sunday = start_of_day(now) - timedelta(days=(now.weekday() + 1) % 7)
    start = sunday + timedelta(weeks=offset_weeks)
    return DateRange(start=start, end=end_of_day(start + timedelta(days=6)), label=label)


def _month(now: datetime, offset_months: int, label: str) -> DateRange:
    index = now.year * 12 + (now.month - 1) + offset_months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    first = start_of_day(now.replace(year=year, month=month, day=1))
    return DateRange(start=first, end=end_of_day(first.replace(day=last_day)), label=label)


def _year(now: datetime, offset_years: int, label: str) -> DateRange:
    year = now.year + offset_years
    first = start_of_day(now.replace(year=year, month=1, day=1))
    return DateRange(start=first, end=end_of_day(first.replace(month=12, day=31)), label=label)


_Resolver = Callable[[datetime, "re.Match[str]"], DateRange]

# Checked in order; the first matching phrase wins.
_PHRASES: tuple[tuple[re.Pattern[str], _Resolver], ...] = (
    (
        re.compile(r"\b(?:last|past|previous)\s+(\d{1,3})\s+days?\b"),
        lambda now, m: last_n_days(now, max(1, int(m.group(1)))),
    ),
    (re.compile(r"\b(?:last|previous|past)\s+week\b"), lambda now, _: _week(now, -1, "last week")),
    (re.compile(r"\bnext\s+week\b"), lambda now, _: _week(now, 1, "next week")),
    (re.compile(r"\bthis\s+week\b"), lambda now, _: _week(now, 0, "this week")),
    (re.compile(r"\b(?:last|previous|past)\s+month\b"), lambda now, _: _month(now, -1, "last month")),
    (re.compile(r"\bthis\s+month\b"), lambda now, _: _month(now, 0, "this month")),
    (re.compile(r"\b(?:last|previous|past)\s+year\b"), lambda now, _: _year(now, -1, "last year")),
    (re.compile(r"\bthis\s+year\b"), lambda now, _: _year(now, 0, "this year")),
    (re.compile(r"\byesterday\b"), lambda now, _: day_range(now - timedelta(days=1), "yesterday")),
    (re.compile(r"\btomorrow\b"), lambda now, _: day_range(now + timedelta(days=1), "tomorrow")),
    (re.compile(r"\b(?:today|tonight|this day)\b"), lambda now, _: today(now)),
)


def resolve_date_phrase(text: str, now: datetime) -> DateRange | None:
    """Return the range for the first date phrase found in normalized `text`."""

    for pattern, resolver in _PHRASES:
        match = pattern.search(text)
        if match:
            return resolver(now, match)
    return None
