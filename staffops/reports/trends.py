"""Trend Calculator — fixed-length, gap-free series anchored to a date.

The composer fetches once for the whole window; these functions partition
the fetched records into buckets in memory.
"""

from __future__ import annotations

import calendar
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from staffops.common.constants import AttendanceStatus
from staffops.config import settings
from staffops.reports.aggregator import plain, rate
from staffops.reports.schemas import DailyTrendPoint, MonthlyTrendPoint

DAILY_POINTS = 7
MONTHLY_POINTS = 6


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def local_date(value: date | datetime) -> date:
    """Calendar day of *value* in the configured zone; naive timestamps are UTC."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.TIMEZONE)).date()


def shift_months(day: date, months: int) -> date:
    """*day* moved by *months*, clamped to the target month's last day."""
    index = day.year * 12 + day.month - 1 + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


# ── Daily ───────────────────────────────────────────────────────────

def daily_window(reference: date) -> tuple[date, date]:
    """Inclusive first and last day of the daily series."""
    return reference - timedelta(days=DAILY_POINTS - 1), reference


def daily_trend(
    records: Iterable[Any],
    reference: date,
    headcount: int,
) -> list[DailyTrendPoint]:
    """Present count and rate against *headcount* for each of the 7 days
    ending at *reference*, oldest first."""
    present = Counter(
        _as_date(r.date)
        for r in records
        if r.date is not None and plain(r.status) == AttendanceStatus.present.value
    )
    start, _ = daily_window(reference)
    points = []
    for offset in range(DAILY_POINTS):
        day = start + timedelta(days=offset)
        points.append(
            DailyTrendPoint(date=day, attendance=present[day], rate=rate(present[day], headcount))
        )
    return points


# ── Monthly ─────────────────────────────────────────────────────────

def month_windows(reference: date, count: int = MONTHLY_POINTS) -> list[tuple[date, date]]:
    """First and last day of each of the *count* months ending with the
    month of *reference*, oldest first."""
    first = reference.replace(day=1)
    windows = []
    for back in range(count - 1, -1, -1):
        start = shift_months(first, -back)
        end = start.replace(day=calendar.monthrange(start.year, start.month)[1])
        windows.append((start, end))
    return windows


def monthly_window(reference: date) -> tuple[date, date]:
    windows = month_windows(reference)
    return windows[0][0], windows[-1][1]


def monthly_trend(
    records: Iterable[Any],
    reference: date,
    field: str = "created_at",
) -> list[MonthlyTrendPoint]:
    """Number of records whose *field* falls in each of the 6 calendar
    months ending with the month of *reference*, oldest first.

    Timestamps are bucketed by their local calendar month.
    """
    per_month = Counter()
    for record in records:
        value = getattr(record, field, None)
        if value is not None:
            day = local_date(value)
            per_month[(day.year, day.month)] += 1

    return [
        MonthlyTrendPoint(
            month=calendar.month_abbr[start.month],
            year=start.year,
            start_date=start,
            end_date=end,
            leaves=per_month[(start.year, start.month)],
        )
        for start, end in month_windows(reference)
    ]
