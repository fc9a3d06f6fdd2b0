# Budget Periods - Personal budgeting with monthly period rollover
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for Budget Periods.

This module defines the Period value object and the pure functions used to
derive the budget period containing a given instant.

A budget period starts on `start_day` of a calendar month at local midnight
and ends (exclusive) on `start_day` of the following month. The period id is
the year and month of its start boundary, formatted as ``YYYY-MM``:

    start_day = 15, now = 2024-06-10  ->  [2024-05-15, 2024-06-15), "2024-05"
    start_day = 1,  now = 2024-06-03  ->  [2024-06-01, 2024-07-01), "2024-06"

`start_day` is clamped to 28 so that every month has the boundary day.

Nothing here performs I/O: periods are always computed, never stored.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional, Union

import pandas as pd

from .errors import InvalidMarkerState

MAX_START_DAY = 28

_PERIOD_ID_RE = re.compile(r"^(\d{4})-(\d{2})$")

Instant = Union[datetime, date]


@dataclass(frozen=True)
class Period:
    """A budget period: [start, end) with a stable identifier."""

    id: str
    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        """Last calendar day included in the period."""
        return self.end.date() - timedelta(days=1)

    @property
    def label(self) -> str:
        return format_period_range(self)

    def contains(self, value: Instant) -> bool:
        """Return True if the instant (or calendar date) falls in the period."""
        if isinstance(value, datetime):
            return self.start <= _align_tz(value, self.start.tzinfo) < self.end
        return self.first_day <= value < self.end.date()


def _align_tz(value: datetime, tz: Optional[tzinfo]) -> datetime:
    """Make `value` comparable with boundaries carrying `tz`."""
    if tz is None:
        return value.replace(tzinfo=None) if value.tzinfo else value
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def clamp_start_day(start_day: int) -> int:
    """
    Clamp a configured start day to the supported 1..28 range.

    Values above 28 are clamped; values below 1 are rejected.
    """
    day = int(start_day)
    if day < 1:
        raise ValueError(f"Period start day must be >= 1, got {start_day!r}.")
    return min(day, MAX_START_DAY)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _format_id(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def _build(year: int, month: int, day: int, tz: Optional[tzinfo]) -> Period:
    end_year, end_month = _shift_month(year, month, 1)
    return Period(
        id=_format_id(year, month),
        start=datetime(year, month, day, tzinfo=tz),
        end=datetime(end_year, end_month, day, tzinfo=tz),
    )


def compute_period(now: Instant, start_day: int) -> Period:
    """
    Return the budget period containing `now`.

    Parameters
    ----------
    now:
        Reference instant. A naive datetime is interpreted as local time and
        yields naive boundaries; an aware datetime yields boundaries in the
        same timezone. A plain date is treated as local midnight.
    start_day:
        Day of month on which periods start (clamped to 1..28).
    """
    day = clamp_start_day(start_day)
    tz = now.tzinfo if isinstance(now, datetime) else None

    if now.day >= day:
        year, month = now.year, now.month
    else:
        year, month = _shift_month(now.year, now.month, -1)

    return _build(year, month, day, tz)


def parse_period_id(period_id: str) -> tuple[int, int]:
    """
    Split a ``YYYY-MM`` period id into (year, month).

    Raises
    ------
    InvalidMarkerState
        If the id is not a well-formed period identifier.
    """
    match = _PERIOD_ID_RE.match(str(period_id).strip()) if period_id else None
    if match is None:
        raise InvalidMarkerState(f"Malformed period id: {period_id!r}")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidMarkerState(f"Malformed period id: {period_id!r}")
    return year, month


def period_from_id(
    period_id: str,
    start_day: int,
    tz: Optional[tzinfo] = None,
) -> Period:
    """Rebuild the Period identified by `period_id`."""
    year, month = parse_period_id(period_id)
    return _build(year, month, clamp_start_day(start_day), tz)


def previous_period(period: Period, start_day: int) -> Period:
    """Return the period immediately preceding `period`."""
    year, month = _shift_month(period.start.year, period.start.month, -1)
    return _build(year, month, clamp_start_day(start_day), period.start.tzinfo)


def next_period(period: Period, start_day: int) -> Period:
    """Return the period immediately following `period`."""
    year, month = _shift_month(period.start.year, period.start.month, 1)
    return _build(year, month, clamp_start_day(start_day), period.start.tzinfo)


def compare_period_ids(a: str, b: str) -> int:
    """
    Compare two period ids in period order.

    Returns -1, 0 or 1. Raises InvalidMarkerState if either id is malformed.
    """
    pa, pb = parse_period_id(a), parse_period_id(b)
    return (pa > pb) - (pa < pb)


def iter_periods(first: Period, stop: Period, start_day: int) -> Iterator[Period]:
    """Yield the periods from `first` (inclusive) up to `stop` (exclusive)."""
    current = first
    while current.start < stop.start:
        yield current
        current = next_period(current, start_day)


def format_period_range(period: Period) -> str:
    """
    Human-readable rendering of a period, e.g. "May 15, 2024 – Jun 14, 2024".

    The end shown is the last day included in the period. Display only.
    """
    first, last = period.first_day, period.last_day
    return (
        f"{first:%b} {first.day}, {first.year} – "
        f"{last:%b} {last.day}, {last.year}"
    )


def filter_expenses_by_period(expenses: pd.DataFrame, period: Period) -> pd.DataFrame:
    """
    Filter an expenses DataFrame to keep only rows dated within the period.

    The `expenses` DataFrame is expected to contain a 'date' column of type
    datetime64[ns] (as produced by `expenses_to_dataframe`).

    Parameters
    ----------
    expenses:
        DataFrame with at least a 'date' column.
    period:
        Period defining the [start, end) boundaries (end exclusive).

    Returns
    -------
    pandas.DataFrame
        Filtered DataFrame containing only expenses within the period.
    """
    mask = (expenses["date"] >= pd.Timestamp(period.first_day)) & (
        expenses["date"] < pd.Timestamp(period.end.date())
    )
    filtered = expenses.loc[mask].copy()
    return filtered
