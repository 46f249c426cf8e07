"""
Filter engine that narrows the canonical collections into dashboard views.

Every predicate is independent and only applied when its criterion is set;
a record must pass all active predicates. Outputs are new lists in input
order, and records are never modified.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime
from typing import Any, TypeVar

from studio_pulse import ALL
from studio_pulse.dates import (
    current_moment,
    parse_month_year,
    parse_session_date,
    timeframe_start,
)
from studio_pulse.models import FilterCriteria, PayrollCriteria, PayrollRecord, SessionRecord

T = TypeVar("T")

# criteria attribute -> SessionRecord attribute
_CATEGORICAL: tuple[tuple[str, str], ...] = (
    ("trainers", "trainer"),
    ("classes", "class_name"),
    ("locations", "location"),
    ("days", "day"),
    ("times", "time"),
    ("types", "session_type"),
)

# (min criterion, max criterion, SessionRecord attribute)
_NUMERIC: tuple[tuple[str, str, str], ...] = (
    ("min_capacity", "max_capacity", "capacity"),
    ("min_fill_rate", "max_fill_rate", "fill_percentage"),
    ("min_revenue", "max_revenue", "revenue"),
)


def _keep(records: list[T], predicate: Callable[[T], bool]) -> list[T]:
    return [record for record in records if predicate(record)]


def _number(value: Any) -> float:
    # Absent numeric fields compare as 0 for every bound.
    return 0 if value is None else value


def _within(value: date | None, start: date | None, end: date | None) -> bool:
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def filter_sessions(
    records: Iterable[SessionRecord] | None,
    criteria: FilterCriteria | None = None,
    *,
    location: str = ALL,
) -> list[SessionRecord]:
    """Apply the location tab and every active criterion to *records*.

    ``location`` is the single-select location tab (``"all"`` for no
    constraint); it composes with ``criteria.locations`` by conjunction.
    A record whose date is missing or unparseable is excluded only while a
    date bound is set.
    """
    if records is None:
        return []
    if criteria is None:
        criteria = FilterCriteria()
    filtered = list(records)

    if location and location != ALL:
        filtered = _keep(filtered, lambda r: r.location == location)

    for criterion, attr in _CATEGORICAL:
        selected = getattr(criteria, criterion)
        if selected:
            allowed = frozenset(selected)
            filtered = _keep(filtered, lambda r, a=attr, s=allowed: getattr(r, a) in s)

    for min_name, max_name, attr in _NUMERIC:
        low = getattr(criteria, min_name)
        high = getattr(criteria, max_name)
        if low is not None:
            filtered = _keep(filtered, lambda r, a=attr, lo=low: _number(getattr(r, a)) >= lo)
        if high is not None:
            filtered = _keep(filtered, lambda r, a=attr, hi=high: _number(getattr(r, a)) <= hi)

    start, end = criteria.date_range.start, criteria.date_range.end
    if start is not None or end is not None:
        filtered = _keep(filtered, lambda r: _within(parse_session_date(r.date), start, end))

    return filtered


def _naive(moment: datetime) -> datetime:
    return moment.replace(tzinfo=None) if moment.tzinfo else moment


def filter_payroll(
    records: Iterable[PayrollRecord] | None,
    criteria: PayrollCriteria | None = None,
    *,
    now: datetime | None = None,
) -> list[PayrollRecord]:
    """Apply location, trainer and relative timeframe selection to payroll rows.

    Under a ``3m``/``6m``/``1y`` window a record is kept when the first day of
    its month falls within ``[now - window, now]``; records whose month-year
    is missing or unparseable are excluded.
    """
    if records is None:
        return []
    if criteria is None:
        criteria = PayrollCriteria()
    filtered = list(records)

    if criteria.location and criteria.location != ALL:
        filtered = _keep(filtered, lambda r: r.location == criteria.location)

    if criteria.trainer and criteria.trainer != ALL:
        filtered = _keep(filtered, lambda r: r.teacher_name == criteria.trainer)

    moment = _naive(now if now is not None else current_moment())
    anchor = timeframe_start(criteria.timeframe, moment)
    if anchor is not None:

        def in_window(record: PayrollRecord) -> bool:
            month_start = parse_month_year(record.month_year)
            if month_start is None:
                return False
            item = datetime(month_start.year, month_start.month, 1)
            return anchor <= item <= moment

        filtered = _keep(filtered, in_window)

    return filtered


def filter_by_timeframe(
    records: Sequence[PayrollRecord] | None,
    timeframe: str,
    *,
    now: datetime | None = None,
) -> list[PayrollRecord]:
    """Shortcut for a timeframe-only payroll filter."""
    return filter_payroll(records, PayrollCriteria(timeframe=timeframe), now=now)
