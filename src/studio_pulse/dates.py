"""Calendar parsing helpers for session dates and payroll month-years."""

from __future__ import annotations

import re
from datetime import date, datetime
from functools import lru_cache

import pandas as pd

from studio_pulse.models import Timeframe, parse_timeframe

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_MONTH_INDEX = {name.lower(): idx for idx, name in enumerate(MONTH_NAMES, start=1)}

_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")
# Numeric slash dates are month-first (12/31/2024); "31/12/2024" is invalid.
_MONTH_FIRST_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})(?!\d)")

_TIMEFRAME_OFFSETS: dict[Timeframe, pd.DateOffset] = {
    Timeframe.three_months: pd.DateOffset(months=3),
    Timeframe.six_months: pd.DateOffset(months=6),
    Timeframe.one_year: pd.DateOffset(years=1),
}


@lru_cache(maxsize=8192)
def _parse_date_text(text: str) -> date | None:
    # Times of day and weekday names carry no year and are not dates.
    if _YEAR_RE.search(text) is None:
        return None
    slashed = _MONTH_FIRST_RE.match(text)
    if slashed is not None:
        month, day, year = (int(part) for part in slashed.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    try:
        parsed = pd.to_datetime(text, errors="coerce", dayfirst=False, format="mixed")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def parse_session_date(value: object) -> date | None:
    """Return the calendar date of a session cell, or ``None`` if absent/unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    return _parse_date_text(text)


def parse_month_year(value: object) -> date | None:
    """Parse ``"<MonthName> <Year>"`` (e.g. ``"March 2024"``) to the first of that month."""
    if not isinstance(value, str):
        return None
    parts = value.split()
    if len(parts) != 2:
        return None
    month_name, year_text = parts
    month = _MONTH_INDEX.get(month_name.lower())
    if month is None or not year_text.isdigit():
        return None
    try:
        return date(int(year_text), month, 1)
    except ValueError:
        return None


def current_moment() -> datetime:
    """Return the local wall-clock time used to anchor relative windows."""
    return datetime.now()


def timeframe_start(timeframe: Timeframe | str, now: datetime) -> datetime | None:
    """Return the anchor of a relative window, or ``None`` for ``"all"``.

    Calendar arithmetic clamps month ends (31 May minus 3 months is 28/29 Feb).
    """
    timeframe = parse_timeframe(timeframe)
    offset = _TIMEFRAME_OFFSETS.get(timeframe)
    if offset is None:
        return None
    return (pd.Timestamp(now) - offset).to_pydatetime()
