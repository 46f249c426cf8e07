"""Data models / typed records used across the package."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from numbers import Integral, Real
from typing import Any

from studio_pulse import ALL


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _to_optional_number(value: Any, field_name: str) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be a number")
    if isinstance(value, Real):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip().replace(",", ""))
        except ValueError as exc:
            raise ValueError(f"{field_name} must be a number, got {value!r}") from exc
    else:
        raise TypeError(f"{field_name} must be a number")
    if math.isnan(result):
        raise ValueError(f"{field_name} must not be NaN")
    return result


def _to_optional_date(value: Any, field_name: str) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValueError(
                f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}"
            ) from exc
    raise TypeError(f"{field_name} must be a date or ISO date string")


# ── Records ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionRecord:
    """One recurring class session occurrence.

    Identity is the ``(unique_id1, unique_id2)`` pair; neither half is unique
    on its own.
    """

    unique_id1: str = ""
    unique_id2: str = ""
    trainer: str = ""
    class_name: str = ""
    location: str = ""
    day: str = ""
    time: str = ""
    session_type: str = ""
    capacity: float = 0
    fill_percentage: float = 0
    revenue: float = 0
    date: str = ""

    @property
    def identity(self) -> tuple[str, str]:
        return (self.unique_id1, self.unique_id2)


@dataclass(frozen=True)
class PayrollRecord:
    """One trainer-month aggregate across the cycle, strength and barre families."""

    teacher_id: str = ""
    teacher_name: str = ""
    teacher_email: str = ""
    location: str = ""

    cycle_sessions: float = 0
    empty_cycle_sessions: float = 0
    non_empty_cycle_sessions: float = 0
    cycle_customers: float = 0
    cycle_paid: float = 0

    strength_sessions: float = 0
    empty_strength_sessions: float = 0
    non_empty_strength_sessions: float = 0
    strength_customers: float = 0
    strength_paid: float = 0

    barre_sessions: float = 0
    empty_barre_sessions: float = 0
    non_empty_barre_sessions: float = 0
    barre_customers: float = 0
    barre_paid: float = 0

    total_sessions: float = 0
    total_empty_sessions: float = 0
    total_non_empty_sessions: float = 0
    total_customers: float = 0
    total_paid: float = 0

    month_year: str = ""
    unique: str = ""
    converted: float = 0
    conversion: str = ""
    retained: float = 0
    retention: str = ""
    new: float = 0

    @property
    def identity(self) -> tuple[str, str]:
        return (self.teacher_id, self.month_year)


# ── Filter criteria ──────────────────────────────────────────────


class Timeframe(str, Enum):
    """Relative payroll window, counted back from the current moment."""

    three_months = "3m"
    six_months = "6m"
    one_year = "1y"
    all = "all"


def parse_timeframe(value: Timeframe | str) -> Timeframe:
    if isinstance(value, Timeframe):
        return value
    try:
        return Timeframe(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid timeframe: {value!r}. Use 3m/6m/1y/all.") from exc


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar bounds; ``None`` leaves that side open."""

    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _to_optional_date(self.start, "dateRange.start"))
        object.__setattr__(self, "end", _to_optional_date(self.end, "dateRange.end"))

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


_CATEGORICAL_FIELDS = ("trainers", "classes", "locations", "days", "times", "types")
_BOUND_FIELDS = (
    "min_capacity",
    "max_capacity",
    "min_fill_rate",
    "max_fill_rate",
    "min_revenue",
    "max_revenue",
)
# camelCase key (dashboard shape) -> dataclass field
_CRITERIA_KEYS: dict[str, str] = {
    "dateRange": "date_range",
    "minCapacity": "min_capacity",
    "maxCapacity": "max_capacity",
    "minFillRate": "min_fill_rate",
    "maxFillRate": "max_fill_rate",
    "minRevenue": "min_revenue",
    "maxRevenue": "max_revenue",
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class FilterCriteria:
    """Analyst-chosen narrowing state for session records.

    Empty selections and ``None`` bounds impose no constraint, so
    ``FilterCriteria()`` is the cleared value.
    """

    date_range: DateRange = field(default_factory=DateRange)
    trainers: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    days: tuple[str, ...] = ()
    times: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    min_capacity: float | None = None
    max_capacity: float | None = None
    min_fill_rate: float | None = None
    max_fill_rate: float | None = None
    min_revenue: float | None = None
    max_revenue: float | None = None

    def __post_init__(self) -> None:
        date_range = self.date_range
        if date_range is None:
            date_range = DateRange()
        elif isinstance(date_range, Mapping):
            date_range = DateRange(date_range.get("start"), date_range.get("end"))
        elif not isinstance(date_range, DateRange):
            raise TypeError("date_range must be a DateRange or a {start, end} mapping")
        object.__setattr__(self, "date_range", date_range)
        for name in _CATEGORICAL_FIELDS:
            values = _to_string_list(getattr(self, name), name)
            object.__setattr__(self, name, tuple(values))
        for name in _BOUND_FIELDS:
            object.__setattr__(self, name, _to_optional_number(getattr(self, name), name))

    @property
    def is_cleared(self) -> bool:
        return (
            self.date_range.is_open
            and not any(getattr(self, name) for name in _CATEGORICAL_FIELDS)
            and all(getattr(self, name) is None for name in _BOUND_FIELDS)
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> FilterCriteria:
        """Build criteria from the dashboard JSON shape.

        Accepts camelCase keys (``minCapacity``, ``dateRange``) as well as the
        snake_case field names. Unknown keys raise ``ValueError``.
        """
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise TypeError("criteria must be a JSON object")
        known = {"date_range", *_CATEGORICAL_FIELDS, *_BOUND_FIELDS}
        kwargs: dict[str, Any] = {}
        for key, value in raw.items():
            name = _CRITERIA_KEYS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown criteria key: {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "dateRange": {
                "start": self.date_range.start.isoformat() if self.date_range.start else "",
                "end": self.date_range.end.isoformat() if self.date_range.end else "",
            },
        }
        for name in _CATEGORICAL_FIELDS:
            payload[name] = list(getattr(self, name))
        for name in _BOUND_FIELDS:
            payload[_camel(name)] = getattr(self, name)
        return payload


@dataclass(frozen=True)
class PayrollCriteria:
    """Single-select payroll controls plus the relative timeframe window."""

    location: str = ALL
    trainer: str = ALL
    timeframe: Timeframe = Timeframe.all

    def __post_init__(self) -> None:
        object.__setattr__(self, "timeframe", parse_timeframe(self.timeframe))

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "trainer": self.trainer,
            "timeframe": self.timeframe.value,
        }


# ── Run artifacts ────────────────────────────────────────────────


@dataclass
class IngestReport:
    """Data-quality report emitted alongside every ingest.

    Contract invariant: ``duplicates_dropped == rows_in - rows_out``.
    """

    sources: int = 0
    rows_in: int = 0
    rows_out: int = 0
    duplicates_dropped: int = 0
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.sources = _to_non_negative_int(self.sources, "sources")
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.duplicates_dropped = _to_non_negative_int(
            self.duplicates_dropped, "duplicates_dropped"
        )
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        if self.duplicates_dropped != self.rows_in - self.rows_out:
            raise ValueError("duplicates_dropped must equal rows_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": self.sources,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "duplicates_dropped": self.duplicates_dropped,
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "studio-pulse"
    version: str = ""
    command: str = ""
    input_paths: list[str] = field(default_factory=list)
    sha256: list[str] = field(default_factory=list)
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    rows_shown: int = 0
    criteria: dict[str, Any] = field(default_factory=dict)
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.rows_shown = _to_non_negative_int(self.rows_shown, "rows_shown")
        self.input_paths = _to_string_list(self.input_paths, "input_paths")
        self.sha256 = _to_string_list(self.sha256, "sha256")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "command": self.command,
            "input_paths": list(self.input_paths),
            "sha256": list(self.sha256),
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "rows_shown": self.rows_shown,
            "criteria": dict(self.criteria),
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
