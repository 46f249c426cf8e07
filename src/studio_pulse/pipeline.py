"""Normalization, merge + KPI pipeline — pure functions, no side effects."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict
from numbers import Real
from typing import Any

import pandas as pd

from studio_pulse import PAYROLL_FIELDS, SESSION_FIELDS
from studio_pulse.dates import parse_month_year, parse_session_date
from studio_pulse.models import IngestReport, PayrollRecord, SessionRecord

Row = Sequence[Any]
Layout = Mapping[str, int]

SESSION_LAYOUT: dict[str, int] = {name: idx for idx, name in enumerate(SESSION_FIELDS)}
PAYROLL_LAYOUT: dict[str, int] = {name: idx for idx, name in enumerate(PAYROLL_FIELDS)}

_SESSION_NUMERIC = frozenset({"capacity", "fill_percentage", "revenue"})
_PAYROLL_TEXT = frozenset(
    {
        "teacher_id",
        "teacher_name",
        "teacher_email",
        "location",
        "month_year",
        "unique",
        "conversion",
        "retention",
    }
)
_PAYROLL_NUMERIC = frozenset(PAYROLL_FIELDS) - _PAYROLL_TEXT

# Leading decimal literal, the part of a cell a spreadsheet parseFloat would read.
_LEADING_NUMBER_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# ── Numeric coercion ────────────────────────────────────────────


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _numeric_prefix(value: object) -> float | None:
    match = _LEADING_NUMBER_RE.match(str(value).replace(",", ""))
    if match is None:
        return None
    result = float(match.group(0))
    return result if math.isfinite(result) else None


def parse_numeric(value: object) -> float:
    """Coerce a loosely formatted cell into a number.

    Numbers pass through unchanged; thousands separators are stripped from
    text. Blank or non-numeric input yields ``0``; NaN is never returned.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, Real):
        return 0 if math.isnan(float(value)) else value  # type: ignore[return-value]
    if _is_blank(value):
        return 0
    parsed = _numeric_prefix(value)
    return 0 if parsed is None else parsed


def _is_unparseable_numeric(value: object) -> bool:
    if isinstance(value, (bool, Real)) or _is_blank(value):
        return False
    return _numeric_prefix(value) is None


# ── Layouts ─────────────────────────────────────────────────────


def _normalize_header_name(name: object) -> str:
    return re.sub(r"\s+", " ", str(name).strip().lower())


def resolve_layout(
    header: Row, mapping: Mapping[str, str], default: Layout
) -> dict[str, int]:
    """Return *default* with ``{field: header name}`` overrides resolved to indexes.

    Raises
    ------
    ValueError
        If a field is not part of *default* or a header name is not present.
    """
    layout = dict(default)
    if not mapping:
        return layout
    positions: dict[str, int] = {}
    for idx, name in enumerate(header):
        if _is_blank(name):
            continue
        positions.setdefault(_normalize_header_name(name), idx)
    for field_name, header_name in mapping.items():
        if field_name not in layout:
            raise ValueError(
                f"Unknown field {field_name!r}. Expected one of: {', '.join(layout)}"
            )
        key = _normalize_header_name(header_name)
        if key not in positions:
            raise ValueError(f"Column {header_name!r} not found in header row")
        layout[field_name] = positions[key]
    return layout


# ── Record normalization ────────────────────────────────────────


def _cell(row: Row, idx: int) -> Any:
    return row[idx] if 0 <= idx < len(row) else None


def _text(value: object) -> str:
    if _is_blank(value):
        return ""
    return str(value).strip()


def _data_rows(rows: Sequence[Row] | None) -> Sequence[Row]:
    # Header row is always discarded; header-only sources carry no records.
    if not rows or len(rows) < 2:
        return []
    return rows[1:]


def _session_from_row(row: Row, layout: Layout) -> SessionRecord:
    values: dict[str, Any] = {}
    for name, idx in layout.items():
        raw = _cell(row, idx)
        values[name] = parse_numeric(raw) if name in _SESSION_NUMERIC else _text(raw)
    return SessionRecord(**values)


def _payroll_from_row(row: Row, layout: Layout) -> PayrollRecord:
    values: dict[str, Any] = {}
    for name, idx in layout.items():
        raw = _cell(row, idx)
        values[name] = parse_numeric(raw) if name in _PAYROLL_NUMERIC else _text(raw)
    return PayrollRecord(**values)


def normalize_sessions(
    rows: Sequence[Row] | None, layout: Layout = SESSION_LAYOUT
) -> list[SessionRecord]:
    """Map raw session rows (header first) into :class:`SessionRecord` objects."""
    return [_session_from_row(row, layout) for row in _data_rows(rows)]


def normalize_payroll(
    rows: Sequence[Row] | None, layout: Layout = PAYROLL_LAYOUT
) -> list[PayrollRecord]:
    """Map raw payroll rows (header first, 31 columns) into :class:`PayrollRecord` objects."""
    return [_payroll_from_row(row, layout) for row in _data_rows(rows)]


# ── Deduplication & merge ───────────────────────────────────────


def merge_sessions(*sources: Iterable[SessionRecord] | None) -> list[SessionRecord]:
    """Merge session collections into one canonical collection.

    Sources are concatenated in argument order and the first record seen for
    each ``(unique_id1, unique_id2)`` identity wins; later duplicates are
    dropped silently. Pass the preferred source first.
    """
    seen: set[tuple[str, str]] = set()
    merged: list[SessionRecord] = []
    for source in sources:
        for record in source or ():
            key = record.identity
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)
    return merged


def _count_unparseable_numeric(
    rows: Sequence[Row], layout: Layout, numeric_fields: frozenset[str]
) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        for name, idx in layout.items():
            if name in numeric_fields and _is_unparseable_numeric(_cell(row, idx)):
                counts[name] = counts.get(name, 0) + 1
    return counts


def _numeric_warnings(counts: Mapping[str, int]) -> list[str]:
    warnings: list[str] = []
    for name in sorted(counts):
        count = counts[name]
        suffix = "" if count == 1 else "s"
        warnings.append(f"Coerced {count} non-numeric value{suffix} in {name} to 0")
    return warnings


def ingest_sessions(
    *raw_sources: Sequence[Row] | None,
    layouts: Sequence[Layout] | None = None,
) -> tuple[list[SessionRecord], IngestReport]:
    """Normalize and merge raw session sources in the given order.

    Returns ``(canonical_records, ingest_report)``. Data problems are reported
    as warnings, never raised.
    """
    if layouts is not None and len(layouts) != len(raw_sources):
        raise ValueError("layouts must provide one layout per source")

    collections: list[list[SessionRecord]] = []
    warnings: list[str] = []
    numeric_counts: dict[str, int] = {}
    for pos, rows in enumerate(raw_sources):
        layout = layouts[pos] if layouts is not None else SESSION_LAYOUT
        if rows is None:
            warnings.append(f"Source {pos + 1} is missing; treated as empty")
        elif len(rows) < 2:
            warnings.append(f"Source {pos + 1} has no data rows")
        collections.append(normalize_sessions(rows, layout))
        for name, count in _count_unparseable_numeric(
            _data_rows(rows), layout, _SESSION_NUMERIC
        ).items():
            numeric_counts[name] = numeric_counts.get(name, 0) + count

    merged = merge_sessions(*collections)
    rows_in = sum(len(c) for c in collections)
    duplicates = rows_in - len(merged)

    warnings.extend(_numeric_warnings(numeric_counts))
    if duplicates:
        warnings.append(
            f"Dropped {duplicates} duplicate sessions (same unique_id1 + unique_id2)"
        )
    bad_dates = sum(1 for r in merged if parse_session_date(r.date) is None)
    if bad_dates:
        warnings.append(
            f"Found {bad_dates} sessions with missing or unparseable dates; "
            "they are hidden whenever a date range is active"
        )
    if rows_in and not merged:
        warnings.append("Canonical session collection is empty")

    report = IngestReport(
        sources=len(raw_sources),
        rows_in=rows_in,
        rows_out=len(merged),
        duplicates_dropped=duplicates,
        warnings=warnings,
    )
    return merged, report


def ingest_payroll(
    rows: Sequence[Row] | None, layout: Layout = PAYROLL_LAYOUT
) -> tuple[list[PayrollRecord], IngestReport]:
    """Normalize the payroll source. Returns ``(records, ingest_report)``."""
    warnings: list[str] = []
    if rows is None:
        warnings.append("Payroll source is missing; treated as empty")
    elif len(rows) < 2:
        warnings.append("Payroll source has no data rows")

    records = normalize_payroll(rows, layout)
    warnings.extend(
        _numeric_warnings(_count_unparseable_numeric(_data_rows(rows), layout, _PAYROLL_NUMERIC))
    )
    bad_months = sum(1 for r in records if parse_month_year(r.month_year) is None)
    if bad_months:
        warnings.append(
            f"Found {bad_months} payroll rows with missing or unparseable month-year; "
            "they are hidden whenever a timeframe is active"
        )

    report = IngestReport(
        sources=0 if rows is None else 1,
        rows_in=len(records),
        rows_out=len(records),
        duplicates_dropped=0,
        warnings=warnings,
    )
    return records, report


# ── Summary / KPI helpers ───────────────────────────────────────


def records_to_frame(
    records: Sequence[SessionRecord] | Sequence[PayrollRecord], columns: Sequence[str]
) -> pd.DataFrame:
    """Return *records* as a DataFrame with *columns* in field order."""
    if not records:
        return pd.DataFrame(columns=list(columns))
    return pd.DataFrame([asdict(r) for r in records], columns=list(columns))


def compute_session_kpis(records: Sequence[SessionRecord]) -> dict[str, Any]:
    """Return a dict of top-level KPIs for the Dashboard sheet."""
    if not records:
        return {
            "Total Sessions": 0,
            "Total Capacity": 0,
            "Avg Fill %": 0,
            "Total Revenue": 0,
            "Top Trainer": "N/A",
            "Top Class": "N/A",
        }

    df = records_to_frame(records, SESSION_FIELDS)
    named_trainers = df[df["trainer"] != ""]
    named_classes = df[df["class_name"] != ""]
    top_trainer = (
        named_trainers.groupby("trainer", sort=False)["revenue"].sum().idxmax()
        if not named_trainers.empty
        else "N/A"
    )
    top_class = (
        named_classes.groupby("class_name", sort=False)["revenue"].sum().idxmax()
        if not named_classes.empty
        else "N/A"
    )

    return {
        "Total Sessions": len(df),
        "Total Capacity": int(df["capacity"].sum()),
        "Avg Fill %": round(float(df["fill_percentage"].mean()), 2),
        "Total Revenue": round(float(df["revenue"].sum()), 2),
        "Top Trainer": top_trainer,
        "Top Class": top_class,
    }


def _session_summary(records: Sequence[SessionRecord], key: str, n: int) -> pd.DataFrame:
    columns = [key, "sessions", "revenue", "avg_fill_percentage"]
    if not records:
        return pd.DataFrame(columns=columns)
    df = records_to_frame(records, SESSION_FIELDS)
    df = df[df[key] != ""]
    if df.empty:
        return pd.DataFrame(columns=columns)
    summary = (
        df.groupby(key, as_index=False, sort=False)
        .agg(
            sessions=("unique_id1", "size"),
            revenue=("revenue", "sum"),
            avg_fill_percentage=("fill_percentage", "mean"),
        )
        .sort_values("revenue", ascending=False, kind="stable")
        .head(n)
        .reset_index(drop=True)
    )
    summary["avg_fill_percentage"] = summary["avg_fill_percentage"].round(2)
    return summary[columns]


def compute_trainer_summary(records: Sequence[SessionRecord], n: int = 10) -> pd.DataFrame:
    """Return top N trainers by revenue (sessions, revenue, average fill)."""
    return _session_summary(records, "trainer", n)


def compute_class_summary(records: Sequence[SessionRecord], n: int = 10) -> pd.DataFrame:
    """Return top N classes by revenue (sessions, revenue, average fill)."""
    return _session_summary(records, "class_name", n)


# family label -> (sessions, non-empty sessions, customers, paid) field names
_FAMILY_FIELDS: dict[str, tuple[str, str, str, str]] = {
    "Cycle": ("cycle_sessions", "non_empty_cycle_sessions", "cycle_customers", "cycle_paid"),
    "Strength": (
        "strength_sessions",
        "non_empty_strength_sessions",
        "strength_customers",
        "strength_paid",
    ),
    "Barre": ("barre_sessions", "non_empty_barre_sessions", "barre_customers", "barre_paid"),
    "Total": ("total_sessions", "total_non_empty_sessions", "total_customers", "total_paid"),
}


def compute_payroll_kpis(records: Sequence[PayrollRecord]) -> dict[str, Any]:
    """Per-family session, customer and payout totals for the payroll view."""
    kpis: dict[str, Any] = {}
    for label, (sessions_f, non_empty_f, customers_f, paid_f) in _FAMILY_FIELDS.items():
        sessions = sum(getattr(r, sessions_f) for r in records)
        non_empty = sum(getattr(r, non_empty_f) for r in records)
        customers = sum(getattr(r, customers_f) for r in records)
        paid = sum(getattr(r, paid_f) for r in records)
        kpis[f"{label} Sessions"] = sessions
        kpis[f"{label} Customers"] = customers
        kpis[f"{label} Paid"] = round(float(paid), 2)
        # Average over sessions that had at least one customer.
        kpis[f"{label} Avg Customers"] = round(customers / non_empty, 2) if non_empty else 0
    return kpis


_PAYROLL_TRAINER_COLUMNS = [
    "trainer",
    "cycle_sessions",
    "strength_sessions",
    "barre_sessions",
    "total_sessions",
    "total_customers",
    "total_paid",
    "avg_customers",
]


def compute_payroll_trainer_summary(records: Sequence[PayrollRecord]) -> pd.DataFrame:
    """Per-trainer session, customer and payout totals, highest payout first.

    Rows for the same trainer across months and locations are summed;
    ``avg_customers`` divides customers by non-empty sessions.
    """
    if not records:
        return pd.DataFrame(columns=_PAYROLL_TRAINER_COLUMNS)
    df = records_to_frame(records, PAYROLL_FIELDS)
    df = df[df["teacher_name"] != ""]
    if df.empty:
        return pd.DataFrame(columns=_PAYROLL_TRAINER_COLUMNS)
    summary = (
        df.groupby("teacher_name", as_index=False, sort=False)
        .agg(
            cycle_sessions=("cycle_sessions", "sum"),
            strength_sessions=("strength_sessions", "sum"),
            barre_sessions=("barre_sessions", "sum"),
            total_sessions=("total_sessions", "sum"),
            total_non_empty_sessions=("total_non_empty_sessions", "sum"),
            total_customers=("total_customers", "sum"),
            total_paid=("total_paid", "sum"),
        )
        .rename(columns={"teacher_name": "trainer"})
        .sort_values("total_paid", ascending=False, kind="stable")
        .reset_index(drop=True)
    )
    non_empty = summary["total_non_empty_sessions"]
    summary["avg_customers"] = (
        (summary["total_customers"] / non_empty.where(non_empty != 0)).fillna(0).round(2)
    )
    return summary[_PAYROLL_TRAINER_COLUMNS]
