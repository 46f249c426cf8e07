"""Targeted tests for coercion, normalization, merge and KPI contracts."""

from __future__ import annotations

from typing import Any

import pandas as pd
import pytest

from studio_pulse import PAYROLL_FIELDS, SESSION_FIELDS
from studio_pulse.models import PayrollRecord, SessionRecord
from studio_pulse.pipeline import (
    SESSION_LAYOUT,
    compute_class_summary,
    compute_payroll_kpis,
    compute_payroll_trainer_summary,
    compute_session_kpis,
    compute_trainer_summary,
    ingest_payroll,
    ingest_sessions,
    merge_sessions,
    normalize_payroll,
    normalize_sessions,
    parse_numeric,
    resolve_layout,
)


def _session_row(**values: Any) -> list[Any]:
    return [values.get(name, "") for name in SESSION_FIELDS]


def _sessions(*rows: list[Any]) -> list[list[Any]]:
    return [list(SESSION_FIELDS), *rows]


def _payroll_row(**values: Any) -> list[Any]:
    return [values.get(name, "") for name in PAYROLL_FIELDS]


# ── Numeric coercion ────────────────────────────────────────────


def test_parse_numeric_contract_examples() -> None:
    assert parse_numeric("1,234") == 1234
    assert parse_numeric("") == 0
    assert parse_numeric("abc") == 0
    assert parse_numeric(42) == 42
    assert isinstance(parse_numeric(42), int)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 0),
        ("   ", 0),
        (pd.NA, 0),
        (float("nan"), 0),
        (True, 0),
        ("  12 ", 12),
        ("-3.5", -3.5),
        ("1,234,567.89", 1234567.89),
        ("85.5%", 85.5),
        ("$100", 0),
        ("12abc", 12),
        (".5", 0.5),
    ],
)
def test_parse_numeric_never_returns_nan(raw: object, expected: float) -> None:
    result = parse_numeric(raw)

    assert result == expected
    assert result == result  # not NaN


# ── Normalization ───────────────────────────────────────────────


def test_header_only_or_missing_source_normalizes_to_empty() -> None:
    assert normalize_sessions(None) == []
    assert normalize_sessions([]) == []
    assert normalize_sessions([list(SESSION_FIELDS)]) == []
    assert normalize_payroll([list(PAYROLL_FIELDS)]) == []


def test_normalize_sessions_types_fields_and_skips_header() -> None:
    rows = _sessions(
        _session_row(
            unique_id1="x",
            unique_id2="1",
            trainer=" Anisha ",
            class_name="Barre 57",
            capacity="1,200",
            fill_percentage="85.5",
            revenue="abc",
            date="2024-03-01",
        )
    )

    (record,) = normalize_sessions(rows)

    assert record == SessionRecord(
        unique_id1="x",
        unique_id2="1",
        trainer="Anisha",
        class_name="Barre 57",
        capacity=1200,
        fill_percentage=85.5,
        revenue=0,
        date="2024-03-01",
    )


def test_short_rows_default_text_to_empty_and_numbers_to_zero() -> None:
    rows = [list(SESSION_FIELDS), ["x", "1", "Kenkere House"]]

    (record,) = normalize_sessions(rows)

    assert record.location == "Kenkere House"
    assert record.trainer == ""
    assert record.date == ""
    assert record.capacity == 0
    assert record.revenue == 0


def test_normalize_does_not_mutate_input_rows() -> None:
    rows = _sessions(_session_row(unique_id1="x", unique_id2="1", capacity="10"))
    snapshot = [list(r) for r in rows]

    normalize_sessions(rows)

    assert rows == snapshot


def test_normalize_payroll_maps_fixed_31_column_layout() -> None:
    assert len(PAYROLL_FIELDS) == 31
    rows = [
        list(PAYROLL_FIELDS),
        _payroll_row(
            teacher_id="T1",
            teacher_name="Mrigakshi",
            location="Supreme HQ, Bandra",
            cycle_sessions="12",
            cycle_paid="15,000",
            barre_customers="40",
            total_sessions="20",
            month_year="March 2024",
            unique="35",
            converted="5",
            conversion="14.3%",
            new="7",
        ),
    ]

    (record,) = normalize_payroll(rows)

    assert record.teacher_id == "T1"
    assert record.location == "Supreme HQ, Bandra"
    assert record.cycle_sessions == 12
    assert record.cycle_paid == 15000
    assert record.barre_customers == 40
    assert record.month_year == "March 2024"
    assert record.unique == "35"
    assert record.converted == 5
    assert record.conversion == "14.3%"
    assert record.new == 7
    assert record.strength_sessions == 0


def test_resolve_layout_maps_renamed_headers() -> None:
    header = ["Class ID", "Slot ID", "Max Capacity"]

    layout = resolve_layout(
        header, {"unique_id1": "class id", "capacity": "Max  Capacity"}, SESSION_LAYOUT
    )

    assert layout["unique_id1"] == 0
    assert layout["capacity"] == 2
    assert layout["unique_id2"] == SESSION_LAYOUT["unique_id2"]


def test_resolve_layout_rejects_unknown_field_and_header() -> None:
    with pytest.raises(ValueError, match="Unknown field"):
        resolve_layout(["a"], {"coach": "a"}, SESSION_LAYOUT)

    with pytest.raises(ValueError, match="not found"):
        resolve_layout(["a"], {"trainer": "Coach"}, SESSION_LAYOUT)


# ── Merge ───────────────────────────────────────────────────────


def test_merge_first_seen_record_wins() -> None:
    first = [SessionRecord(unique_id1="x", unique_id2="1", location="L1", capacity=10)]
    second = [SessionRecord(unique_id1="x", unique_id2="1", location="L1", capacity=20)]

    merged = merge_sessions(first, second)

    assert len(merged) == 1
    assert merged[0].capacity == 10
    assert merge_sessions(second, first)[0].capacity == 20


def test_merge_uses_both_identity_halves() -> None:
    records = [
        SessionRecord(unique_id1="x", unique_id2="1"),
        SessionRecord(unique_id1="x", unique_id2="2"),
        SessionRecord(unique_id1="y", unique_id2="1"),
        SessionRecord(unique_id1="x", unique_id2="1", trainer="dup"),
    ]

    merged = merge_sessions(records)

    assert [r.identity for r in merged] == [("x", "1"), ("x", "2"), ("y", "1")]
    assert len({r.identity for r in merged}) == len(merged)


def test_merge_with_itself_is_idempotent() -> None:
    records = [
        SessionRecord(unique_id1="a", unique_id2="1", revenue=5),
        SessionRecord(unique_id1="b", unique_id2="1", revenue=6),
    ]

    assert merge_sessions(records, records) == records
    assert merge_sessions(merge_sessions(records)) == records


def test_merge_treats_missing_sources_as_empty() -> None:
    records = [SessionRecord(unique_id1="a", unique_id2="1")]

    assert merge_sessions(None, records, None) == records
    assert merge_sessions() == []


# ── Ingest ──────────────────────────────────────────────────────


def test_ingest_sessions_reports_duplicates_and_bad_cells() -> None:
    recurring = _sessions(
        _session_row(unique_id1="x", unique_id2="1", capacity="10", date="2024-03-01"),
        _session_row(unique_id1="y", unique_id2="1", capacity="n/a", date="someday"),
    )
    one_off = _sessions(
        _session_row(unique_id1="x", unique_id2="1", capacity="20", date="2024-03-01"),
    )

    records, report = ingest_sessions(recurring, one_off)

    assert [r.capacity for r in records] == [10, 0]
    assert report.sources == 2
    assert report.rows_in == 3
    assert report.rows_out == 2
    assert report.duplicates_dropped == 1
    assert any("Dropped 1 duplicate" in w for w in report.warnings)
    assert any("Coerced 1 non-numeric value in capacity" in w for w in report.warnings)
    assert any("unparseable dates" in w for w in report.warnings)


def test_ingest_sessions_handles_missing_and_header_only_sources() -> None:
    records, report = ingest_sessions(None, [list(SESSION_FIELDS)])

    assert records == []
    assert report.rows_in == 0
    assert report.rows_out == 0
    assert any("Source 1 is missing" in w for w in report.warnings)
    assert any("Source 2 has no data rows" in w for w in report.warnings)


def test_ingest_sessions_requires_one_layout_per_source() -> None:
    with pytest.raises(ValueError, match="one layout per source"):
        ingest_sessions([], [], layouts=[SESSION_LAYOUT])


def test_ingest_payroll_flags_unparseable_month_year() -> None:
    rows = [
        list(PAYROLL_FIELDS),
        _payroll_row(teacher_id="T1", month_year="March 2024"),
        _payroll_row(teacher_id="T2", month_year="Q1 2024"),
    ]

    records, report = ingest_payroll(rows)

    assert len(records) == 2
    assert report.rows_in == report.rows_out == 2
    assert report.duplicates_dropped == 0
    assert any("1 payroll rows" in w for w in report.warnings)


# ── KPIs ────────────────────────────────────────────────────────


def _kpi_records() -> list[SessionRecord]:
    return [
        SessionRecord("a", "1", trainer="Anisha", class_name="Barre 57",
                      capacity=20, fill_percentage=50, revenue=100),
        SessionRecord("b", "1", trainer="Rohan", class_name="PowerCycle",
                      capacity=10, fill_percentage=100, revenue=300),
        SessionRecord("c", "1", trainer="Anisha", class_name="Barre 57",
                      capacity=30, fill_percentage=60, revenue=250),
    ]


def test_session_kpis_contract() -> None:
    kpis = compute_session_kpis(_kpi_records())

    assert kpis == {
        "Total Sessions": 3,
        "Total Capacity": 60,
        "Avg Fill %": 70.0,
        "Total Revenue": 650.0,
        "Top Trainer": "Anisha",
        "Top Class": "Barre 57",
    }


def test_kpi_helpers_return_empty_contract_outputs() -> None:
    assert compute_session_kpis([]) == {
        "Total Sessions": 0,
        "Total Capacity": 0,
        "Avg Fill %": 0,
        "Total Revenue": 0,
        "Top Trainer": "N/A",
        "Top Class": "N/A",
    }
    summary = compute_trainer_summary([])
    assert list(summary.columns) == ["trainer", "sessions", "revenue", "avg_fill_percentage"]
    assert summary.empty


def test_trainer_summary_sorted_by_revenue() -> None:
    summary = compute_trainer_summary(_kpi_records())

    assert summary["trainer"].tolist() == ["Anisha", "Rohan"]
    assert summary["sessions"].tolist() == [2, 1]
    assert summary["revenue"].tolist() == [350.0, 300.0]
    assert summary["avg_fill_percentage"].tolist() == [55.0, 100.0]


def test_payroll_kpis_average_over_non_empty_sessions() -> None:
    rows = [
        list(PAYROLL_FIELDS),
        _payroll_row(cycle_sessions="10", non_empty_cycle_sessions="8",
                     cycle_customers="40", cycle_paid="1,000",
                     total_sessions="10", total_non_empty_sessions="8",
                     total_customers="40", total_paid="1000"),
        _payroll_row(barre_sessions="4", non_empty_barre_sessions="0",
                     total_sessions="4"),
    ]

    kpis = compute_payroll_kpis(normalize_payroll(rows))

    assert kpis["Cycle Sessions"] == 10
    assert kpis["Cycle Paid"] == 1000.0
    assert kpis["Cycle Avg Customers"] == 5.0
    assert kpis["Barre Sessions"] == 4
    assert kpis["Barre Avg Customers"] == 0
    assert kpis["Total Sessions"] == 14
    assert kpis["Total Avg Customers"] == 5.0


def test_class_summary_sorted_by_revenue() -> None:
    summary = compute_class_summary(_kpi_records())

    assert list(summary.columns) == ["class_name", "sessions", "revenue", "avg_fill_percentage"]
    assert summary["class_name"].tolist() == ["Barre 57", "PowerCycle"]
    assert summary["sessions"].tolist() == [2, 1]
    assert summary["revenue"].tolist() == [350.0, 300.0]
    assert summary["avg_fill_percentage"].tolist() == [55.0, 100.0]
    assert compute_class_summary([]).empty


def test_payroll_trainer_summary_sums_rows_per_trainer() -> None:
    records = [
        PayrollRecord(teacher_id="T1", teacher_name="Anisha", month_year="March 2024",
                      cycle_sessions=4, total_sessions=4, total_non_empty_sessions=4,
                      total_customers=20, total_paid=4000),
        PayrollRecord(teacher_id="T2", teacher_name="Rohan", month_year="March 2024",
                      barre_sessions=2, total_sessions=2, total_non_empty_sessions=0,
                      total_customers=0, total_paid=9000),
        PayrollRecord(teacher_id="T1", teacher_name="Anisha", month_year="April 2024",
                      strength_sessions=6, total_sessions=6, total_non_empty_sessions=6,
                      total_customers=30, total_paid=6000),
    ]

    summary = compute_payroll_trainer_summary(records)

    assert summary["trainer"].tolist() == ["Anisha", "Rohan"]
    assert summary["total_paid"].tolist() == [10000, 9000]
    assert summary["total_sessions"].tolist() == [10, 2]
    assert summary["cycle_sessions"].tolist() == [4, 0]
    assert summary["strength_sessions"].tolist() == [6, 0]
    assert summary["barre_sessions"].tolist() == [0, 2]
    assert summary["avg_customers"].tolist() == [5.0, 0.0]
    assert compute_payroll_trainer_summary([]).empty
