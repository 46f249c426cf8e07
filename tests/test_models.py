from __future__ import annotations

from datetime import date

import pytest

from studio_pulse.models import (
    DateRange,
    FilterCriteria,
    IngestReport,
    PayrollCriteria,
    RunManifest,
    SessionRecord,
    Timeframe,
)


def test_ingest_report_to_dict_returns_list_copies() -> None:
    report = IngestReport(sources=2, rows_in=10, rows_out=8, duplicates_dropped=2, warnings=["dup"])

    payload = report.to_dict()
    payload["warnings"].append("another")

    assert report.warnings == ["dup"]
    assert payload["duplicates_dropped"] == 2


def test_ingest_report_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="rows_in"):
        IngestReport(rows_in=-1)

    with pytest.raises(ValueError, match="rows_out"):
        IngestReport(rows_out=-1)

    with pytest.raises(TypeError, match="sources"):
        IngestReport(sources=True)  # type: ignore[arg-type]


def test_ingest_report_rejects_inconsistent_row_relationships() -> None:
    with pytest.raises(ValueError, match="rows_out"):
        IngestReport(rows_in=2, rows_out=3)

    with pytest.raises(ValueError, match="duplicates_dropped"):
        IngestReport(rows_in=5, rows_out=4, duplicates_dropped=2)


def test_ingest_report_rejects_non_string_warnings() -> None:
    with pytest.raises(TypeError, match="warnings"):
        IngestReport(warnings=["warn", object()])  # type: ignore[list-item]

    with pytest.raises(TypeError, match="warnings"):
        IngestReport(warnings="warn")  # type: ignore[arg-type]


def test_run_manifest_rejects_non_integer_and_negative_counts() -> None:
    with pytest.raises(TypeError, match="rows_in"):
        RunManifest(rows_in=True)  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="rows_shown"):
        RunManifest(rows_shown=-2)


def test_session_record_identity_is_the_id_pair() -> None:
    record = SessionRecord(unique_id1="x", unique_id2="1")

    assert record.identity == ("x", "1")
    with pytest.raises(AttributeError):
        record.capacity = 5  # type: ignore[misc]


# ── FilterCriteria ───────────────────────────────────────────────


def test_default_criteria_is_cleared_and_hashable() -> None:
    criteria = FilterCriteria()

    assert criteria.is_cleared
    assert hash(criteria) == hash(FilterCriteria())
    assert not FilterCriteria(trainers=["Anisha"]).is_cleared
    assert not FilterCriteria(max_revenue=0).is_cleared
    assert not FilterCriteria(date_range=DateRange(end=date(2024, 1, 1))).is_cleared


def test_from_dict_accepts_dashboard_shape() -> None:
    criteria = FilterCriteria.from_dict(
        {
            "dateRange": {"start": "2024-03-01", "end": ""},
            "trainers": ["Anisha"],
            "classes": [],
            "locations": [],
            "days": ["Monday"],
            "times": [],
            "types": [],
            "minCapacity": 10,
            "maxCapacity": None,
            "minFillRate": "50",
            "maxRevenue": "12,000",
        }
    )

    assert criteria.date_range == DateRange(date(2024, 3, 1), None)
    assert criteria.trainers == ("Anisha",)
    assert criteria.days == ("Monday",)
    assert criteria.min_capacity == 10.0
    assert criteria.max_capacity is None
    assert criteria.min_fill_rate == 50.0
    assert criteria.max_revenue == 12000.0


def test_from_dict_accepts_snake_case_and_none() -> None:
    assert FilterCriteria.from_dict(None) == FilterCriteria()
    criteria = FilterCriteria.from_dict({"min_revenue": 100, "date_range": None})

    assert criteria.min_revenue == 100.0
    assert criteria.date_range.is_open


def test_to_dict_matches_dashboard_shape() -> None:
    criteria = FilterCriteria(
        date_range=DateRange(date(2024, 3, 1), date(2024, 3, 31)),
        types=("Barre",),
        min_fill_rate=25,
    )

    payload = criteria.to_dict()

    assert payload["dateRange"] == {"start": "2024-03-01", "end": "2024-03-31"}
    assert payload["types"] == ["Barre"]
    assert payload["minFillRate"] == 25.0
    assert payload["maxCapacity"] is None
    assert FilterCriteria.from_dict(payload) == criteria


def test_from_dict_rejects_malformed_configuration() -> None:
    with pytest.raises(ValueError, match="Unknown criteria key"):
        FilterCriteria.from_dict({"coach": ["Anisha"]})

    with pytest.raises(ValueError, match="ISO date"):
        FilterCriteria.from_dict({"dateRange": {"start": "01/03/2024"}})

    with pytest.raises(ValueError, match="minCapacity|min_capacity"):
        FilterCriteria.from_dict({"minCapacity": "ten"})

    with pytest.raises(TypeError, match="trainers"):
        FilterCriteria.from_dict({"trainers": "Anisha"})

    with pytest.raises(TypeError, match="min_revenue"):
        FilterCriteria.from_dict({"minRevenue": True})

    with pytest.raises(TypeError, match="JSON object"):
        FilterCriteria.from_dict(["Anisha"])  # type: ignore[arg-type]


def test_payroll_criteria_parses_timeframe() -> None:
    assert PayrollCriteria(timeframe="6M").timeframe is Timeframe.six_months
    assert PayrollCriteria().to_dict() == {"location": "all", "trainer": "all", "timeframe": "all"}

    with pytest.raises(ValueError, match="Invalid timeframe"):
        PayrollCriteria(timeframe="2w")
