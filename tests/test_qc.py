from __future__ import annotations

import json
from pathlib import Path

from studio_pulse.models import IngestReport
from studio_pulse.qc import write_ingest_report


def test_write_ingest_report_writes_expected_contract(tmp_path: Path) -> None:
    report = IngestReport(
        sources=2, rows_in=3, rows_out=2, duplicates_dropped=1, warnings=["warn"]
    )

    out = write_ingest_report(tmp_path, report)

    assert out == tmp_path / "ingest_report.json"
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data == {
        "duplicates_dropped": 1,
        "rows_in": 3,
        "rows_out": 2,
        "sources": 2,
        "warnings": ["warn"],
    }
