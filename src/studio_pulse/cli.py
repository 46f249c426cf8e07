"""CLI entry point for studio-pulse."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from studio_pulse import ALL, __version__
from studio_pulse.dimensions import payroll_options, session_options
from studio_pulse.filters import filter_payroll, filter_sessions
from studio_pulse.io import load_criteria, load_rows, write_json
from studio_pulse.models import (
    FilterCriteria,
    IngestReport,
    PayrollCriteria,
    RunManifest,
    Timeframe,
)
from studio_pulse.pipeline import (
    PAYROLL_LAYOUT,
    SESSION_LAYOUT,
    Layout,
    compute_class_summary,
    compute_payroll_kpis,
    compute_payroll_trainer_summary,
    compute_session_kpis,
    compute_trainer_summary,
    ingest_payroll,
    ingest_sessions,
    resolve_layout,
)
from studio_pulse.qc import write_ingest_report
from studio_pulse.report import write_payroll_report, write_report
from studio_pulse.utils import records_to_dicts, sha256_file, utcnow_iso

app = typer.Typer(
    name="spulse",
    help="studio-pulse — Slice fitness-studio session and payroll sheets into reports.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

Rows = list[list[str | None]]


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {escape(msg)}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"studio-pulse v{__version__}")
        raise typer.Exit()


def _normalize_field_name(name: object) -> str:
    return re.sub(r"\s+", "_", str(name).strip().lower())


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map field=Header`` pairs into ``{field: header}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = item.split("=", 1)
        field_norm = _normalize_field_name(field_name)
        header = header.strip()
        if not field_norm or not header:
            raise ValueError("--map entries must have non-empty field and header (field=Header)")
        if field_norm in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for field {escape(repr(field_norm))}")
        mapping[field_norm] = header
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``field=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like revenue=Sales)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _build_criteria(
    criteria_file: Path | None, overrides: Mapping[str, Any]
) -> FilterCriteria:
    """Merge the criteria file with command-line overrides (flags win)."""
    raw: dict[str, Any] = dict(load_criteria(criteria_file)) if criteria_file else {}
    for key, value in overrides.items():
        if value is None or value == []:
            continue
        if key in ("start", "end"):
            date_range = dict(raw.get("dateRange") or raw.pop("date_range", None) or {})
            date_range[key] = value
            raw["dateRange"] = date_range
        else:
            raw[key] = value
    return FilterCriteria.from_dict(raw)


def _resolve_layouts(
    sources: Sequence[Rows], mapping: dict[str, str], default: Layout
) -> list[dict[str, int]]:
    return [resolve_layout(rows[0] if rows else [], mapping, default) for rows in sources]


def _hash_inputs(paths: Sequence[Path]) -> list[str]:
    hashes: list[str] = []
    for path in paths:
        try:
            hashes.append(sha256_file(path))
        except OSError:
            hashes.append("")
    return hashes


def _write_manifest(
    out_dir: Path,
    command: str,
    inputs: Sequence[Path],
    created_at: str,
    ingest: IngestReport,
    *,
    rows_shown: int = 0,
    criteria: dict[str, Any] | None = None,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    manifest = RunManifest(
        version=__version__,
        command=command,
        input_paths=[str(p.resolve()) for p in inputs],
        sha256=_hash_inputs(inputs),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=ingest.rows_in,
        rows_out=ingest.rows_out,
        rows_shown=rows_shown,
        criteria=criteria or {},
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    command: str,
    inputs: Sequence[Path],
    created_at: str,
    *,
    message: str,
    error_code: int = 2,
) -> typer.Exit:
    """Write failure artifacts, report *message* and return the exit to raise."""
    ingest = IngestReport(warnings=[message])
    report_path = write_ingest_report(out_dir, ingest)
    manifest_path = _write_manifest(
        out_dir,
        command,
        inputs,
        created_at,
        ingest,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Ingest report -> {escape(str(report_path))}")
    console.print(f"  Manifest      -> {escape(str(manifest_path))}")
    return typer.Exit(code=error_code)


def _load_sources(paths: Sequence[Path], echo: Callable[..., None]) -> list[Rows]:
    loaded: list[Rows] = []
    for path in paths:
        echo(f"[blue]>[/blue] Loading {escape(path.name)} …")
        rows = load_rows(path)
        echo(f"  {max(len(rows) - 1, 0)} data rows")
        loaded.append(rows)
    return loaded


def _print_warnings(report: IngestReport) -> None:
    for w in report.warnings:
        console.print(f"  [yellow]![/yellow] {escape(w)}")


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """studio-pulse CLI."""


# ── sessions command ─────────────────────────────────────────────


@app.command()
def sessions(
    sources: list[Path] = typer.Option(
        ..., "--source", "-s",
        help="Session export (CSV/XLSX). Repeat for more sources; earlier sources win duplicates.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for report, JSON views and manifest.",
    ),
    criteria_file: Path | None = typer.Option(
        None, "--criteria", "-c",
        help="JSON file with filter criteria (dateRange, trainers, minCapacity, ...).",
    ),
    location: str = typer.Option(
        ALL, "--location", "-l",
        help="Location tab: a single location, or 'all'.",
    ),
    trainers: list[str] | None = typer.Option(None, "--trainer", help="Trainer to include (repeatable)."),
    classes: list[str] | None = typer.Option(None, "--class", help="Class to include (repeatable)."),
    locations: list[str] | None = typer.Option(
        None, "--in-location", help="Location to include (repeatable)."
    ),
    days: list[str] | None = typer.Option(None, "--day", help="Day to include (repeatable)."),
    times: list[str] | None = typer.Option(None, "--time", help="Time slot to include (repeatable)."),
    types: list[str] | None = typer.Option(None, "--type", help="Class type to include (repeatable)."),
    min_capacity: float | None = typer.Option(None, "--min-capacity"),
    max_capacity: float | None = typer.Option(None, "--max-capacity"),
    min_fill_rate: float | None = typer.Option(None, "--min-fill-rate"),
    max_fill_rate: float | None = typer.Option(None, "--max-fill-rate"),
    min_revenue: float | None = typer.Option(None, "--min-revenue"),
    max_revenue: float | None = typer.Option(None, "--max-revenue"),
    start: str | None = typer.Option(None, "--start", help="First session date (YYYY-MM-DD), inclusive."),
    end: str | None = typer.Option(None, "--end", help="Last session date (YYYY-MM-DD), inclusive."),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column mapping: field=Header. E.g. --map revenue='Total Revenue'",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing column mappings (field=Header lines).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Merge session sources, filter them and write the sessions report."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    command = "sessions"
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
        criteria = _build_criteria(
            criteria_file,
            {
                "trainers": trainers,
                "classes": classes,
                "locations": locations,
                "days": days,
                "times": times,
                "types": types,
                "minCapacity": min_capacity,
                "maxCapacity": max_capacity,
                "minFillRate": min_fill_rate,
                "maxFillRate": max_fill_rate,
                "minRevenue": min_revenue,
                "maxRevenue": max_revenue,
                "start": start,
                "end": end,
            },
        )
    except (ValueError, TypeError, OSError) as exc:
        raise _fail(out_dir, command, sources, created_at, message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]studio-pulse[/bold] v{__version__}\n"
            f"Sources: {escape(', '.join(str(s) for s in sources))}\nOutput:  {escape(str(out_dir))}",
            title="Sessions", border_style="blue",
        ))
        if mapping:
            console.print(f"  Column map: {escape(str(mapping))}")
        if location != ALL:
            console.print(f"  Location tab: {escape(location)}")

    # ── Load ─────────────────────────────────────────────────────
    try:
        raw_sources = _load_sources(sources, echo)
        layouts = _resolve_layouts(raw_sources, mapping, SESSION_LAYOUT)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, command, sources, created_at, message=str(exc))

    try:
        # ── Normalize + merge ────────────────────────────────────
        echo("[blue]>[/blue] Normalizing and merging …")
        canonical, ingest = ingest_sessions(*raw_sources, layouts=layouts)
        report_path = write_ingest_report(out_dir, ingest)
        echo(f"  Ingest report -> {escape(str(report_path))}")
        if not quiet:
            _print_warnings(ingest)
            console.print(f"  {ingest.rows_out} canonical sessions")

        # ── Options + filter ─────────────────────────────────────
        options = session_options(canonical)
        view = filter_sessions(canonical, criteria, location=location)
        echo(f"[blue]>[/blue] {len(view)} of {len(canonical)} sessions match the filters")
        write_json(out_dir / "options.json", options)
        write_json(out_dir / "filtered_sessions.json", records_to_dicts(view))

        # ── Report ───────────────────────────────────────────────
        echo("[blue]>[/blue] Writing Sessions_Report.xlsx …")
        criteria_payload = {**criteria.to_dict(), "location": location}
        xlsx_path = write_report(
            out_dir,
            view,
            compute_session_kpis(view),
            compute_trainer_summary(view),
            compute_class_summary(view),
            options,
            ingest=ingest,
            criteria=criteria_payload,
        )
        echo(f"  Report -> {escape(str(xlsx_path))}")

        manifest_path = _write_manifest(
            out_dir,
            command,
            sources,
            created_at,
            ingest,
            rows_shown=len(view),
            criteria=criteria_payload,
        )
        echo(f"  Manifest -> {escape(str(manifest_path))}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {len(view)} sessions -> {escape(str(xlsx_path))}",
                title="Sessions Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            command,
            sources,
            created_at,
            message=f"Unexpected internal error: {exc}",
            error_code=1,
        )


# ── payroll command ──────────────────────────────────────────────


@app.command()
def payroll(
    source: Path = typer.Option(
        ..., "--source", "-s",
        help="Payroll export (CSV/XLSX) in the 31-column payroll layout.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for report, JSON view and manifest.",
    ),
    location: str = typer.Option(ALL, "--location", "-l", help="Location, or 'all'."),
    trainer: str = typer.Option(ALL, "--trainer", "-t", help="Trainer name, or 'all'."),
    timeframe: Timeframe = typer.Option(
        Timeframe.all, "--timeframe",
        help="Relative window counted back from now.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column mapping: field=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing column mappings (field=Header lines).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Filter the payroll sheet by location, trainer and timeframe."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    command = "payroll"
    out_dir.mkdir(parents=True, exist_ok=True)
    criteria = PayrollCriteria(location=location, trainer=trainer, timeframe=timeframe)

    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
        (rows,) = _load_sources([source], echo)
        (layout,) = _resolve_layouts([rows], mapping, PAYROLL_LAYOUT)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, command, [source], created_at, message=str(exc))

    try:
        records, ingest = ingest_payroll(rows, layout)
        report_path = write_ingest_report(out_dir, ingest)
        echo(f"  Ingest report -> {escape(str(report_path))}")
        if not quiet:
            _print_warnings(ingest)

        view = filter_payroll(records, criteria)
        echo(f"[blue]>[/blue] {len(view)} of {len(records)} payroll rows match the filters")
        write_json(out_dir / "options.json", payroll_options(records))
        write_json(out_dir / "filtered_payroll.json", records_to_dicts(view))

        xlsx_path = write_payroll_report(
            out_dir,
            view,
            compute_payroll_kpis(view),
            compute_payroll_trainer_summary(view),
            ingest=ingest,
            criteria=criteria.to_dict(),
        )
        echo(f"  Report -> {escape(str(xlsx_path))}")
        manifest_path = _write_manifest(
            out_dir,
            command,
            [source],
            created_at,
            ingest,
            rows_shown=len(view),
            criteria=criteria.to_dict(),
        )
        echo(f"  Manifest -> {escape(str(manifest_path))}")
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir,
            command,
            [source],
            created_at,
            message=f"Unexpected internal error: {exc}",
            error_code=1,
        )


# ── options command ──────────────────────────────────────────────


@app.command()
def options(
    sources: list[Path] = typer.Option(
        ..., "--source", "-s",
        help="Session export (CSV/XLSX). Repeat for more sources.",
        exists=True, readable=True,
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column mapping: field=Header.",
    ),
) -> None:
    """Print the filter options available across the merged session sources."""
    try:
        mapping = _parse_column_map(col_map)
        raw_sources = _load_sources(sources, _noop)
        layouts = _resolve_layouts(raw_sources, mapping, SESSION_LAYOUT)
    except (FileNotFoundError, ValueError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    canonical, _ingest = ingest_sessions(*raw_sources, layouts=layouts)
    tbl = RichTable(title="Filter Options", show_lines=True)
    tbl.add_column("Dimension", style="bold")
    tbl.add_column("Count", justify="right")
    tbl.add_column("Values")
    for dimension, values in session_options(canonical).items():
        listed = ", ".join(escape(str(v)) for v in values)
        tbl.add_row(dimension, str(len(values)), listed or "[dim]none[/dim]")
    console.print(tbl)
    console.print(f"  {len(canonical)} canonical sessions")
