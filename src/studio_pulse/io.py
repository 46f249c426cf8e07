"""I/O helpers — load sheet exports as raw rows, read criteria, write JSON artifacts."""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Literal, cast

import pandas as pd

# ── Loading ──────────────────────────────────────────────────────


def _frame_to_rows(df: pd.DataFrame) -> list[list[str | None]]:
    values = df.astype(object).where(df.notna(), None)
    return cast(list[list[str | None]], values.values.tolist())


def load_rows(path: Path, delimiter: str | None = None) -> list[list[str | None]]:
    """Load a CSV or Excel export and return its raw rows, header row first.

    Cells are strings, or ``None`` where the sheet is blank. No typing is
    applied here; that is the job of the normalizers.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, or CSV decoding/parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        last_exc: Exception | None = None
        sep = delimiter if delimiter else None
        engine: Literal["c", "python"] = "c" if delimiter else "python"
        for encoding in ("utf-8-sig", "utf-8", "latin-1"):
            try:
                df = pd.read_csv(
                    path,
                    header=None,
                    dtype="string",
                    sep=sep,
                    engine=engine,
                    encoding=encoding,
                    encoding_errors="strict",
                    na_filter=True,
                    keep_default_na=False,
                    na_values=[""],
                )
            except pd.errors.EmptyDataError:
                return []
            except (UnicodeDecodeError, pd.errors.ParserError) as exc:
                last_exc = exc
                continue
            return _frame_to_rows(df)
        raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc

    if suffix in (".xlsx", ".xlsm", ".xltx", ".xltm"):
        read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
        return _frame_to_rows(read_excel(path, engine="openpyxl", dtype="string", header=None))

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv or .xlsx")


def load_criteria(path: Path) -> dict[str, Any]:
    """Read a JSON criteria file (``{"trainers": [...], "minCapacity": 10, ...}``).

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the file is not valid JSON or not a JSON object.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Criteria file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Criteria path is a directory, not a file: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Criteria file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Criteria file {path} must contain a JSON object")
    return data


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
