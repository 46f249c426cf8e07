"""Distinct per-dimension values used to populate filter controls."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from studio_pulse.models import PayrollRecord, SessionRecord

Accessor = Callable[[Any], Any]

# option key -> SessionRecord attribute
SESSION_DIMENSIONS: dict[str, str] = {
    "trainers": "trainer",
    "classes": "class_name",
    "locations": "location",
    "days": "day",
    "times": "time",
    "types": "session_type",
}

PAYROLL_DIMENSIONS: dict[str, str] = {
    "trainers": "teacher_name",
    "locations": "location",
    "months": "month_year",
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def distinct_values(records: Iterable[Any] | None, attribute: str | Accessor) -> list[Any]:
    """Return the non-empty values of *attribute* in first-occurrence order.

    *attribute* is either a field name or a callable taking a record.
    """
    if records is None:
        return []
    accessor: Accessor
    if callable(attribute):
        accessor = attribute
    else:
        name = attribute

        def accessor(record: Any) -> Any:
            return getattr(record, name, None)

    # dict keeps insertion order, which is the first-seen order
    seen: dict[Any, None] = {}
    for record in records:
        value = accessor(record)
        if _is_empty(value) or value in seen:
            continue
        seen[value] = None
    return list(seen)


def session_options(records: Iterable[SessionRecord] | None) -> dict[str, list[Any]]:
    """Option lists for every session filter control.

    Always computed from the canonical collection, never from a filtered view,
    so narrowing one dimension does not hide options in another.
    """
    materialized = list(records) if records is not None else []
    return {
        key: distinct_values(materialized, attr) for key, attr in SESSION_DIMENSIONS.items()
    }


def payroll_options(records: Iterable[PayrollRecord] | None) -> dict[str, list[Any]]:
    """Option lists for the payroll location and trainer selectors."""
    materialized = list(records) if records is not None else []
    return {
        key: distinct_values(materialized, attr) for key, attr in PAYROLL_DIMENSIONS.items()
    }
