"""studio-pulse — Slice fitness-studio session and payroll sheets into reports."""

__version__ = "0.2.0"

ALL = "all"
"""Sentinel for single-select controls (location tab, trainer) meaning no constraint."""

SESSION_FIELDS: list[str] = [
    "unique_id1",
    "unique_id2",
    "location",
    "day",
    "time",
    "class_name",
    "session_type",
    "trainer",
    "capacity",
    "fill_percentage",
    "revenue",
    "date",
]

PAYROLL_FIELDS: list[str] = [
    "teacher_id",
    "teacher_name",
    "teacher_email",
    "location",
    "cycle_sessions",
    "empty_cycle_sessions",
    "non_empty_cycle_sessions",
    "cycle_customers",
    "cycle_paid",
    "strength_sessions",
    "empty_strength_sessions",
    "non_empty_strength_sessions",
    "strength_customers",
    "strength_paid",
    "barre_sessions",
    "empty_barre_sessions",
    "non_empty_barre_sessions",
    "barre_customers",
    "barre_paid",
    "total_sessions",
    "total_empty_sessions",
    "total_non_empty_sessions",
    "total_customers",
    "total_paid",
    "month_year",
    "unique",
    "converted",
    "conversion",
    "retained",
    "retention",
    "new",
]
