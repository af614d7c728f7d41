from __future__ import annotations

from ..models.import_summary import ImportSummary

"""Summary rendering for a finished import.

Two forms:
- ``render_summary_line``: machine-greppable SUMMARY line (fixed key order)
- ``build_import_message``: the sentence shown to the operator
"""

__all__ = [
    "render_summary_line",
    "build_import_message",
]


def render_summary_line(summary: ImportSummary) -> str:
    """SUMMARY line, e.g.

    >>> from muster_import.models import ImportMode
    >>> s = ImportSummary(rows_parsed=3, valid_rows=2, row_error_count=1,
    ...                   employees_imported=2, mode=ImportMode.ALL, month="2025-03")
    >>> render_summary_line(s)
    'SUMMARY rows=3 valid=2 row_errors=1 imported=2 db_failures=0 mode=all month=2025-03'
    """
    return (
        f"SUMMARY rows={summary.rows_parsed} "
        f"valid={summary.valid_rows} "
        f"row_errors={summary.row_error_count} "
        f"imported={summary.employees_imported} "
        f"db_failures={len(summary.db_failures)} "
        f"mode={summary.mode.value} "
        f"month={summary.month}"
    )


def build_import_message(summary: ImportSummary) -> str:
    parts = [
        f"{summary.rows_parsed} rows parsed, {summary.valid_rows} valid, "
        f"{summary.row_error_count} with data issues.",
        f"{summary.employees_imported} employees imported into the database.",
    ]
    if summary.db_failures:
        details = "; ".join(f"{f.name} ({f.reason})" for f in summary.db_failures)
        parts.append(f"{len(summary.db_failures)} employees could not be saved: {details}")
    return " ".join(parts)
