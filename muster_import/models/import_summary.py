from __future__ import annotations

from dataclasses import dataclass, field

from .entities import ImportMode

"""ImportSummary: the terminal result of one orchestrator run.

There is no incremental progress channel; the caller receives this object
once all stages finished, or an exception.
"""

__all__ = [
    "DbFailure",
    "ImportSummary",
]


@dataclass(frozen=True)
class DbFailure:
    """A Stage 1 row that could not be saved or resolved."""
    name: str
    reason: str  # sanitized, never raw store text
    row_number: int = -1


@dataclass(frozen=True)
class ImportSummary:
    rows_parsed: int  # all rows the parser emitted (clean + with issues)
    valid_rows: int  # rows without any issue
    row_error_count: int  # rows carrying at least one issue
    employees_imported: int  # rows resolved to a stored employee in Stage 1
    db_failures: list[DbFailure] = field(default_factory=list)
    mode: ImportMode = ImportMode.ALL
    month: str = ""
    payroll_run_id: str | None = None
    attendance_rows: int = 0
    payroll_detail_rows: int = 0

    @property
    def has_failures(self) -> bool:
        return bool(self.db_failures) or self.row_error_count > 0
