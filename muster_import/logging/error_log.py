from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord
from ..models.import_summary import ImportSummary
from ..models.parsed_row import ParsedRow

"""Error log buffer: row issues and Stage 1 failures as JSON Lines.

Each CLI run gets its own ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC). Records
are buffered and written on flush; nothing is created when there is nothing
to write.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

STORE_ERROR = "STORE_ERROR"


class ErrorLogBuffer:
    """In-memory buffer of ErrorRecords; flush appends them to the log file."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self.logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def record_row_issues(self, workbook: str, rows: list[ParsedRow] | tuple[ParsedRow, ...]) -> int:
        """One record per issue of every given row; returns how many were added."""
        added = 0
        for row in rows:
            for issue in row.issues:
                self.append(ErrorRecord.create(workbook, row.row_number, row.name, issue.code.value, issue.message))
                added += 1
        return added

    def record_import_failures(self, workbook: str, summary: ImportSummary) -> int:
        for failure in summary.db_failures:
            self.append(ErrorRecord.create(workbook, failure.row_number, failure.name, STORE_ERROR, failure.reason))
        return len(summary.db_failures)

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the file path, or None if empty."""
        if not self._records:
            return None
        fp = self.file_path
        fp.parent.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
