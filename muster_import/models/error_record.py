from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord: one line of the JSON Lines error log.

Fixed key set (no extra keys): timestamp, workbook, row, employee,
error_type, message. ``row`` is the 1-based sheet row, or -1 when the error
is not tied to a row (e.g. a stage failure).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    timestamp: str  # ISO8601 UTC with Z suffix
    workbook: str
    row: int  # -1 when unknown
    employee: str  # employee name, "" when not tied to an employee
    error_type: str  # UPPER_SNAKE, e.g. MISSING_WAGES, STORE_ERROR
    message: str  # operator-facing text, already sanitized

    @staticmethod
    def create(workbook: str, row: int, employee: str, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            workbook=workbook,
            row=row,
            employee=employee,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
