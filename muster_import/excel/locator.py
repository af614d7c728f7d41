from __future__ import annotations

import re

from .reader import WorkbookMatrix, cell_text

"""Schema locator: find the header row and the first data row of a register.

Muster-roll exports usually prepend establishment/title blocks and blank rows,
so "row 0 is the header" fails on most real files. The locator scans the top
of the sheet for a keyword-bearing row that is followed by a plausible
employee row (serial number in the first cell, or a name-like second cell).
"""

__all__ = [
    "HEADER_KEYWORDS",
    "DEFAULT_SCAN_ROWS",
    "locate",
    "header_labels",
]

HEADER_KEYWORDS: tuple[str, ...] = (
    "name",
    "emp",
    "code",
    "wages",
    "gross",
    "days",
    "designation",
    "serial",
    "sl no",
    "s.no",
)

DEFAULT_SCAN_ROWS = 30
MIN_FILLED_CELLS = 5
HEADER_PROBE_WIDTH = 10

_SERIAL_RE = re.compile(r"^\d+$")


def _filled(row: tuple[object, ...], width: int | None = None) -> list[str]:
    cells = row if width is None else row[:width]
    return [t for t in (cell_text(c) for c in cells) if t]


def _looks_like_header(row: tuple[object, ...]) -> bool:
    filled = _filled(row, HEADER_PROBE_WIDTH)
    if len(filled) < MIN_FILLED_CELLS:
        return False
    text = " ".join(filled).lower()
    return any(kw in text for kw in HEADER_KEYWORDS)


def _looks_like_first_employee(row: tuple[object, ...]) -> bool:
    if len(_filled(row)) < MIN_FILLED_CELLS:
        return False
    first = cell_text(row[0]) if len(row) > 0 else ""
    second = cell_text(row[1]) if len(row) > 1 else ""
    return bool(_SERIAL_RE.match(first)) or len(second) > 2


def locate(matrix: WorkbookMatrix, max_scan_rows: int = DEFAULT_SCAN_ROWS) -> tuple[int, int]:
    """Return (header_row_index, data_start_row_index), both 0-based.

    A title block that merely mentions "wages" is rejected because the row
    after it does not look like an employee row.
    """
    limit = min(len(matrix), max_scan_rows)
    for i in range(limit):
        if not _looks_like_header(matrix[i]):
            continue
        if i + 1 < len(matrix) and _looks_like_first_employee(matrix[i + 1]):
            return (i, i + 1)
    return (1, 2) if len(matrix) > 5 else (0, 1)


def header_labels(matrix: WorkbookMatrix, header_row: int) -> list[str]:
    """Trimmed header texts; blank header cells are labelled "Col N" (1-based)."""
    if header_row >= len(matrix):
        return []
    labels = []
    for idx, cell in enumerate(matrix[header_row]):
        text = cell_text(cell)
        labels.append(text if text else f"Col {idx + 1}")
    return labels
