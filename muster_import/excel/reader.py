from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

"""Workbook loader: first sheet of an uploaded register -> raw cell matrix.

The matrix keeps blank rows (so row numbers shown to the operator match the
sheet) and is immutable once loaded. No header is applied here; header
detection is the schema locator's job.
"""

__all__ = [
    "WorkbookError",
    "WorkbookMatrix",
    "read_workbook",
    "matrix_from_rows",
    "matrix_width",
    "cell_text",
]

WorkbookMatrix = tuple[tuple[Any, ...], ...]

SUPPORTED_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


class WorkbookError(Exception):
    """Raised when the workbook cannot be opened or has no usable sheet."""


def _clean_cell(val: Any) -> Any:
    if val is None:
        return ""
    if isinstance(val, float):
        if math.isnan(val):
            return ""
        # Excel stores every number as float; "1.0" day headers must read as 1
        if val.is_integer():
            return int(val)
        return val
    if isinstance(val, pd.Timestamp):
        if pd.isna(val):
            return ""
        return val.to_pydatetime()
    if val is pd.NaT:
        return ""
    return val


def matrix_from_rows(rows: list[list[Any]] | list[tuple[Any, ...]]) -> WorkbookMatrix:
    """Build an immutable, right-padded matrix from raw row lists."""
    cleaned = [[_clean_cell(v) for v in row] for row in rows]
    width = max((len(r) for r in cleaned), default=0)
    return tuple(tuple(r + [""] * (width - len(r))) for r in cleaned)


def read_workbook(path: Path, sheet: int | str = 0) -> WorkbookMatrix:
    """Read the first (or given) sheet of a workbook as a row-major matrix.

    Parameters
    ----------
    path: workbook path (.xlsx / .xlsm / .xls)
    sheet: sheet index or name, first sheet by default

    Raises
    ------
    WorkbookError: unsupported extension, unreadable file, or missing sheet
    """
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise WorkbookError(f"unsupported workbook type '{path.suffix}': use a .xlsx Form II file")
    if not path.exists():
        raise WorkbookError(f"workbook not found: {path}")
    try:
        xls = pd.ExcelFile(path)
    except Exception as e:
        raise WorkbookError(f"cannot open workbook {path.name}: {e}") from e
    if not xls.sheet_names:
        raise WorkbookError(f"workbook {path.name} has no sheets")
    try:
        # header=None: the register's header row is detected later, not assumed
        # dtype=object: keep codes like "007" and mixed day marks untouched
        # keep_default_na=False: "NA" in an attendance cell is a mark, not a null
        df = xls.parse(sheet, header=None, dtype=object, keep_default_na=False)
    except Exception as e:
        raise WorkbookError(f"cannot read sheet {sheet!r} of {path.name}: {e}") from e
    return matrix_from_rows(df.values.tolist())


def matrix_width(matrix: WorkbookMatrix) -> int:
    return max((len(r) for r in matrix), default=0)


def cell_text(val: Any) -> str:
    """Trimmed string form of a cell ("" for blanks)."""
    if val is None:
        return ""
    if isinstance(val, float) and math.isnan(val):
        return ""
    if isinstance(val, datetime):
        return val.date().isoformat()
    return str(val).strip()
