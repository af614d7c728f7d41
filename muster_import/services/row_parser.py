from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from ..excel.mapper import validate_mapping
from ..excel.reader import WorkbookMatrix, cell_text, matrix_width
from ..models.column_mapping import ColumnMapping, ColumnRole
from ..models.parsed_row import (
    AttendanceMarks,
    Deductions,
    IssueCode,
    ParsedRow,
    ParseOutcome,
    RowIssue,
)
from .statutory import round_rupees

"""Row parser & validator.

Turns every data row of the register into a ParsedRow. Problems are collected
as RowIssue values on the row and never raised, so one bad row cannot stop
the others from being parsed. Rows are partitioned into valid / invalid only
after the loop (ParseOutcome.valid / .invalid).

Structural rows are handled before validation:
- blank or 1-character names are skipped silently (counted, no issue)
- a name containing a footer keyword stops the scan; later rows are trailer
"""

logger = logging.getLogger(__name__)

__all__ = [
    "FOOTER_KEYWORDS",
    "PRESENT_MARKS",
    "parse_money",
    "is_negative_input",
    "normalize_date_of_joining",
    "count_days_worked",
    "parse_row",
    "parse_rows",
]

FOOTER_KEYWORDS: tuple[str, ...] = (
    "name of establishment",
    "full name of the employee",
    "muster roll",
    "signature",
    "total",
    "manager",
    "employer",
)

PRESENT_MARKS = frozenset({"P", "W", "PD"})

MIN_NAME_LENGTH = 2

_CURRENCY_RE = re.compile(r"(₹|\bINR|\bRs\.?|\$)", re.IGNORECASE)
_DMY_RE = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{2}|\d{4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_YEAR_RE = re.compile(r"^(19|20)\d{2}$")
_NUMERIC_RE = re.compile(r"^\d+(\.\d+)?$")

# Excel day 0; serials count days from here (1900 leap-year bug included)
_EXCEL_EPOCH = date(1899, 12, 30)
_MAX_EXCEL_SERIAL = 2958465  # 9999-12-31


def _money_text(text: str) -> str:
    cleaned = _CURRENCY_RE.sub("", text)
    cleaned = cleaned.replace(",", "")
    cleaned = "".join(cleaned.split())
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]
    return cleaned


def _raw_number(val: Any) -> float | None:
    """Signed numeric value of a cell, None when blank or not a number."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        num = float(val)
    elif isinstance(val, str):
        text = _money_text(val)
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def parse_money(val: Any) -> float:
    """Tolerant money parse: "₹ 12,500.00" -> 12500.0.

    Blank or unparseable values are 0. The sign is dropped (negative inputs
    are reported separately through ``is_negative_input``).
    """
    num = _raw_number(val)
    if num is None:
        return 0.0
    return abs(num)


def is_negative_input(val: Any) -> bool:
    num = _raw_number(val)
    return num is not None and num < 0


def _from_excel_serial(serial: float) -> date | None:
    if not 1 <= serial <= _MAX_EXCEL_SERIAL:
        return None
    return _EXCEL_EPOCH + timedelta(days=int(serial))


def normalize_date_of_joining(raw: Any) -> date | None:
    """Normalize a date-of-joining cell; None when blank or unparseable.

    Accepted forms, in order:
    - datetime / date cells (openpyxl already decoded them)
    - ``D.M.Y`` / ``D/M/Y`` / ``D-M-Y`` with a 2-digit (20YY) or 4-digit year
    - ISO ``YYYY-MM-DD`` (optionally with a time part)
    - a 4-digit year typed as text (1 January of that year)
    - Excel serial day numbers
    - anything else pandas can parse, day first
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and math.isnan(raw):
            return None
        return _from_excel_serial(float(raw))

    text = str(raw or "").strip().rstrip(".")
    if not text:
        return None

    m = _DMY_RE.match(text)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), m.group(3)
        full_year = 2000 + int(year) if len(year) == 2 else int(year)
        try:
            return date(full_year, month, day)
        except ValueError:
            return None

    m = _ISO_RE.match(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    # a bare year typed as text means 1 January of that year
    if _YEAR_RE.match(text):
        return date(int(text), 1, 1)

    if _NUMERIC_RE.match(text):
        return _from_excel_serial(float(text))

    try:
        ts = pd.to_datetime(text, errors="coerce", dayfirst=True)
    except (ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.date()


def count_days_worked(cells: tuple[Any, ...] | list[Any]) -> AttendanceMarks:
    """Count present marks in an attendance block.

    P / W / PD, or any mark starting with P, counts as a day worked.
    All non-empty marks are kept (upper-cased) for the attendance record.
    """
    marks: list[str] = []
    days = 0
    for cell in cells:
        mark = cell_text(cell).upper()
        if not mark:
            continue
        marks.append(mark)
        if mark in PRESENT_MARKS or mark.startswith("P"):
            days += 1
    return AttendanceMarks(days_worked=float(days), daily_marks=tuple(marks))


def _cell(row: tuple[Any, ...], mapping: ColumnMapping, role: ColumnRole) -> Any:
    index = mapping.get(role)
    if index is None or index >= len(row):
        return None
    return row[index]


def _optional_text(row: tuple[Any, ...], mapping: ColumnMapping, role: ColumnRole) -> str | None:
    if role not in mapping:
        return None
    text = cell_text(_cell(row, mapping, role))
    return text or None


def _is_footer(name: str) -> bool:
    lower = name.lower()
    return any(kw in lower for kw in FOOTER_KEYWORDS)


def parse_row(row: tuple[Any, ...], row_number: int, mapping: ColumnMapping) -> ParsedRow:
    """Parse one data row (name already checked) and collect all its issues."""
    name = cell_text(_cell(row, mapping, ColumnRole.NAME))
    issues: list[RowIssue] = []
    doj_issues: list[RowIssue] = []

    # Date of joining: only judged when the register has the column
    doj: date | None = None
    if ColumnRole.DATE_OF_JOINING in mapping:
        raw_doj = _cell(row, mapping, ColumnRole.DATE_OF_JOINING)
        if not cell_text(raw_doj):
            doj_issues.append(RowIssue(
                IssueCode.DOJ_MISSING,
                "Date of Joining missing. Fill DOJ so gratuity/bonus calculations stay accurate.",
            ))
        else:
            doj = normalize_date_of_joining(raw_doj)
            if doj is None:
                doj_issues.append(RowIssue(
                    IssueCode.DOJ_INVALID,
                    f'Invalid Date of Joining "{cell_text(raw_doj).rstrip(".")}". '
                    "Use formats like 03.04.2017 or 03/04/2017.",
                ))

    wage_cells = {
        role: _cell(row, mapping, role)
        for role in (
            ColumnRole.NORMAL_WAGES,
            ColumnRole.HRA_PAYABLE,
            ColumnRole.GROSS_WAGES,
            ColumnRole.NET_WAGES,
        )
    }
    normal_wages = parse_money(wage_cells[ColumnRole.NORMAL_WAGES])
    hra_payable = parse_money(wage_cells[ColumnRole.HRA_PAYABLE])
    gross_wages = parse_money(wage_cells[ColumnRole.GROSS_WAGES])
    net_wages = parse_money(wage_cells[ColumnRole.NET_WAGES])
    deductions = Deductions(
        advances=parse_money(_cell(row, mapping, ColumnRole.ADVANCES)),
        fines=parse_money(_cell(row, mapping, ColumnRole.FINES)),
        damages=parse_money(_cell(row, mapping, ColumnRole.DAMAGES)),
    )

    block = mapping.attendance_block
    if block is not None:
        attendance = count_days_worked(row[block[0]:block[1] + 1])
    else:
        attendance = AttendanceMarks()
    if ColumnRole.TOTAL_DAYS_WORKED in mapping:
        # explicit total wins over counted marks
        attendance = AttendanceMarks(
            days_worked=parse_money(_cell(row, mapping, ColumnRole.TOTAL_DAYS_WORKED)),
            daily_marks=attendance.daily_marks,
        )

    if not gross_wages and not net_wages:
        issues.append(RowIssue(IssueCode.MISSING_WAGES, "Missing gross and net wages"))
    # the import stores whole days; a fraction that rounds to 0 is no attendance
    if round_rupees(attendance.days_worked) == 0:
        issues.append(RowIssue(
            IssueCode.MISSING_DAYS,
            "Missing days worked. Map 'Total Days Worked' or the attendance columns 1-31.",
        ))
    if any(is_negative_input(v) for v in wage_cells.values()):
        issues.append(RowIssue(
            IssueCode.NEGATIVE_WAGES,
            "Negative wages detected. Check the wage and net wage columns.",
        ))
    if deductions.total > net_wages:
        issues.append(RowIssue(
            IssueCode.DEDUCTIONS_EXCEED_NET,
            "Deductions exceed net wages. Check Advances/Fines/Damages and Net Wages.",
        ))

    return ParsedRow(
        row_number=row_number,
        name=name,
        emp_code=_optional_text(row, mapping, ColumnRole.EMPLOYEE_CODE),
        designation=_optional_text(row, mapping, ColumnRole.DESIGNATION),
        date_of_joining=doj,
        normal_wages=normal_wages,
        hra_payable=hra_payable,
        gross_wages=gross_wages,
        deductions=deductions,
        net_wages_paid=net_wages,
        attendance=attendance,
        issues=tuple(issues + doj_issues),
    )


def parse_rows(matrix: WorkbookMatrix, data_start: int, mapping: ColumnMapping) -> ParseOutcome:
    """Parse all data rows from ``data_start`` (0-based) to the end of the sheet.

    Raises:
        SchemaError: the mapping does not fit the sheet (checked before any row)
    """
    validate_mapping(mapping, matrix_width(matrix))

    rows: list[ParsedRow] = []
    skipped = 0
    stopped_at: int | None = None
    for i in range(max(data_start, 0), len(matrix)):
        row = matrix[i]
        name = cell_text(_cell(row, mapping, ColumnRole.NAME))
        if len(name) < MIN_NAME_LENGTH:
            skipped += 1
            continue
        if _is_footer(name):
            stopped_at = i + 1
            logger.debug("row %d: footer detected (%r), stopping parse", i + 1, name)
            break
        rows.append(parse_row(row, i + 1, mapping))

    outcome = ParseOutcome(rows=tuple(rows), skipped_rows=skipped, stopped_at=stopped_at)
    logger.debug(
        "parsed rows=%d valid=%d invalid=%d skipped=%d",
        len(outcome.rows),
        len(outcome.valid),
        len(outcome.invalid),
        skipped,
    )
    return outcome
