from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

"""ParsedRow model: one candidate employee record taken from a wage register row.

A ParsedRow is transient (one upload session). It is either clean (no issues)
or carries the complete list of problems found while parsing it; it is never
partially valid.
"""

__all__ = [
    "IssueCode",
    "RowIssue",
    "Deductions",
    "AttendanceMarks",
    "ParsedRow",
    "ParseOutcome",
]


class IssueCode(str, Enum):
    """Stable identifiers for row validation problems."""
    MISSING_WAGES = "MISSING_WAGES"
    MISSING_DAYS = "MISSING_DAYS"
    NEGATIVE_WAGES = "NEGATIVE_WAGES"
    DEDUCTIONS_EXCEED_NET = "DEDUCTIONS_EXCEED_NET"
    DOJ_MISSING = "DOJ_MISSING"
    DOJ_INVALID = "DOJ_INVALID"


# Date of joining problems do not block employee-only or attendance-only imports
DOJ_ISSUES = frozenset({IssueCode.DOJ_MISSING, IssueCode.DOJ_INVALID})


@dataclass(frozen=True)
class RowIssue:
    code: IssueCode
    message: str


@dataclass(frozen=True)
class Deductions:
    advances: float = 0.0
    fines: float = 0.0
    damages: float = 0.0

    @property
    def total(self) -> float:
        return self.advances + self.fines + self.damages


@dataclass(frozen=True)
class AttendanceMarks:
    days_worked: float = 0.0
    daily_marks: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedRow:
    """Typed candidate record for one data row of the register."""
    row_number: int  # 1-based sheet row; identity of the row for the whole import
    name: str
    emp_code: str | None = None
    designation: str | None = None
    date_of_joining: date | None = None
    normal_wages: float = 0.0
    hra_payable: float = 0.0
    gross_wages: float = 0.0
    deductions: Deductions = field(default_factory=Deductions)
    net_wages_paid: float = 0.0
    attendance: AttendanceMarks = field(default_factory=AttendanceMarks)
    issues: tuple[RowIssue, ...] = ()

    @property
    def errors(self) -> list[str]:
        return [issue.message for issue in self.issues]

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def has_only_doj_issues(self) -> bool:
        return bool(self.issues) and all(issue.code in DOJ_ISSUES for issue in self.issues)


@dataclass(frozen=True)
class ParseOutcome:
    """Rows produced by one parser pass, partitioned after the row loop."""
    rows: tuple[ParsedRow, ...]
    skipped_rows: int = 0  # blank / too-short-name rows, silently dropped
    stopped_at: int | None = None  # 1-based row where a footer halted the scan

    @property
    def valid(self) -> tuple[ParsedRow, ...]:
        return tuple(r for r in self.rows if r.is_valid)

    @property
    def invalid(self) -> tuple[ParsedRow, ...]:
        return tuple(r for r in self.rows if not r.is_valid)
