from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence

from ..models.column_mapping import KEY_ROLES, ColumnMapping, ColumnRole

"""Column mapper: infer semantic column roles from header text.

Two passes, each applied once, first-claim-wins:

1. Attendance block: integer day labels 1..31 locate the daily-mark columns.
2. Patterns: every header is tested against the ordered per-role pattern
   table below. Among all patterns that match (across every still-unmapped
   role) the longest one wins and the column goes to that role. A role that
   is already mapped is never reassigned and a column never gets two roles.

The confidence score is the share of the four key roles (name, total days,
gross wages, net wages) that were resolved; it is shown to the operator
before anything is committed.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "SchemaError",
    "ROLE_PATTERNS",
    "infer",
    "best_pattern",
    "mapping_confidence",
    "apply_overrides",
    "validate_mapping",
]


class SchemaError(Exception):
    """Raised when a mapping cannot be used against the sheet (run is aborted)."""


# Ordered per-role substring patterns (matched against the lowercased header).
# Attendance roles are detected numerically and have no patterns.
ROLE_PATTERNS: dict[ColumnRole, tuple[str, ...]] = {
    ColumnRole.EMPLOYEE_CODE: (
        "sl no",
        "serial",
        "emp code",
        "employee code",
        "emp. code",
        "employee no",
        "emp id",
        "s.no",
    ),
    ColumnRole.NAME: (
        "full name",
        "employee name",
        "emp name",
        "name of the employee",
        "worker name",
        "name",
    ),
    ColumnRole.DESIGNATION: ("designation", "nature of work", "position", "role"),
    ColumnRole.DATE_OF_JOINING: (
        "date of joining",
        "date of entry",
        "doj",
        "joining date",
        "entry into service",
    ),
    ColumnRole.ATTENDANCE_START: (),
    ColumnRole.ATTENDANCE_END: (),
    ColumnRole.TOTAL_DAYS_WORKED: ("total days", "days worked", "present days", "total"),
    ColumnRole.NORMAL_WAGES: ("normal wages", "basic wages", "basic pay", "basic salary", "wages"),
    ColumnRole.HRA_PAYABLE: ("hra payable", "hra", "house rent", "hra amount"),
    ColumnRole.GROSS_WAGES: ("gross wages", "gross pay", "gross salary", "total earnings", "gross"),
    ColumnRole.ADVANCES: ("advances", "advance", "advance taken"),
    ColumnRole.FINES: ("fines", "fine", "penalty"),
    ColumnRole.DAMAGES: ("damages", "damage", "loss"),
    ColumnRole.NET_WAGES: ("net wages", "net pay", "net salary", "take home", "net amount"),
}

_DAY_LABEL_RE = re.compile(r"^\d{1,2}$")
# shortest month still recognised when a block has no "31" column
_MIN_MONTH_END = 28


def _day_label(header: str) -> int | None:
    text = header.strip()
    if not _DAY_LABEL_RE.match(text):
        return None
    day = int(text)
    return day if 1 <= day <= 31 else None


def _attendance_block(headers: Sequence[str]) -> tuple[int, int] | None:
    days = [_day_label(h) for h in headers]
    try:
        start = days.index(1)
    except ValueError:
        return None
    for idx in range(start, len(days)):
        if days[idx] == 31:
            return (start, idx)
    # 28/29/30-day months: follow the consecutive run 1, 2, 3 ... from start
    end = start
    expected = 1
    for idx in range(start, len(days)):
        if days[idx] != expected:
            break
        end = idx
        expected += 1
    if (days[end] or 0) >= _MIN_MONTH_END:
        return (start, end)
    return None


def best_pattern(header: str, role: ColumnRole) -> str | None:
    """Longest pattern of ``role`` contained in ``header`` (None if none match)."""
    h = header.lower().strip()
    best: str | None = None
    for pattern in ROLE_PATTERNS[role]:
        if pattern in h and (best is None or len(pattern) > len(best)):
            best = pattern
    return best


def mapping_confidence(mapping: ColumnMapping) -> float:
    resolved = sum(1 for role in KEY_ROLES if role in mapping)
    return resolved / len(KEY_ROLES)


def infer(headers: Sequence[str]) -> tuple[ColumnMapping, float]:
    """Infer a ColumnMapping from header labels.

    Returns:
        (mapping, confidence) where confidence is in [0, 1]
    """
    mapping = ColumnMapping()

    block = _attendance_block(headers)
    if block is not None:
        mapping = mapping.with_role(ColumnRole.ATTENDANCE_START, block[0])
        mapping = mapping.with_role(ColumnRole.ATTENDANCE_END, block[1])
        claimed = set(range(block[0], block[1] + 1))
    else:
        claimed = set()

    for index, header in enumerate(headers):
        if index in claimed:
            continue
        winner: ColumnRole | None = None
        winner_len = 0
        for role in ColumnRole:
            if role in mapping or not ROLE_PATTERNS[role]:
                continue
            pattern = best_pattern(header, role)
            if pattern is not None and len(pattern) > winner_len:
                winner, winner_len = role, len(pattern)
        if winner is not None:
            mapping = mapping.with_role(winner, index)
            claimed.add(index)

    confidence = mapping_confidence(mapping)
    logger.debug("auto-detected mapping=%s confidence=%.2f", mapping.to_dict(), confidence)
    return mapping, confidence


def apply_overrides(mapping: ColumnMapping, overrides: Mapping[ColumnRole, int | None]) -> ColumnMapping:
    """Apply manual operator overrides; ``None`` unmaps a role."""
    for role, index in overrides.items():
        if index is None:
            mapping = mapping.without_role(role)
        else:
            if index < 0:
                raise SchemaError(f"column index for {role.label} must be >= 0 (got {index})")
            mapping = mapping.with_role(role, index)
    return mapping


def validate_mapping(mapping: ColumnMapping, width: int) -> None:
    """Check a mapping against the sheet before any row is parsed.

    Raises:
        SchemaError: name unmapped, an index beyond the sheet width, or an
            inverted / half-mapped attendance block
    """
    if ColumnRole.NAME not in mapping:
        raise SchemaError("Name column required: map the employee name column before parsing")

    for role in ColumnRole:
        index = mapping.get(role)
        if index is not None and index >= width:
            raise SchemaError(
                f"Mapped column index {index + 1} ({role.label}) exceeds available columns ({width}). "
                "Remap the headers."
            )

    start = mapping.get(ColumnRole.ATTENDANCE_START)
    end = mapping.get(ColumnRole.ATTENDANCE_END)
    if (start is None) != (end is None):
        raise SchemaError("Attendance start and end columns must be mapped together")
    if start is not None and end is not None and start > end:
        raise SchemaError(
            f"Attendance start column ({start + 1}) is after the end column ({end + 1})"
        )
