from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Column role enumeration and the immutable role -> column index mapping.

A muster roll has no fixed schema, so every workbook is described by a
ColumnMapping: which column holds the name, which holds gross wages, where the
1..31 attendance block starts and ends, and so on. Roles that could not be
resolved are simply absent.
"""

__all__ = [
    "ColumnRole",
    "ColumnMapping",
    "KEY_ROLES",
]


class ColumnRole(str, Enum):
    """Closed set of semantic column roles in a wage register.

    Declaration order is significant: it is the tie-break order used by the
    column mapper when two roles match a header equally well.
    """
    EMPLOYEE_CODE = "employee_code"
    NAME = "name"
    DESIGNATION = "designation"
    DATE_OF_JOINING = "date_of_joining"
    ATTENDANCE_START = "attendance_start"
    ATTENDANCE_END = "attendance_end"
    TOTAL_DAYS_WORKED = "total_days_worked"
    NORMAL_WAGES = "normal_wages"
    HRA_PAYABLE = "hra_payable"
    GROSS_WAGES = "gross_wages"
    ADVANCES = "advances"
    FINES = "fines"
    DAMAGES = "damages"
    NET_WAGES = "net_wages"

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]


_ROLE_LABELS: dict[ColumnRole, str] = {
    ColumnRole.EMPLOYEE_CODE: "Employee Code / Sl No",
    ColumnRole.NAME: "Name",
    ColumnRole.DESIGNATION: "Designation",
    ColumnRole.DATE_OF_JOINING: "Date of Joining",
    ColumnRole.ATTENDANCE_START: "Attendance Start Col",
    ColumnRole.ATTENDANCE_END: "Attendance End Col",
    ColumnRole.TOTAL_DAYS_WORKED: "Total Days Worked",
    ColumnRole.NORMAL_WAGES: "Normal Wages",
    ColumnRole.HRA_PAYABLE: "HRA Payable",
    ColumnRole.GROSS_WAGES: "Gross Wages",
    ColumnRole.ADVANCES: "Advances",
    ColumnRole.FINES: "Fines",
    ColumnRole.DAMAGES: "Damages",
    ColumnRole.NET_WAGES: "Net Wages",
}

# Roles whose resolution drives the mapping confidence score
KEY_ROLES: tuple[ColumnRole, ...] = (
    ColumnRole.NAME,
    ColumnRole.TOTAL_DAYS_WORKED,
    ColumnRole.GROSS_WAGES,
    ColumnRole.NET_WAGES,
)


@dataclass(frozen=True)
class ColumnMapping:
    """Immutable mapping from ColumnRole to 0-based column index.

    Use ``with_role`` / ``without_role`` to derive modified copies; the
    underlying dict is never mutated after construction.
    """
    indices: Mapping[ColumnRole, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # copy so callers cannot mutate the snapshot through their own dict
        object.__setattr__(self, "indices", dict(self.indices))

    def get(self, role: ColumnRole) -> int | None:
        return self.indices.get(role)

    def __contains__(self, role: object) -> bool:
        return role in self.indices

    def __iter__(self) -> Iterator[ColumnRole]:
        return iter(self.indices)

    def __len__(self) -> int:
        return len(self.indices)

    def claimed_columns(self) -> set[int]:
        return set(self.indices.values())

    def with_role(self, role: ColumnRole, index: int) -> ColumnMapping:
        updated = dict(self.indices)
        updated[role] = index
        return ColumnMapping(updated)

    def without_role(self, role: ColumnRole) -> ColumnMapping:
        updated = {r: i for r, i in self.indices.items() if r is not role}
        return ColumnMapping(updated)

    @property
    def attendance_block(self) -> tuple[int, int] | None:
        start = self.indices.get(ColumnRole.ATTENDANCE_START)
        end = self.indices.get(ColumnRole.ATTENDANCE_END)
        if start is None or end is None:
            return None
        return (start, end)

    def to_dict(self) -> dict[str, int]:
        """Serialize to a JSON-friendly {role value: index} dict (declaration order)."""
        return {role.value: self.indices[role] for role in ColumnRole if role in self.indices}

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ColumnMapping:
        """Build a mapping from a {role value: index} dict.

        Unknown role names and non-integer indices raise ValueError.
        """
        indices: dict[ColumnRole, int] = {}
        for key, value in data.items():
            role = ColumnRole(key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"column index for '{key}' must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"column index for '{key}' must be >= 0, got {value}")
            indices[role] = value
        return ColumnMapping(indices)
