from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import Protocol

from ..models.entities import (
    AttendanceRecord,
    EmployeeRecord,
    PayrollDetailRecord,
    PayrollRunRecord,
    ResolvedEmployee,
)

"""PayrollStore: the persistence surface the import orchestrator writes through.

Two implementations: PostgresPayrollStore (psycopg2) and MemoryPayrollStore
(tests, --dry-run). Both enforce the same identity keys.
"""

__all__ = [
    "StoreError",
    "PayrollStore",
]


class StoreError(Exception):
    """A persistence operation failed.

    ``code`` is the SQLSTATE when the backend reported one (e.g. "23505").
    The message is raw backend text: sanitize it before showing it.
    """

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class PayrollStore(Protocol):
    def upsert_employee(self, record: EmployeeRecord) -> ResolvedEmployee:
        """Insert or update by (company_id, emp_code); own transaction."""
        ...

    def find_employee_by_code(self, company_id: str, emp_code: str) -> ResolvedEmployee | None:
        ...

    def find_employees_by_name(self, company_id: str, name: str) -> list[ResolvedEmployee]:
        """Case-insensitive exact name match."""
        ...

    def stage_transaction(self, company_id: str, month: str) -> AbstractContextManager[None]:
        """One transaction holding the (company, month) lease.

        Commits on normal exit; rolls back everything on exception.
        """
        ...

    def upsert_payroll_run(self, record: PayrollRunRecord) -> str:
        """Create or update the run for (company_id, month); returns its id."""
        ...

    def replace_attendance(self, payroll_run_id: str, records: Sequence[AttendanceRecord]) -> int:
        ...

    def replace_payroll_details(self, payroll_run_id: str, records: Sequence[PayrollDetailRecord]) -> int:
        ...
