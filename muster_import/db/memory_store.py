from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from ..models.entities import (
    AttendanceRecord,
    EmployeeRecord,
    PayrollDetailRecord,
    PayrollRunRecord,
    ResolvedEmployee,
)
from .store import StoreError

"""Dict-backed PayrollStore for tests and --dry-run imports.

Same identity keys as the SQL schema. ``stage_transaction`` snapshots every
table and restores the snapshot when the block raises, and holds one lock per
(company, month) for its duration.
"""

__all__ = [
    "MemoryPayrollStore",
]

UNIQUE_VIOLATION = "23505"


class MemoryPayrollStore:
    """Dict-backed PayrollStore."""

    def __init__(self) -> None:
        self.employees: dict[tuple[str, str], dict[str, Any]] = {}
        self.payroll_runs: dict[tuple[str, str], dict[str, Any]] = {}
        self.attendance: dict[tuple[str, str], dict[str, Any]] = {}
        self.payroll_details: dict[tuple[str, str], dict[str, Any]] = {}
        self._leases: dict[tuple[str, str], threading.Lock] = {}
        self._leases_guard = threading.Lock()

    # -- helpers -----------------------------------------------------------
    def seed_employee(
        self,
        company_id: str,
        emp_code: str,
        name: str,
        gender: str = "Male",
        **fields: Any,
    ) -> str:
        """Add an employee directly (master data created outside an import)."""
        employee_id = str(uuid.uuid4())
        self.employees[(company_id, emp_code)] = {
            "id": employee_id,
            "company_id": company_id,
            "emp_code": emp_code,
            "name": name,
            "gender": gender,
            **fields,
        }
        return employee_id

    def employees_for(self, company_id: str) -> list[dict[str, Any]]:
        return [e for (c, _), e in self.employees.items() if c == company_id]

    def run_for(self, company_id: str, month: str) -> dict[str, Any] | None:
        return self.payroll_runs.get((company_id, month))

    def attendance_for(self, payroll_run_id: str) -> list[dict[str, Any]]:
        return [a for (r, _), a in self.attendance.items() if r == payroll_run_id]

    def payroll_details_for(self, payroll_run_id: str) -> list[dict[str, Any]]:
        return [d for (r, _), d in self.payroll_details.items() if r == payroll_run_id]

    def _tables(self) -> tuple[dict[Any, Any], ...]:
        return (self.employees, self.payroll_runs, self.attendance, self.payroll_details)

    # -- PayrollStore --------------------------------------------------------
    def upsert_employee(self, record: EmployeeRecord) -> ResolvedEmployee:
        if not record.emp_code:
            raise StoreError('null value in column "emp_code" violates not-null constraint', code="23502")
        key = (record.company_id, record.emp_code)
        values = record.as_row()
        existing = self.employees.get(key)
        if existing is None:
            row = {"id": str(uuid.uuid4()), "gender": "Male", **values}
            self.employees[key] = row
        else:
            if values["date_of_joining"] is None:
                values["date_of_joining"] = existing.get("date_of_joining")
            existing.update(values)
            row = existing
        return ResolvedEmployee(employee_id=row["id"], gender=row.get("gender") or "Male")

    def find_employee_by_code(self, company_id: str, emp_code: str) -> ResolvedEmployee | None:
        row = self.employees.get((company_id, emp_code))
        if row is None:
            return None
        return ResolvedEmployee(employee_id=row["id"], gender=row.get("gender") or "Male")

    def find_employees_by_name(self, company_id: str, name: str) -> list[ResolvedEmployee]:
        wanted = name.strip().lower()
        return [
            ResolvedEmployee(employee_id=e["id"], gender=e.get("gender") or "Male")
            for e in self.employees_for(company_id)
            if str(e.get("name", "")).strip().lower() == wanted
        ]

    def _lease(self, company_id: str, month: str) -> threading.Lock:
        with self._leases_guard:
            return self._leases.setdefault((company_id, month), threading.Lock())

    @contextmanager
    def stage_transaction(self, company_id: str, month: str) -> Iterator[None]:
        lease = self._lease(company_id, month)
        with lease:
            snapshot = [copy.deepcopy(t) for t in self._tables()]
            try:
                yield
            except BaseException:
                for table, saved in zip(self._tables(), snapshot):
                    table.clear()
                    table.update(saved)
                raise

    def upsert_payroll_run(self, record: PayrollRunRecord) -> str:
        key = (record.company_id, record.month)
        run = self.payroll_runs.get(key)
        if run is None:
            run = {"id": str(uuid.uuid4()), "company_id": record.company_id, "month": record.month}
            self.payroll_runs[key] = run
        run.update(
            working_days=record.working_days,
            status=record.status,
            processed_at=record.processed_at,
        )
        return run["id"]

    def _replace(
        self,
        table: dict[tuple[str, str], dict[str, Any]],
        payroll_run_id: str,
        rows: Sequence[dict[str, Any]],
    ) -> int:
        for key in [k for k in table if k[0] == payroll_run_id]:
            del table[key]
        seen: set[str] = set()
        for row in rows:
            if row["employee_id"] in seen:
                raise StoreError(
                    "duplicate key value violates unique constraint (payroll_run_id, employee_id)",
                    code=UNIQUE_VIOLATION,
                )
            seen.add(row["employee_id"])
            table[(payroll_run_id, row["employee_id"])] = {"id": str(uuid.uuid4()), **row}
        return len(rows)

    def replace_attendance(self, payroll_run_id: str, records: Sequence[AttendanceRecord]) -> int:
        return self._replace(self.attendance, payroll_run_id, [r.as_row() for r in records])

    def replace_payroll_details(self, payroll_run_id: str, records: Sequence[PayrollDetailRecord]) -> int:
        return self._replace(self.payroll_details, payroll_run_id, [r.as_row() for r in records])
