from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..models.entities import (
    AttendanceRecord,
    EmployeeRecord,
    PayrollDetailRecord,
    PayrollRunRecord,
    ResolvedEmployee,
)
from .batch_insert import BatchInsertError, batch_insert
from .store import StoreError

"""PostgreSQL PayrollStore (psycopg2).

The connection runs in autocommit mode and transactions are opened explicitly
with BEGIN / COMMIT / ROLLBACK on the cursor:

- every employee upsert is its own transaction (row-isolated Stage 1)
- run / attendance / payroll detail share one transaction that first takes
  ``pg_advisory_xact_lock`` for the (company, month) key
"""

logger = logging.getLogger(__name__)

__all__ = [
    "PostgresPayrollStore",
    "EMPLOYEE_UPSERT_SQL",
    "ATTENDANCE_COLUMNS",
    "PAYROLL_DETAIL_COLUMNS",
]

EMPLOYEE_COLUMNS: tuple[str, ...] = (
    "company_id",
    "emp_code",
    "name",
    "designation",
    "basic",
    "hra",
    "allowances",
    "gross",
    "date_of_joining",
    "status",
    "epf_applicable",
    "esic_applicable",
    "pt_applicable",
)

_EMPLOYEE_UPDATES = ",\n    ".join(
    # a blank DOJ in the register never wipes a stored one
    f"{c} = COALESCE(EXCLUDED.{c}, employees.{c})" if c == "date_of_joining" else f"{c} = EXCLUDED.{c}"
    for c in EMPLOYEE_COLUMNS
    if c not in ("company_id", "emp_code")
)

EMPLOYEE_UPSERT_SQL = f"""
INSERT INTO employees ({", ".join(EMPLOYEE_COLUMNS)})
VALUES ({", ".join(["%s"] * len(EMPLOYEE_COLUMNS))})
ON CONFLICT (company_id, emp_code) DO UPDATE SET
    {_EMPLOYEE_UPDATES},
    updated_at = now()
RETURNING id, gender
"""

PAYROLL_RUN_UPSERT_SQL = """
INSERT INTO payroll_runs (company_id, month, working_days, status, processed_at)
VALUES (%s, %s, %s, %s, %s)
ON CONFLICT (company_id, month) DO UPDATE SET
    working_days = EXCLUDED.working_days,
    status = EXCLUDED.status,
    processed_at = EXCLUDED.processed_at
RETURNING id
"""

ATTENDANCE_COLUMNS: tuple[str, ...] = (
    "company_id",
    "payroll_run_id",
    "employee_id",
    "month",
    "working_days",
    "days_present",
    "paid_leaves",
    "unpaid_leaves",
    "overtime_hours",
    "daily_marks",
)

PAYROLL_DETAIL_COLUMNS: tuple[str, ...] = (
    "payroll_run_id",
    "employee_id",
    "days_present",
    "basic_paid",
    "hra_paid",
    "allowances_paid",
    "gross_earnings",
    "epf_employee",
    "epf_employer",
    "eps_employer",
    "esic_employee",
    "esic_employer",
    "pt",
    "tds",
    "lwf_employee",
    "lwf_employer",
    "total_deductions",
    "net_pay",
)


def _store_error(e: Exception) -> StoreError:
    cause = e.__cause__ if isinstance(e, BatchInsertError) and e.__cause__ is not None else e
    return StoreError(str(e), code=getattr(cause, "pgcode", None))


def _resolved(row: Sequence[Any]) -> ResolvedEmployee:
    return ResolvedEmployee(employee_id=str(row[0]), gender=row[1] or "Male")


class PostgresPayrollStore:
    def __init__(self, cursor: Any, page_size: int = 500):
        self.cursor = cursor
        self.page_size = page_size

    def _rollback_quietly(self) -> None:
        try:
            self.cursor.execute("ROLLBACK")
        except psycopg2.Error:
            logger.debug("rollback failed", exc_info=True)

    def upsert_employee(self, record: EmployeeRecord) -> ResolvedEmployee:
        values = record.as_row()
        try:
            self.cursor.execute("BEGIN")
            self.cursor.execute(EMPLOYEE_UPSERT_SQL, tuple(values[c] for c in EMPLOYEE_COLUMNS))
            row = self.cursor.fetchone()
            self.cursor.execute("COMMIT")
        except psycopg2.Error as e:
            self._rollback_quietly()
            raise _store_error(e) from e
        if row is None:
            raise StoreError("employee upsert returned no row")
        return _resolved(row)

    def find_employee_by_code(self, company_id: str, emp_code: str) -> ResolvedEmployee | None:
        try:
            self.cursor.execute(
                "SELECT id, gender FROM employees WHERE company_id = %s AND emp_code = %s",
                (company_id, emp_code),
            )
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise _store_error(e) from e
        return _resolved(row) if row else None

    def find_employees_by_name(self, company_id: str, name: str) -> list[ResolvedEmployee]:
        try:
            self.cursor.execute(
                "SELECT id, gender FROM employees WHERE company_id = %s AND lower(name) = lower(%s)",
                (company_id, name.strip()),
            )
            rows = self.cursor.fetchall()
        except psycopg2.Error as e:
            raise _store_error(e) from e
        return [_resolved(r) for r in rows]

    @contextmanager
    def stage_transaction(self, company_id: str, month: str) -> Iterator[None]:
        try:
            self.cursor.execute("BEGIN")
            # transaction-scoped lease; released by COMMIT / ROLLBACK
            self.cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"{company_id}:{month}",))
        except psycopg2.Error as e:
            self._rollback_quietly()
            raise _store_error(e) from e
        try:
            yield
        except BaseException:
            self._rollback_quietly()
            raise
        try:
            self.cursor.execute("COMMIT")
        except psycopg2.Error as e:
            self._rollback_quietly()
            raise _store_error(e) from e

    def upsert_payroll_run(self, record: PayrollRunRecord) -> str:
        try:
            self.cursor.execute(
                PAYROLL_RUN_UPSERT_SQL,
                (record.company_id, record.month, record.working_days, record.status, record.processed_at),
            )
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise _store_error(e) from e
        if row is None:
            raise StoreError("payroll run upsert returned no row")
        return str(row[0])

    def _replace(self, table: str, columns: Sequence[str], payroll_run_id: str, rows: list[dict[str, Any]]) -> int:
        try:
            self.cursor.execute(f"DELETE FROM {table} WHERE payroll_run_id = %s", (payroll_run_id,))
            result = batch_insert(
                self.cursor,
                table,
                columns,
                [tuple(r[c] for c in columns) for r in rows],
                page_size=self.page_size,
                metrics_callback=lambda m: logger.debug(
                    "%s batch rows=%d elapsed=%.3fs", table, m.batch_size, m.elapsed_seconds
                ),
            )
        except (psycopg2.Error, BatchInsertError) as e:
            raise _store_error(e) from e
        return result.inserted_rows

    def replace_attendance(self, payroll_run_id: str, records: Sequence[AttendanceRecord]) -> int:
        return self._replace("attendance", ATTENDANCE_COLUMNS, payroll_run_id, [r.as_row() for r in records])

    def replace_payroll_details(self, payroll_run_id: str, records: Sequence[PayrollDetailRecord]) -> int:
        return self._replace(
            "payroll_details", PAYROLL_DETAIL_COLUMNS, payroll_run_id, [r.as_row() for r in records]
        )
