from __future__ import annotations

import os
import uuid
from pathlib import Path

import psycopg2
import pytest

from muster_import.db.postgres_store import PostgresPayrollStore
from muster_import.excel.locator import header_labels, locate
from muster_import.excel.mapper import infer
from muster_import.excel.reader import matrix_from_rows
from muster_import.models import ImportMode
from muster_import.services.orchestrator import run_import
from muster_import.services.row_parser import parse_rows
from tests.builders import employee_row, form_ii_rows

"""Import against a real PostgreSQL database.

Runs only when MUSTER_TEST_DATABASE_URL points at a disposable database
(PostgreSQL 13+). Each test gets its own schema, dropped afterwards.
"""

DSN = os.getenv("MUSTER_TEST_DATABASE_URL")
SCHEMA_SQL = Path(__file__).resolve().parents[2] / "muster_import" / "db" / "schema.sql"

pytestmark = pytest.mark.skipif(not DSN, reason="MUSTER_TEST_DATABASE_URL not set")


@pytest.fixture()
def cursor():
    conn = psycopg2.connect(DSN)
    conn.autocommit = True
    cur = conn.cursor()
    schema = f"muster_test_{uuid.uuid4().hex[:8]}"
    cur.execute(f"CREATE SCHEMA {schema}")
    cur.execute(f"SET search_path TO {schema}, public")
    cur.execute(SCHEMA_SQL.read_text(encoding="utf-8"))
    try:
        yield cur
    finally:
        cur.execute(f"DROP SCHEMA {schema} CASCADE")
        cur.close()
        conn.close()


def _rows():
    matrix = matrix_from_rows(form_ii_rows([
        employee_row(101, "Asha Rao"),
        employee_row(102, "Ravi Patil", gross=18000, net=16500, normal=14000, hra=2800),
    ]))
    header_row, data_start = locate(matrix)
    mapping, _ = infer(header_labels(matrix, header_row))
    return parse_rows(matrix, data_start, mapping).rows


def _count(cur, table: str, run_id: str) -> int:
    cur.execute(f"SELECT count(*) FROM {table} WHERE payroll_run_id = %s", (run_id,))
    return cur.fetchone()[0]


def test_full_import_and_rerun_is_idempotent(cursor):
    store = PostgresPayrollStore(cursor)
    rows = _rows()
    first = run_import(rows, store=store, company_id="acme", month="2025-03", working_days=26)
    second = run_import(rows, store=store, company_id="acme", month="2025-03", working_days=26)

    assert first.employees_imported == second.employees_imported == 2
    assert first.payroll_run_id == second.payroll_run_id
    cursor.execute("SELECT count(*) FROM employees WHERE company_id = 'acme'")
    assert cursor.fetchone()[0] == 2
    assert _count(cursor, "attendance", first.payroll_run_id) == 2
    assert _count(cursor, "payroll_details", first.payroll_run_id) == 2


def test_attendance_import_resolves_existing_employees(cursor):
    store = PostgresPayrollStore(cursor)
    rows = _rows()
    run_import(rows, store=store, company_id="acme", month="2025-03", working_days=26, mode=ImportMode.WAGES)
    summary = run_import(rows, store=store, company_id="acme", month="2025-03", working_days=26,
                         mode=ImportMode.ATTENDANCE)
    assert summary.db_failures == []
    assert _count(cursor, "attendance", summary.payroll_run_id) == 2
    assert _count(cursor, "payroll_details", summary.payroll_run_id) == 0
