from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from muster_import.db.memory_store import MemoryPayrollStore
from muster_import.db.store import StoreError
from muster_import.models import ImportMode
from muster_import.services import session as stages
from muster_import.services.orchestrator import PipelineError, run_import
from tests.builders import employee_row, form_ii_rows, write_xlsx

"""Workbook on disk -> session stages -> orchestrator -> in-memory store."""


def _parse_file(path: Path):
    s, _ = stages.load_workbook(stages.ImportSession(), path)
    s, _ = stages.detect_layout(s)
    s, _ = stages.auto_map(s)
    s, outcome = stages.parse(s)
    return s, outcome


@pytest.fixture()
def march_register(temp_workdir: Path) -> Path:
    rows = form_ii_rows([
        employee_row(101, "Asha Rao", doj="03.04.2017"),
        employee_row(102, "Ravi Patil", doj="15/01/2019", gross=18000, net=16500, normal=14000, hra=2800),
        employee_row(103, "Meena Iyer", doj="", advances=500, net=13500),
        employee_row(104, "Imran Shaikh", gross="", net=""),
    ])
    return write_xlsx(temp_workdir / "data" / "march.xlsx", rows)


def test_all_mode_end_to_end(march_register: Path):
    session, outcome = _parse_file(march_register)
    assert session.confidence == 1.0
    assert [r.name for r in outcome.rows] == ["Asha Rao", "Ravi Patil", "Meena Iyer", "Imran Shaikh"]
    assert outcome.stopped_at is not None

    store = MemoryPayrollStore()
    summary = run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26)

    # Meena (DOJ missing) and Imran (no wages) are not importable under "all"
    assert summary.rows_parsed == 4
    assert summary.valid_rows == 2
    assert summary.row_error_count == 2
    assert summary.employees_imported == 2
    codes = sorted(e["emp_code"] for e in store.employees_for("acme"))
    assert codes == ["101", "102"]
    assert store.employees[("acme", "102")]["date_of_joining"] == date(2019, 1, 15)
    assert len(store.payroll_details_for(summary.payroll_run_id)) == 2


def test_wages_then_attendance_end_to_end(march_register: Path):
    _, outcome = _parse_file(march_register)
    store = MemoryPayrollStore()

    wages = run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26,
                       mode=ImportMode.WAGES)
    # DOJ-only row is accepted for wages; the stored DOJ stays empty
    assert wages.employees_imported == 3
    assert store.employees[("acme", "103")]["date_of_joining"] is None

    attendance = run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26,
                            mode=ImportMode.ATTENDANCE)
    assert attendance.employees_imported == 3
    assert attendance.db_failures == []
    run = store.run_for("acme", "2025-03")
    assert len(store.attendance_for(run["id"])) == 3
    assert store.payroll_details_for(run["id"]) == []


def test_second_month_gets_its_own_run(march_register: Path):
    _, outcome = _parse_file(march_register)
    store = MemoryPayrollStore()
    march = run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26)
    april = run_import(outcome.rows, store=store, company_id="acme", month="2025-04", working_days=26)
    assert march.payroll_run_id != april.payroll_run_id
    assert len(store.employees_for("acme")) == 2
    assert len(store.attendance_for(march.payroll_run_id)) == 2
    assert len(store.attendance_for(april.payroll_run_id)) == 2


def test_failed_rerun_keeps_committed_month(march_register: Path):
    _, outcome = _parse_file(march_register)
    store = MemoryPayrollStore()
    first = run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26)
    details_before = store.payroll_details_for(first.payroll_run_id)

    def broken(run_id, records):
        raise StoreError("deadlock detected", code="40P01")

    store.replace_payroll_details = broken  # type: ignore[method-assign]

    with pytest.raises(PipelineError) as exc_info:
        run_import(outcome.rows, store=store, company_id="acme", month="2025-03", working_days=26)
    assert exc_info.value.stage == "payroll detail"
    assert store.payroll_details_for(first.payroll_run_id) == details_before
