from __future__ import annotations

from datetime import date
from unittest.mock import patch

import pytest

from muster_import.config.loader import StatutorySettings
from muster_import.db.memory_store import MemoryPayrollStore
from muster_import.db.store import StoreError
from muster_import.excel.mapper import infer
from muster_import.excel.reader import matrix_from_rows
from muster_import.models import ColumnRole, ImportMode, ResolvedEmployee
from muster_import.services.orchestrator import (
    NOT_IN_MASTER,
    ImportRejected,
    PipelineError,
    build_payroll_detail,
    importable_rows,
    run_import,
    synthesize_emp_code,
)
from muster_import.services.row_parser import parse_rows
from tests.builders import FORM_II_HEADER, employee_row, form_ii_rows

MAPPING, _ = infer(FORM_II_HEADER)
NO_CODES = MAPPING.without_role(ColumnRole.EMPLOYEE_CODE)


def _rows(*employees, mapping=MAPPING):
    matrix = matrix_from_rows(form_ii_rows(list(employees)))
    return parse_rows(matrix, 4, mapping).rows


def _three():
    return _rows(
        employee_row(1, "Asha Rao"),
        employee_row(2, "Ravi Patil", gross=18000, net=16500, normal=14000, hra=2800),
        employee_row(3, "Meena Iyer", advances=500, net=13500),
    )


def _run(rows, store, mode=ImportMode.ALL, **kwargs):
    params = dict(store=store, company_id="acme", month="2025-03", working_days=26, mode=mode)
    params.update(kwargs)
    return run_import(rows, **params)


def test_all_mode_on_empty_company():
    store = MemoryPayrollStore()
    summary = _run(_three(), store)

    assert summary.rows_parsed == 3
    assert summary.valid_rows == 3
    assert summary.employees_imported == 3
    assert summary.db_failures == []
    assert not summary.has_failures
    assert len(store.employees_for("acme")) == 3

    run = store.run_for("acme", "2025-03")
    assert run is not None and run["id"] == summary.payroll_run_id
    assert run["status"] == "imported"
    assert run["working_days"] == 26
    assert len(store.attendance_for(run["id"])) == 3
    assert len(store.payroll_details_for(run["id"])) == 3
    assert (summary.attendance_rows, summary.payroll_detail_rows) == (3, 3)


def test_wages_mode_writes_employees_and_run_only():
    store = MemoryPayrollStore()
    summary = _run(_three(), store, mode=ImportMode.WAGES)
    assert summary.employees_imported == 3
    run = store.run_for("acme", "2025-03")
    assert run is not None
    assert store.attendance_for(run["id"]) == []
    assert store.payroll_details_for(run["id"]) == []


def test_attendance_mode_without_master_fails_every_row_and_writes_nothing():
    store = MemoryPayrollStore()
    summary = _run(_three(), store, mode=ImportMode.ATTENDANCE)
    assert summary.employees_imported == 0
    assert [f.reason for f in summary.db_failures] == [NOT_IN_MASTER] * 3
    assert [f.row_number for f in summary.db_failures] == [5, 6, 7]
    assert store.employees == {}
    assert store.run_for("acme", "2025-03") is None
    assert summary.has_failures


def test_wages_then_attendance_converges():
    store = MemoryPayrollStore()
    _run(_three(), store, mode=ImportMode.WAGES)
    ids = {e["id"] for e in store.employees_for("acme")}

    summary = _run(_three(), store, mode=ImportMode.ATTENDANCE)
    assert summary.employees_imported == 3
    run = store.run_for("acme", "2025-03")
    attendance = store.attendance_for(run["id"])
    assert {a["employee_id"] for a in attendance} == ids
    assert store.payroll_details_for(run["id"]) == []
    assert len(store.employees_for("acme")) == 3


def test_rerun_is_idempotent():
    store = MemoryPayrollStore()
    first = _run(_three(), store)
    ids = {e["id"] for e in store.employees_for("acme")}
    second = _run(_three(), store)

    assert second.payroll_run_id == first.payroll_run_id
    assert {e["id"] for e in store.employees_for("acme")} == ids
    assert len(store.payroll_runs) == 1
    assert len(store.attendance_for(first.payroll_run_id)) == 3
    assert len(store.payroll_details_for(first.payroll_run_id)) == 3


def test_stage1_failure_is_row_isolated_and_sanitized():
    store = MemoryPayrollStore()
    original = store.upsert_employee

    def flaky(record):
        if record.name == "Ravi Patil":
            raise StoreError('duplicate key value violates unique constraint "employees_pkey"', code="23505")
        return original(record)

    with patch.object(store, "upsert_employee", side_effect=flaky):
        summary = _run(_three(), store)

    assert summary.employees_imported == 2
    assert len(summary.db_failures) == 1
    failure = summary.db_failures[0]
    assert failure.name == "Ravi Patil"
    assert failure.row_number == 6
    assert failure.reason == "This record already exists. Please check for duplicates."
    assert "employees_pkey" not in failure.reason
    assert summary.attendance_rows == 2
    assert summary.has_failures


def test_pipeline_failure_rolls_back_stages_2_to_4():
    store = MemoryPayrollStore()
    with patch.object(
        store,
        "replace_payroll_details",
        side_effect=StoreError('new row violates check constraint "payroll_details_net_pay_check"', code="23514"),
    ):
        with pytest.raises(PipelineError) as exc_info:
            _run(_three(), store)

    assert exc_info.value.stage == "payroll detail"
    assert exc_info.value.reason == "One or more values are invalid. Please review your input."
    # stage 1 stays committed, everything after it is gone
    assert len(store.employees_for("acme")) == 3
    assert store.payroll_runs == {}
    assert store.attendance == {}


def test_pipeline_failure_keeps_previous_run_data():
    store = MemoryPayrollStore()
    first = _run(_three(), store)
    before = dict(store.attendance)

    with patch.object(store, "replace_attendance", side_effect=StoreError("connection reset", code="08006")):
        with pytest.raises(PipelineError, match="attendance failed: Network error"):
            _run(_three(), store, working_days=30)

    assert store.attendance == before
    assert store.run_for("acme", "2025-03")["working_days"] == 26
    assert len(store.payroll_details_for(first.payroll_run_id)) == 3


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"company_id": None}, "No company set"),
        ({"company_id": "  "}, "No company set"),
        ({"month": "2025-13"}, "Invalid month"),
        ({"month": "March"}, "Invalid month"),
        ({"working_days": 0}, "Invalid working days"),
        ({"working_days": 32}, "Invalid working days"),
        ({"working_days": True}, "Invalid working days"),
        ({"mode": "payroll"}, "Unknown import mode"),
    ],
)
def test_preconditions_reject_before_any_write(overrides, message):
    store = MemoryPayrollStore()
    with pytest.raises(ImportRejected, match=message):
        _run(_three(), store, **overrides)
    assert store.employees == {}
    assert store.payroll_runs == {}


def test_no_importable_rows_rejected():
    store = MemoryPayrollStore()
    rows = _rows(employee_row(1, "Asha Rao", gross="", net=""))
    with pytest.raises(ImportRejected, match="No rows without errors"):
        _run(rows, store)
    assert store.employees == {}


def test_rows_with_issues_are_counted_not_written():
    store = MemoryPayrollStore()
    rows = _rows(employee_row(1, "Asha Rao"), employee_row(2, "Ravi Patil", gross="", net=""))
    summary = _run(rows, store)
    assert summary.rows_parsed == 2
    assert summary.valid_rows == 1
    assert summary.row_error_count == 1
    assert summary.employees_imported == 1
    assert summary.has_failures
    assert [e["name"] for e in store.employees_for("acme")] == ["Asha Rao"]


def test_fractional_days_rounding_to_zero_are_not_imported():
    store = MemoryPayrollStore()
    rows = _rows(employee_row(1, "Asha Rao"), employee_row(2, "Ravi Patil", total_days=0.4))
    summary = _run(rows, store)
    assert summary.row_error_count == 1
    assert summary.employees_imported == 1
    attendance = store.attendance_for(summary.payroll_run_id)
    assert len(attendance) == 1
    assert attendance[0]["days_present"] == 26


def test_iso_date_of_joining_is_stored_month_first():
    store = MemoryPayrollStore()
    _run(_rows(employee_row(1, "Asha Rao", doj="2017-04-13"), employee_row(2, "Ravi Patil", doj="2017-04-03")), store)
    assert store.employees[("acme", "1")]["date_of_joining"] == date(2017, 4, 13)
    assert store.employees[("acme", "2")]["date_of_joining"] == date(2017, 4, 3)


def test_doj_only_rows_importable_outside_all_mode():
    rows = _rows(employee_row(1, "Asha Rao", doj=""), employee_row(2, "Ravi Patil"))
    assert [r.name for r in importable_rows(rows, ImportMode.ALL)] == ["Ravi Patil"]
    assert len(importable_rows(rows, ImportMode.WAGES)) == 2
    assert len(importable_rows(rows, ImportMode.ATTENDANCE)) == 2


def test_blank_doj_keeps_stored_date():
    store = MemoryPayrollStore()
    store.seed_employee("acme", "1", "Asha Rao", date_of_joining=date(2010, 1, 1))
    _run(_rows(employee_row(1, "Asha Rao", doj="")), store, mode=ImportMode.WAGES)
    assert store.employees[("acme", "1")]["date_of_joining"] == date(2010, 1, 1)


def test_duplicate_code_in_workbook_fails_second_row():
    store = MemoryPayrollStore()
    rows = _rows(employee_row(7, "Asha Rao"), employee_row(7, "Ravi Patil"))
    summary = _run(rows, store)
    assert summary.employees_imported == 1
    assert summary.db_failures[0].name == "Ravi Patil"
    assert "Duplicate employee in workbook" in summary.db_failures[0].reason
    assert "row 5" in summary.db_failures[0].reason


def test_synthesized_codes_are_stable():
    assert synthesize_emp_code("acme", "Asha Rao") == synthesize_emp_code("acme", "  asha   RAO ")
    assert synthesize_emp_code("acme", "Asha Rao") != synthesize_emp_code("other", "Asha Rao")
    assert synthesize_emp_code("acme", "Asha Rao").startswith("IMP-")

    store = MemoryPayrollStore()
    rows = _rows(employee_row("", "Asha Rao"), mapping=NO_CODES)
    _run(rows, store, mode=ImportMode.WAGES)
    _run(rows, store, mode=ImportMode.WAGES)
    assert len(store.employees_for("acme")) == 1


def test_attendance_mode_matches_by_name_and_reports_ambiguity():
    store = MemoryPayrollStore()
    store.seed_employee("acme", "A1", "Asha Rao")
    store.seed_employee("acme", "A2", "asha rao")
    ravi = store.seed_employee("acme", "E9", "Ravi Patil")
    rows = _rows(employee_row("", "Asha Rao"), employee_row("", "RAVI PATIL"), mapping=NO_CODES)

    summary = _run(rows, store, mode=ImportMode.ATTENDANCE)

    assert summary.employees_imported == 1
    assert "2 employees in master are named 'Asha Rao'" in summary.db_failures[0].reason
    run = store.run_for("acme", "2025-03")
    assert [a["employee_id"] for a in store.attendance_for(run["id"])] == [ravi]


def test_attendance_mode_same_employee_twice_fails_second_row():
    store = MemoryPayrollStore()
    store.seed_employee("acme", "E9", "Ravi Patil")
    rows = _rows(employee_row("", "Ravi Patil"), employee_row("", "ravi patil"), mapping=NO_CODES)
    summary = _run(rows, store, mode=ImportMode.ATTENDANCE)
    assert summary.employees_imported == 1
    assert "same employee as row 5" in summary.db_failures[0].reason


def test_attendance_record_values():
    store = MemoryPayrollStore()
    summary = _run(_rows(employee_row(1, "Asha Rao", total_days=24)), store, working_days=30)
    (record,) = store.attendance_for(summary.payroll_run_id)
    assert record["days_present"] == 24
    assert record["unpaid_leaves"] == 6
    assert record["working_days"] == 30
    assert record["month"] == "2025-03"
    assert len(record["daily_marks"]) == 31


def test_payroll_detail_legacy_regime():
    (row,) = _rows(employee_row(1, "Asha Rao"))
    detail = build_payroll_detail(
        row,
        ResolvedEmployee("emp-1"),
        payroll_run_id="run-1",
        month="2025-03",
        working_days=26,
        settings=StatutorySettings(),
    )
    assert (detail.basic_paid, detail.hra_paid, detail.allowances_paid, detail.gross_earnings) == (12000, 2400, 600, 15000)
    assert detail.epf_employee == 1440
    assert detail.esic_employee == 113
    assert detail.pt == 200
    assert detail.tds == 0
    assert detail.lwf_employee == 0
    assert detail.total_deductions == 1753
    assert detail.net_pay == 13247


def test_payroll_detail_prorates_and_includes_register_deductions():
    (row,) = _rows(employee_row(1, "Asha Rao", total_days=13, advances=500, net=13500))
    detail = build_payroll_detail(
        row,
        ResolvedEmployee("emp-1", gender="Female"),
        payroll_run_id="run-1",
        month="2025-06",
        working_days=26,
        settings=StatutorySettings(),
    )
    assert detail.gross_earnings == 7500
    assert detail.basic_paid == 6000
    assert detail.pt == 0
    assert detail.lwf_employee == 25 and detail.lwf_employer == 75
    # 720 epf + 56 esic + 25 lwf + 500 advance
    assert detail.total_deductions == 1301
    assert detail.net_pay == 6199


def test_payroll_detail_labour_codes_wage_base():
    (row,) = _rows(employee_row(1, "Asha Rao", normal=5000, hra=8000, gross=15000))
    kwargs = dict(payroll_run_id="r", month="2025-03", working_days=26)
    legacy = build_payroll_detail(row, ResolvedEmployee("e"), settings=StatutorySettings(), **kwargs)
    codes = build_payroll_detail(
        row, ResolvedEmployee("e"), settings=StatutorySettings(compliance_regime="labour_codes"), **kwargs
    )
    assert legacy.epf_employee == 600
    assert codes.epf_employee == 900
