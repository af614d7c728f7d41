from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime

from ..config.loader import StatutorySettings
from ..db.errors import sanitize_store_error
from ..db.store import PayrollStore, StoreError
from ..models.entities import (
    AttendanceRecord,
    EmployeeRecord,
    ImportMode,
    PayrollDetailRecord,
    PayrollRunRecord,
    ResolvedEmployee,
)
from ..models.import_summary import DbFailure, ImportSummary
from ..models.parsed_row import ParsedRow
from . import statutory
from .progress import ProgressTracker

"""Import orchestrator: parsed register rows -> employees, run, attendance, payroll.

Stage 1 (employee resolution) is row-isolated: every row is saved or resolved
on its own and a failure only adds a DbFailure. Stages 2-4 (payroll run,
attendance, payroll detail) are one unit: they run in a single store
transaction under the (company, month) lease, and any failure rolls all of
them back and raises PipelineError. Stage 1 results stay committed in that
case; a rerun converges because every write is keyed.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessingError",
    "ImportRejected",
    "PipelineError",
    "RUN_STATUS_IMPORTED",
    "importable_rows",
    "synthesize_emp_code",
    "build_employee_record",
    "build_attendance_record",
    "build_payroll_detail",
    "run_import",
]

RUN_STATUS_IMPORTED = "imported"

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

NOT_IN_MASTER = "Employee not found in master. Run 'Wages' or 'All' import first."
DUPLICATE_IN_WORKBOOK = "Duplicate employee in workbook"


class ProcessingError(Exception):
    """Base exception for import processing errors."""


class ImportRejected(ProcessingError):
    """A precondition failed; nothing was written."""


class PipelineError(ProcessingError):
    """Stages 2-4 failed and were rolled back."""

    def __init__(self, stage: str, reason: str):
        super().__init__(f"{stage} failed: {reason}")
        self.stage = stage
        self.reason = reason


def importable_rows(rows: Sequence[ParsedRow], mode: ImportMode) -> list[ParsedRow]:
    """Rows that may be committed under ``mode``.

    Clean rows always; rows whose only problems concern the date of joining
    also under wages / attendance (the stored DOJ is left untouched).
    """
    return [
        r for r in rows
        if r.is_valid or (mode is not ImportMode.ALL and r.has_only_doj_issues)
    ]


def synthesize_emp_code(company_id: str, name: str) -> str:
    """Stable code for a register without employee codes.

    Derived from company and normalized name so that re-importing the same
    register updates the same employee instead of creating a new one.
    """
    key = f"{company_id}:{' '.join(name.lower().split())}"
    return "IMP-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:10].upper()


def build_employee_record(
    row: ParsedRow, company_id: str, emp_code: str, settings: StatutorySettings
) -> EmployeeRecord:
    return EmployeeRecord(
        company_id=company_id,
        emp_code=emp_code,
        name=row.name,
        basic=row.normal_wages,
        hra=row.hra_payable,
        allowances=max(0.0, row.gross_wages - row.normal_wages - row.hra_payable),
        gross=row.gross_wages,
        date_of_joining=row.date_of_joining,
        designation=row.designation,
        epf_applicable=row.normal_wages > 0,
        esic_applicable=row.gross_wages <= settings.esic_ceiling,
        pt_applicable=True,
    )


def _days_present(row: ParsedRow) -> int:
    return statutory.round_rupees(row.attendance.days_worked)


def build_attendance_record(
    row: ParsedRow,
    employee: ResolvedEmployee,
    *,
    company_id: str,
    payroll_run_id: str,
    month: str,
    working_days: int,
) -> AttendanceRecord:
    days = _days_present(row)
    return AttendanceRecord(
        company_id=company_id,
        payroll_run_id=payroll_run_id,
        employee_id=employee.employee_id,
        month=month,
        working_days=working_days,
        days_present=days,
        paid_leaves=0,
        unpaid_leaves=max(0, working_days - days),
        overtime_hours=0.0,
        daily_marks=list(row.attendance.daily_marks) or None,
    )


def build_payroll_detail(
    row: ParsedRow,
    employee: ResolvedEmployee,
    *,
    payroll_run_id: str,
    month: str,
    working_days: int,
    settings: StatutorySettings,
) -> PayrollDetailRecord:
    """Recompute one employee's payroll line from the current row."""
    days = _days_present(row)
    basic = statutory.prorate(row.normal_wages, days, working_days)
    hra = statutory.prorate(row.hra_payable, days, working_days)
    gross = statutory.prorate(row.gross_wages, days, working_days)
    allowances = max(0, gross - basic - hra)

    if settings.compliance_regime == "labour_codes":
        wage_base = statutory.wage_definition(basic, exclusions=hra + allowances).wages
    else:
        wage_base = basic

    pf = statutory.epf(wage_base) if basic > 0 else statutory.EPFContribution(0, 0, 0)
    esi = statutory.esic(gross, ceiling=settings.esic_ceiling)
    pt = statutory.professional_tax(gross, month, employee.gender)
    tax = statutory.tds(gross * 12)
    welfare = statutory.lwf(month, settings.lwf_applicable)

    total = (
        pf.employee_share
        + esi.employee_share
        + pt
        + tax.monthly_tds
        + welfare.employee_share
        + row.deductions.total
    )
    return PayrollDetailRecord(
        payroll_run_id=payroll_run_id,
        employee_id=employee.employee_id,
        days_present=days,
        basic_paid=basic,
        hra_paid=hra,
        allowances_paid=allowances,
        gross_earnings=gross,
        epf_employee=pf.employee_share,
        epf_employer=pf.employer_epf,
        eps_employer=pf.employer_eps,
        esic_employee=esi.employee_share,
        esic_employer=esi.employer_share,
        pt=pt,
        tds=tax.monthly_tds,
        lwf_employee=welfare.employee_share,
        lwf_employer=welfare.employer_share,
        total_deductions=round(total, 2),
        net_pay=round(max(0.0, gross - total), 2),
    )


def _check_preconditions(company_id: str | None, month: str, working_days: int, mode: ImportMode | str) -> ImportMode:
    if not company_id or not str(company_id).strip():
        raise ImportRejected("No company set. Configure company_id before importing.")
    if not isinstance(month, str) or not MONTH_RE.match(month):
        raise ImportRejected(f"Invalid month {month!r}: expected YYYY-MM")
    if isinstance(working_days, bool) or not isinstance(working_days, int) or not 1 <= working_days <= 31:
        raise ImportRejected(f"Invalid working days {working_days!r}: expected 1-31")
    try:
        return ImportMode(mode)
    except ValueError as e:
        raise ImportRejected(f"Unknown import mode {mode!r}: use all, attendance or wages") from e


def _save_employees(
    rows: Sequence[ParsedRow],
    store: PayrollStore,
    company_id: str,
    settings: StatutorySettings,
    progress: ProgressTracker,
) -> tuple[dict[int, ResolvedEmployee], list[DbFailure]]:
    resolved: dict[int, ResolvedEmployee] = {}
    failures: list[DbFailure] = []
    seen_codes: dict[str, int] = {}
    for row in rows:
        progress.advance(row.name)
        code = row.emp_code or synthesize_emp_code(company_id, row.name)
        if code in seen_codes:
            reason = (
                f"{DUPLICATE_IN_WORKBOOK} (same code as row {seen_codes[code]})"
                if row.emp_code
                else f"{DUPLICATE_IN_WORKBOOK} (same name as row {seen_codes[code]}, no employee code)"
            )
            failures.append(DbFailure(row.name, reason, row.row_number))
            continue
        seen_codes[code] = row.row_number
        try:
            resolved[row.row_number] = store.upsert_employee(
                build_employee_record(row, company_id, code, settings)
            )
        except StoreError as e:
            reason = sanitize_store_error(e)
            logger.warning("row %d: could not save %s: %s", row.row_number, row.name, reason)
            failures.append(DbFailure(row.name, reason, row.row_number))
    return resolved, failures


def _lookup_employee(store: PayrollStore, company_id: str, row: ParsedRow) -> ResolvedEmployee | str:
    """Existing employee for ``row``, or the failure reason."""
    code = row.emp_code or synthesize_emp_code(company_id, row.name)
    found = store.find_employee_by_code(company_id, code)
    if found is not None:
        return found
    matches = store.find_employees_by_name(company_id, row.name)
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        return (
            f"{len(matches)} employees in master are named '{row.name}'. "
            "Add employee codes to the register to import attendance."
        )
    return NOT_IN_MASTER


def _resolve_existing(
    rows: Sequence[ParsedRow],
    store: PayrollStore,
    company_id: str,
    progress: ProgressTracker,
) -> tuple[dict[int, ResolvedEmployee], list[DbFailure]]:
    resolved: dict[int, ResolvedEmployee] = {}
    failures: list[DbFailure] = []
    seen_ids: dict[str, int] = {}
    for row in rows:
        progress.advance(row.name)
        try:
            outcome = _lookup_employee(store, company_id, row)
        except StoreError as e:
            outcome = sanitize_store_error(e)
        if isinstance(outcome, str):
            logger.warning("row %d: %s: %s", row.row_number, row.name, outcome)
            failures.append(DbFailure(row.name, outcome, row.row_number))
            continue
        if outcome.employee_id in seen_ids:
            failures.append(DbFailure(
                row.name,
                f"{DUPLICATE_IN_WORKBOOK} (same employee as row {seen_ids[outcome.employee_id]})",
                row.row_number,
            ))
            continue
        seen_ids[outcome.employee_id] = row.row_number
        resolved[row.row_number] = outcome
    return resolved, failures


def run_import(
    rows: Sequence[ParsedRow],
    *,
    store: PayrollStore,
    company_id: str | None,
    month: str,
    working_days: int,
    mode: ImportMode | str = ImportMode.ALL,
    settings: StatutorySettings | None = None,
    source_name: str = "",
) -> ImportSummary:
    """Run the import stages and return the terminal summary.

    Args:
        rows: every parsed row of the register (rows with issues included;
            they are counted but never written)
        store: PayrollStore implementation
        company_id: owning company
        month: target month, YYYY-MM
        working_days: working days in the month, 1-31
        mode: all | attendance | wages
        settings: statutory settings (defaults when None)
        source_name: workbook name, for log lines only

    Raises:
        ImportRejected: a precondition failed; the store was not touched
        PipelineError: payroll run / attendance / payroll detail failed and
            were rolled back (Stage 1 writes stay committed)
    """
    import_mode = _check_preconditions(company_id, month, working_days, mode)
    company_id = str(company_id).strip()
    settings = settings or StatutorySettings()

    candidates = importable_rows(rows, import_mode)
    if not candidates:
        raise ImportRejected("No rows without errors to import. Fix the rows marked as errors and retry.")

    logger.info(
        "import %s: mode=%s month=%s working_days=%d rows=%d importable=%d",
        source_name or "<rows>",
        import_mode.value,
        month,
        working_days,
        len(rows),
        len(candidates),
    )

    # Stage 1 - employee resolution (row-isolated)
    desc = "Saving employees" if import_mode.writes_employees else "Resolving employees"
    with ProgressTracker(len(candidates), description=desc) as progress:
        if import_mode.writes_employees:
            resolved, failures = _save_employees(candidates, store, company_id, settings, progress)
        else:
            resolved, failures = _resolve_existing(candidates, store, company_id, progress)
    logger.info("stage 1: resolved=%d failed=%d", len(resolved), len(failures))

    summary_kwargs = dict(
        rows_parsed=len(rows),
        valid_rows=sum(1 for r in rows if r.is_valid),
        row_error_count=sum(1 for r in rows if not r.is_valid),
        employees_imported=len(resolved),
        db_failures=failures,
        mode=import_mode,
        month=month,
    )

    if not resolved:
        # nothing to attach; leave any existing run data as it is
        logger.warning("no employee resolved; payroll run, attendance and payroll detail left unchanged")
        return ImportSummary(**summary_kwargs)

    by_row = [r for r in candidates if r.row_number in resolved]
    stage = "payroll run"
    attendance_rows = 0
    detail_rows = 0
    try:
        with store.stage_transaction(company_id, month):
            # Stage 2 - payroll run
            run_id = store.upsert_payroll_run(
                PayrollRunRecord(
                    company_id=company_id,
                    month=month,
                    working_days=working_days,
                    status=RUN_STATUS_IMPORTED,
                    processed_at=datetime.now(UTC),
                )
            )

            # Stage 3 - attendance (replace batch)
            if import_mode.writes_attendance:
                stage = "attendance"
                attendance_rows = store.replace_attendance(
                    run_id,
                    [
                        build_attendance_record(
                            r,
                            resolved[r.row_number],
                            company_id=company_id,
                            payroll_run_id=run_id,
                            month=month,
                            working_days=working_days,
                        )
                        for r in by_row
                    ],
                )

            # Stage 4 - payroll detail (replace batch)
            if import_mode.writes_payroll_detail:
                stage = "payroll detail"
                detail_rows = store.replace_payroll_details(
                    run_id,
                    [
                        build_payroll_detail(
                            r,
                            resolved[r.row_number],
                            payroll_run_id=run_id,
                            month=month,
                            working_days=working_days,
                            settings=settings,
                        )
                        for r in by_row
                    ],
                )
    except StoreError as e:
        reason = sanitize_store_error(e)
        logger.error("%s stage rolled back: %s", stage, reason)
        raise PipelineError(stage, reason) from e

    logger.info(
        "stages 2-4 committed: run=%s attendance=%d payroll_detail=%d",
        run_id,
        attendance_rows,
        detail_rows,
    )
    return ImportSummary(
        **summary_kwargs,
        payroll_run_id=run_id,
        attendance_rows=attendance_rows,
        payroll_detail_rows=detail_rows,
    )
