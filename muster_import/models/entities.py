from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

"""Persistent entity records written by the import orchestrator.

These mirror the four tables in db/schema.sql. Identity keys:
- Employee: (company_id, emp_code)
- PayrollRun: (company_id, month)
- Attendance / PayrollDetail: (payroll_run_id, employee_id)
"""

__all__ = [
    "ImportMode",
    "EmployeeRecord",
    "ResolvedEmployee",
    "PayrollRunRecord",
    "AttendanceRecord",
    "PayrollDetailRecord",
]


class ImportMode(str, Enum):
    """Scope switch selecting which import stages execute.

    - ALL: employees, payroll run, attendance, payroll detail
    - ATTENDANCE: resolve existing employees, payroll run, attendance
    - WAGES: employees, payroll run
    """
    ALL = "all"
    ATTENDANCE = "attendance"
    WAGES = "wages"

    @property
    def writes_employees(self) -> bool:
        return self in (ImportMode.ALL, ImportMode.WAGES)

    @property
    def writes_attendance(self) -> bool:
        return self in (ImportMode.ALL, ImportMode.ATTENDANCE)

    @property
    def writes_payroll_detail(self) -> bool:
        return self is ImportMode.ALL


@dataclass(frozen=True)
class EmployeeRecord:
    """Employee master values upserted by Stage 1."""
    company_id: str
    emp_code: str
    name: str
    basic: float
    hra: float
    allowances: float
    gross: float
    date_of_joining: date | None  # None keeps the stored value on update
    designation: str | None
    epf_applicable: bool
    esic_applicable: bool
    pt_applicable: bool
    status: str = "Active"

    def as_row(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "emp_code": self.emp_code,
            "name": self.name,
            "designation": self.designation,
            "basic": self.basic,
            "hra": self.hra,
            "allowances": self.allowances,
            "gross": self.gross,
            "date_of_joining": self.date_of_joining,
            "status": self.status,
            "epf_applicable": self.epf_applicable,
            "esic_applicable": self.esic_applicable,
            "pt_applicable": self.pt_applicable,
        }


@dataclass(frozen=True)
class ResolvedEmployee:
    """Stored employee identity handed from Stage 1 to the later stages."""
    employee_id: str
    gender: str = "Male"


@dataclass(frozen=True)
class PayrollRunRecord:
    company_id: str
    month: str  # YYYY-MM
    working_days: int
    status: str
    processed_at: datetime


@dataclass(frozen=True)
class AttendanceRecord:
    company_id: str
    payroll_run_id: str
    employee_id: str
    month: str
    working_days: int
    days_present: int
    paid_leaves: int
    unpaid_leaves: int
    overtime_hours: float
    daily_marks: list[str] | None

    def as_row(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id,
            "payroll_run_id": self.payroll_run_id,
            "employee_id": self.employee_id,
            "month": self.month,
            "working_days": self.working_days,
            "days_present": self.days_present,
            "paid_leaves": self.paid_leaves,
            "unpaid_leaves": self.unpaid_leaves,
            "overtime_hours": self.overtime_hours,
            "daily_marks": self.daily_marks,
        }


@dataclass(frozen=True)
class PayrollDetailRecord:
    payroll_run_id: str
    employee_id: str
    days_present: int
    basic_paid: int
    hra_paid: int
    allowances_paid: int
    gross_earnings: int
    epf_employee: int
    epf_employer: int
    eps_employer: int
    esic_employee: int
    esic_employer: int
    pt: int
    tds: int
    lwf_employee: int
    lwf_employer: int
    total_deductions: float
    net_pay: float

    def as_row(self) -> dict[str, Any]:
        return {
            "payroll_run_id": self.payroll_run_id,
            "employee_id": self.employee_id,
            "days_present": self.days_present,
            "basic_paid": self.basic_paid,
            "hra_paid": self.hra_paid,
            "allowances_paid": self.allowances_paid,
            "gross_earnings": self.gross_earnings,
            "epf_employee": self.epf_employee,
            "epf_employer": self.epf_employer,
            "eps_employer": self.eps_employer,
            "esic_employee": self.esic_employee,
            "esic_employer": self.esic_employer,
            "pt": self.pt,
            "tds": self.tds,
            "lwf_employee": self.lwf_employee,
            "lwf_employer": self.lwf_employer,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
        }
