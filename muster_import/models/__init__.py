"""Domain models for the wage register import pipeline.

Transient upload-session values (column mappings, parsed rows) and the durable
entity records written to the payroll store.
"""

from .column_mapping import KEY_ROLES, ColumnMapping, ColumnRole
from .entities import (
    AttendanceRecord,
    EmployeeRecord,
    ImportMode,
    PayrollDetailRecord,
    PayrollRunRecord,
    ResolvedEmployee,
)
from .error_record import ErrorRecord
from .import_summary import DbFailure, ImportSummary
from .mapping_profile import MappingProfile
from .parsed_row import AttendanceMarks, Deductions, IssueCode, ParsedRow, ParseOutcome, RowIssue

__all__ = [
    # Mapping models
    "ColumnRole",
    "ColumnMapping",
    "KEY_ROLES",
    "MappingProfile",
    # Parsing models
    "IssueCode",
    "RowIssue",
    "Deductions",
    "AttendanceMarks",
    "ParsedRow",
    "ParseOutcome",
    # Entity models
    "ImportMode",
    "EmployeeRecord",
    "ResolvedEmployee",
    "PayrollRunRecord",
    "AttendanceRecord",
    "PayrollDetailRecord",
    # Results
    "DbFailure",
    "ImportSummary",
    "ErrorRecord",
]
