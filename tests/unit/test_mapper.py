from __future__ import annotations

import pytest

from muster_import.excel.mapper import (
    SchemaError,
    apply_overrides,
    best_pattern,
    infer,
    mapping_confidence,
    validate_mapping,
)
from muster_import.models import ColumnMapping, ColumnRole
from tests.builders import COL_DAY1, COL_DAY31, COL_GROSS, COL_NET, COL_TOTAL_DAYS, FORM_II_HEADER


def test_infer_full_form_ii_header():
    mapping, confidence = infer(FORM_II_HEADER)
    assert confidence == 1.0
    assert mapping.get(ColumnRole.EMPLOYEE_CODE) == 0
    assert mapping.get(ColumnRole.NAME) == 1
    assert mapping.get(ColumnRole.DESIGNATION) == 2
    assert mapping.get(ColumnRole.DATE_OF_JOINING) == 3
    assert mapping.attendance_block == (COL_DAY1, COL_DAY31)
    assert mapping.get(ColumnRole.TOTAL_DAYS_WORKED) == COL_TOTAL_DAYS
    assert mapping.get(ColumnRole.NORMAL_WAGES) == 36
    assert mapping.get(ColumnRole.HRA_PAYABLE) == 37
    assert mapping.get(ColumnRole.GROSS_WAGES) == COL_GROSS
    assert mapping.get(ColumnRole.NET_WAGES) == COL_NET


def test_longest_pattern_wins_across_roles():
    # "gross wages" (gross) is longer than "wages" (normal wages)
    mapping, _ = infer(["Name", "Gross Wages", "Net Wages"])
    assert mapping.get(ColumnRole.GROSS_WAGES) == 1
    assert mapping.get(ColumnRole.NET_WAGES) == 2
    assert ColumnRole.NORMAL_WAGES not in mapping


def test_total_days_is_not_taken_by_gross_total_earnings():
    mapping, _ = infer(["Employee Name", "Total Days", "Total Earnings"])
    assert mapping.get(ColumnRole.NAME) == 0
    assert mapping.get(ColumnRole.TOTAL_DAYS_WORKED) == 1
    assert mapping.get(ColumnRole.GROSS_WAGES) == 2


def test_first_claim_wins_for_repeated_headers():
    mapping, _ = infer(["Name", "Name", "Net Pay"])
    assert mapping.get(ColumnRole.NAME) == 0
    assert mapping.claimed_columns() == {0, 2}


def test_thirty_day_month_block():
    headers = ["Name", *[str(d) for d in range(1, 31)], "Total Days"]
    mapping, _ = infer(headers)
    assert mapping.attendance_block == (1, 30)
    assert mapping.get(ColumnRole.TOTAL_DAYS_WORKED) == 31


def test_short_day_run_is_not_an_attendance_block():
    mapping, _ = infer(["Name", "1", "2", "3", "Net Wages"])
    assert mapping.attendance_block is None


def test_day_columns_are_never_pattern_matched():
    mapping, _ = infer(["Name", *[str(d) for d in range(1, 32)]])
    assert mapping.claimed_columns() == {0, 1, 31}


def test_confidence_is_share_of_key_roles():
    mapping, confidence = infer(["Worker Name", "Gross Pay"])
    assert confidence == 0.5
    assert mapping_confidence(ColumnMapping()) == 0.0


def test_best_pattern():
    assert best_pattern("  Name of the Employee ", ColumnRole.NAME) == "name of the employee"
    assert best_pattern("Remarks", ColumnRole.NAME) is None


def test_apply_overrides_sets_and_unmaps():
    mapping, _ = infer(FORM_II_HEADER)
    updated = apply_overrides(mapping, {ColumnRole.NAME: 2, ColumnRole.DESIGNATION: None})
    assert updated.get(ColumnRole.NAME) == 2
    assert ColumnRole.DESIGNATION not in updated
    assert mapping.get(ColumnRole.NAME) == 1


def test_apply_overrides_rejects_negative_index():
    with pytest.raises(SchemaError):
        apply_overrides(ColumnMapping(), {ColumnRole.NAME: -1})


def test_validate_requires_name():
    with pytest.raises(SchemaError, match="Name column required"):
        validate_mapping(ColumnMapping({ColumnRole.GROSS_WAGES: 1}), width=5)


def test_validate_rejects_index_beyond_sheet():
    m = ColumnMapping({ColumnRole.NAME: 1, ColumnRole.NET_WAGES: 9})
    with pytest.raises(SchemaError, match=r"Mapped column index 10 \(Net Wages\) exceeds available columns \(5\)"):
        validate_mapping(m, width=5)


def test_validate_rejects_inverted_or_half_block():
    base = ColumnMapping({ColumnRole.NAME: 0})
    with pytest.raises(SchemaError, match="mapped together"):
        validate_mapping(base.with_role(ColumnRole.ATTENDANCE_START, 2), width=10)
    inverted = base.with_role(ColumnRole.ATTENDANCE_START, 6).with_role(ColumnRole.ATTENDANCE_END, 3)
    with pytest.raises(SchemaError, match="after the end column"):
        validate_mapping(inverted, width=10)
