#!/usr/bin/env python3
"""Generate a synthetic Form II muster roll / wage register workbook.

Layout written (like real establishment exports):
- title block: form name, establishment, month
- header row: Emp Code, Name, Designation, Date of Joining, day columns
  1..N, Total Days, Normal Wages, HRA Payable, Gross Wages, Advances, Fines,
  Damages, Net Wages
- one row per employee
- footer: Total row and employer signature

Useful for demos (``--dry-run`` imports) and for trying mapping profiles.
"""
from __future__ import annotations

import argparse
import calendar
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

FIRST_NAMES = ["Asha", "Ravi", "Meena", "Suresh", "Kavita", "Imran", "Pooja", "Arjun", "Lakshmi", "Vikram"]
LAST_NAMES = ["Rao", "Patil", "Shaikh", "Iyer", "Deshmukh", "Kulkarni", "Nair", "Gupta"]
DESIGNATIONS = ["Helper", "Machine Operator", "Supervisor", "Fitter", "Packer", "Electrician"]

# weights for P (present), A (absent), W (weekly off worked), L (leave)
MARKS = ["P", "A", "W", "L"]
MARK_WEIGHTS = [0.84, 0.06, 0.05, 0.05]


def _days_in_month(month: str) -> int:
    year, mon = (int(p) for p in month.split("-"))
    return calendar.monthrange(year, mon)[1]


def generate_register_rows(employees: int, month: str, seed: int = 42) -> list[list[Any]]:
    """Build the full sheet (title, header, data and footer rows) as lists."""
    rng = np.random.default_rng(seed)
    days = _days_in_month(month)

    header: list[Any] = ["Emp Code", "Name", "Designation", "Date of Joining"]
    header += [str(d) for d in range(1, days + 1)]
    header += [
        "Total Days",
        "Normal Wages",
        "HRA Payable",
        "Gross Wages",
        "Advances",
        "Fines",
        "Damages",
        "Net Wages",
    ]
    width = len(header)

    rows: list[list[Any]] = [
        ["FORM II"] + [""] * (width - 1),
        ["Muster Roll cum Register of Wages"] + [""] * (width - 1),
        ["Name of Establishment: Sample Industries Pvt Ltd"] + [""] * (width - 1),
        [f"For the month of {month}"] + [""] * (width - 1),
        header,
    ]

    for i in range(employees):
        name = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)} {i + 1}"
        marks = rng.choice(MARKS, size=days, p=MARK_WEIGHTS).tolist()
        worked = sum(1 for m in marks if m in ("P", "W"))
        basic = int(rng.integers(9000, 20000) // 100 * 100)
        hra = int(basic * 0.2)
        gross = basic + hra + int(rng.integers(0, 3000))
        advance = int(rng.choice([0, 0, 0, 500, 1000]))
        net = gross - advance - int(gross * 0.12)
        joined = pd.Timestamp("2015-01-01") + pd.Timedelta(days=int(rng.integers(0, 3500)))
        rows.append(
            [f"E{i + 1:04d}", name, rng.choice(DESIGNATIONS), joined.strftime("%d.%m.%Y")]
            + marks
            + [worked, basic, hra, gross, advance, 0, 0, net]
        )

    rows.append(["", "Total"] + [""] * (width - 2))
    rows.append(["", "Signature of Employer"] + [""] * (width - 2))
    return rows


def create_register(output_path: Path, employees: int, month: str, seed: int = 42) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame = pd.DataFrame(generate_register_rows(employees, month, seed))
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name="Form II", header=False, index=False)
    return output_path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic Form II wage register",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s samples/form_ii.xlsx --employees 40 --month 2025-03
  python -m muster_import.cli samples/form_ii.xlsx --month 2025-03 --dry-run --yes
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--employees", type=int, default=25, help="Number of employee rows (default: 25)")
    parser.add_argument("--month", default="2025-03", help="Register month YYYY-MM (default: 2025-03)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args(argv)

    if args.employees <= 0:
        print("Error: --employees must be positive", file=sys.stderr)
        return 1
    try:
        _days_in_month(args.month)
    except (ValueError, calendar.IllegalMonthError):
        print("Error: --month must be YYYY-MM", file=sys.stderr)
        return 1

    path = create_register(args.output, args.employees, args.month, args.seed)
    print(f"Created register: {path} ({args.employees} employees, {args.month})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
