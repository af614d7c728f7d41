from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

"""Statutory calculation engine (EPF / ESIC / PT / TDS / LWF / wage definition).

Pure functions, no I/O. Amounts are computed in Decimal and rounded half-up
to whole rupees, matching how the registers themselves are paid out.

Rates:
- EPF: 12% employee on wages capped at 15,000; employer 12% split into
  EPS 8.33% and EPF (12% - EPS)
- ESIC: 0.75% employee / 3.25% employer while gross <= 21,000
- PT (Maharashtra): women pay from 25,000; others 175 from 10,000 and 200
  from 15,000; 300 in February
- TDS: new regime FY 2025-26, standard deduction 75,000, 87A rebate up to
  12 lakh taxable, 4% health & education cess
- LWF: 25 employee / 75 employer, collected in June and December
"""

__all__ = [
    "EPF_WAGE_CEILING",
    "ESIC_GROSS_CEILING",
    "WageDefinition",
    "EPFContribution",
    "ESICContribution",
    "TDSResult",
    "LWFContribution",
    "TaxSlab",
    "NEW_REGIME_SLABS",
    "round_rupees",
    "prorate",
    "wage_definition",
    "epf",
    "esic",
    "professional_tax",
    "tds",
    "lwf",
]

EPF_WAGE_CEILING = Decimal("15000")
EPF_RATE = Decimal("0.12")
EPS_RATE = Decimal("0.0833")

ESIC_GROSS_CEILING = Decimal("21000")
ESIC_EMPLOYEE_RATE = Decimal("0.0075")
ESIC_EMPLOYER_RATE = Decimal("0.0325")

TDS_STANDARD_DEDUCTION = Decimal("75000")
TDS_REBATE_LIMIT = Decimal("1200000")  # section 87A, taxable income
TDS_CESS_RATE = Decimal("0.04")

LWF_EMPLOYEE = 25
LWF_EMPLOYER = 75
LWF_MONTHS = frozenset({6, 12})

# labour codes: exclusions above this share of remuneration count as wages
WAGE_EXCLUSION_LIMIT = Decimal("0.5")

_FEMALE = frozenset({"female", "f"})


@dataclass(frozen=True)
class WageDefinition:
    wages: int
    compliant: bool  # False when exclusions exceeded 50% and were added back


@dataclass(frozen=True)
class EPFContribution:
    employee_share: int
    employer_epf: int
    employer_eps: int


@dataclass(frozen=True)
class ESICContribution:
    employee_share: int
    employer_share: int
    applicable: bool


@dataclass(frozen=True)
class TDSResult:
    monthly_tds: int
    annual_tax: int
    taxable_income: int = 0


@dataclass(frozen=True)
class LWFContribution:
    employee_share: int
    employer_share: int


@dataclass(frozen=True)
class TaxSlab:
    upper: Decimal | None  # None = no upper bound
    rate: Decimal


# New tax regime, FY 2025-26 (annual taxable income)
NEW_REGIME_SLABS: tuple[TaxSlab, ...] = (
    TaxSlab(Decimal("400000"), Decimal("0")),
    TaxSlab(Decimal("800000"), Decimal("0.05")),
    TaxSlab(Decimal("1200000"), Decimal("0.10")),
    TaxSlab(Decimal("1600000"), Decimal("0.15")),
    TaxSlab(Decimal("2000000"), Decimal("0.20")),
    TaxSlab(Decimal("2400000"), Decimal("0.25")),
    TaxSlab(None, Decimal("0.30")),
)


def _dec(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_rupees(amount: float | int | Decimal) -> int:
    """Round half-up to a whole rupee (12.5 -> 13)."""
    return _round(_dec(amount))


def prorate(amount: float | int, days: float | int, working_days: int) -> int:
    """``amount * days / working_days`` rounded to whole rupees."""
    if working_days <= 0:
        raise ValueError(f"working_days must be positive (got {working_days})")
    return _round(_dec(amount) * _dec(days) / Decimal(working_days))


def _month_number(month: str | int) -> int:
    if isinstance(month, int):
        return month
    # "YYYY-MM" or a bare month number
    return int(str(month).rsplit("-", 1)[-1])


def wage_definition(
    basic: float | int,
    da: float | int = 0,
    retaining: float | int = 0,
    exclusions: float | int = 0,
) -> WageDefinition:
    """Code on Wages definition of "wages" (the 50% rule).

    wages = basic + DA + retaining allowance. When the excluded components
    (HRA, other allowances ...) exceed half of total remuneration, the excess
    is added back to wages and the structure is flagged non-compliant.
    """
    wages = _dec(basic) + _dec(da) + _dec(retaining)
    excluded = _dec(exclusions)
    total = wages + excluded
    limit = total * WAGE_EXCLUSION_LIMIT
    if excluded > limit:
        return WageDefinition(wages=_round(wages + (excluded - limit)), compliant=False)
    return WageDefinition(wages=_round(wages), compliant=True)


def epf(wage_base: float | int) -> EPFContribution:
    if wage_base <= 0:
        return EPFContribution(0, 0, 0)
    capped = min(_dec(wage_base), EPF_WAGE_CEILING)
    employee = _round(capped * EPF_RATE)
    eps = _round(capped * EPS_RATE)
    return EPFContribution(employee_share=employee, employer_epf=employee - eps, employer_eps=eps)


def esic(gross: float | int, ceiling: float | int | Decimal = ESIC_GROSS_CEILING) -> ESICContribution:
    amount = _dec(gross)
    if amount > _dec(ceiling):
        return ESICContribution(0, 0, applicable=False)
    return ESICContribution(
        employee_share=_round(amount * ESIC_EMPLOYEE_RATE),
        employer_share=_round(amount * ESIC_EMPLOYER_RATE),
        applicable=True,
    )


def professional_tax(gross: float | int, month: str | int, gender: str | None = None) -> int:
    """Monthly PT for the given gross; February carries the 300 instalment."""
    february = _month_number(month) == 2
    if gender is not None and gender.strip().lower() in _FEMALE:
        if gross >= 25000:
            return 300 if february else 200
        return 0
    if gross >= 15000:
        return 300 if february else 200
    if gross >= 10000:
        return 175
    return 0


def tds(annual_gross: float | int) -> TDSResult:
    taxable = max(Decimal("0"), _dec(annual_gross) - TDS_STANDARD_DEDUCTION)

    tax = Decimal("0")
    lower = Decimal("0")
    for slab in NEW_REGIME_SLABS:
        if taxable <= lower:
            break
        top = taxable if slab.upper is None else min(taxable, slab.upper)
        tax += (top - lower) * slab.rate
        if slab.upper is None:
            break
        lower = slab.upper

    if taxable <= TDS_REBATE_LIMIT:
        tax = Decimal("0")

    annual_tax = _round(tax + _dec(_round(tax * TDS_CESS_RATE)))
    return TDSResult(
        monthly_tds=_round(Decimal(annual_tax) / 12),
        annual_tax=annual_tax,
        taxable_income=_round(taxable),
    )


def lwf(month: str | int, applicable: bool = True) -> LWFContribution:
    if not applicable or _month_number(month) not in LWF_MONTHS:
        return LWFContribution(0, 0)
    return LWFContribution(employee_share=LWF_EMPLOYEE, employer_share=LWF_EMPLOYER)
