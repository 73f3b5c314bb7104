"""Data models for the quote calculator.

This module defines dataclasses representing the entities used by the quote
engine: the commercial inputs of a loan, the policy settings that price it and
the resulting summary and amortization rows. Monetary values are ``Decimal``
so the engine can round at the point of computation; ``to_dict`` methods turn
them into JSON-friendly floats and ISO date strings.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

INSURANCE_CASH = "cash"
INSURANCE_FINANCED = "financed"

ADD_TO_PRINCIPAL = "add_to_principal"
SUBLOAN_12M = "12m_subloan"

DAY_PRORATED = "day_prorated"
FLAT_MONTHLY = "flat_monthly"


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class Insurance:
    """Vehicle insurance premium and how it is paid.

    Attributes
    ----------
    mode: str
        ``"cash"`` means the premium is paid upfront as part of the initial
        outlay. ``"financed"`` means it is rolled into the financed principal.
    amount: Decimal
        The premium amount.
    """

    mode: str
    amount: Decimal


@dataclass(frozen=True)
class Inputs:
    """Commercial inputs of a single quote."""

    vehicle_value: Decimal
    down_payment_amount: Decimal
    term_months: int
    insurance: Insurance
    as_of: date  # quote date, anchors the first payment
    commission_mode: Optional[str] = None  # echoed only

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "vehicle_value": float(self.vehicle_value),
            "down_payment_amount": float(self.down_payment_amount),
            "term_months": self.term_months,
            "insurance": {"mode": self.insurance.mode, "amount": float(self.insurance.amount)},
            "as_of": self.as_of.isoformat(),
        }
        if self.commission_mode is not None:
            data["commission"] = {"mode": self.commission_mode}
        return data


@dataclass(frozen=True)
class ComputeSettings:
    """Pricing policy for a quote.

    Rates are fractions (``Decimal("0.45")`` for 45 %). ``day_count`` accepts
    ``"A360"`` and ``"ACT360"``; both prorate actual days over a 360-day year.
    ``first_period_interest`` selects how the stub period accrues interest.
    """

    annual_nominal_rate: Decimal
    iva: Decimal
    opening_fee_rate: Decimal
    gps_initial: Decimal = Decimal("0")
    gps_monthly: Decimal = Decimal("400")
    first_payment_rule: str = "next_quincena"
    day_count: str = "A360"
    finance_insurance_mode: str = ADD_TO_PRINCIPAL
    first_period_interest: str = DAY_PRORATED

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass
class PeriodRow:
    """One period of the amortization schedule.

    ``payment`` is the fixed annuity installment (principal plus pre-tax
    interest). ``total_payment`` layers the interest tax and the GPS rent with
    its tax on top of it.
    """

    period: int
    date: date
    opening_balance: Decimal
    interest: Decimal
    interest_iva: Decimal
    principal: Decimal
    payment: Decimal
    gps_rent: Decimal
    gps_rent_iva: Decimal
    total_payment: Decimal
    closing_balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass
class Summary:
    pmt_base: Decimal
    pmt_total_month2: Decimal
    first_payment_date: date
    last_payment_date: date
    principal_financed: Decimal  # vehicle only
    principal_total: Decimal  # including financed insurance
    opening_fee: Decimal
    opening_fee_iva: Decimal
    gps: Decimal
    gps_iva: Decimal
    initial_outlay: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass
class ComputeResult:
    summary: Summary
    schedule: List[PeriodRow]
    inputs: Inputs
    settings: ComputeSettings

    def to_dict(self) -> Dict[str, Any]:
        inputs = self.inputs.to_dict()
        inputs["settings"] = self.settings.to_dict()
        return {
            "summary": self.summary.to_dict(),
            "schedule": [row.to_dict() for row in self.schedule],
            "inputs": inputs,
        }
