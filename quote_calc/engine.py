"""Core calculation engine for the quote calculator.

This module turns the commercial inputs of an auto loan into a summary of
one-time and recurring charges plus a period-by-period amortization schedule.
The first period is a stub that runs from the quote date to the next quincena
cutoff and accrues interest by actual days over a 360-day year; every later
period accrues the monthly nominal rate. All money is rounded to cents at the
point it is computed, so later figures build on already rounded values.

The engine is a pure function of its inputs and settings: no I/O, no shared
state, and no validation beyond what the arithmetic itself needs.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping

from .data_models import (
    ComputeResult,
    ComputeSettings,
    FLAT_MONTHLY,
    INSURANCE_CASH,
    INSURANCE_FINANCED,
    Inputs,
    PeriodRow,
    SUBLOAN_12M,
    Summary,
)
from .utils import CENT, accrual_days, add_months, next_quincena, round2

logger = logging.getLogger(__name__)

YEAR_BASIS_DAYS = Decimal(360)
DEFAULT_TERMS = (24, 36, 48, 60)
DEFAULT_RATE_TIERS: Dict[str, Decimal] = {
    "A": Decimal("0.36"),
    "B": Decimal("0.40"),
    "C": Decimal("0.45"),
}


def pmt_fixed(principal: Decimal, rate_per_period: Decimal, periods: int) -> Decimal:
    """Return the fixed payment that amortizes ``principal`` over ``periods``.

    The formula is the ordinary annuity:

        payment = P * i / (1 - (1 + i)^-n)

    where ``P`` is the principal, ``i`` the periodic rate and ``n`` the number
    of payments. When the rate is zero the payment is simply ``P / n``. The
    result is not rounded; callers decide where rounding happens.
    """
    if periods <= 0:
        raise ValueError("Number of periods must be positive")
    if rate_per_period == 0:
        return principal / Decimal(periods)
    return principal * rate_per_period / (1 - (1 + rate_per_period) ** -periods)


def _stub_interest(principal: Decimal, inputs: Inputs, settings: ComputeSettings, first_date) -> Decimal:
    if settings.first_period_interest == FLAT_MONTHLY:
        return round2(principal * settings.annual_nominal_rate / 12)
    days = accrual_days(inputs.as_of, first_date)
    return round2(principal * (settings.annual_nominal_rate / YEAR_BASIS_DAYS) * days)


def compute_quote(inputs: Inputs, settings: ComputeSettings) -> ComputeResult:
    """Compute the summary and amortization schedule of a quote.

    Parameters
    ----------
    inputs: Inputs
        Vehicle value, down payment, term, insurance treatment and quote date.
        The caller is expected to have validated them.
    settings: ComputeSettings
        Rates, tax and fee policy.

    Returns
    -------
    ComputeResult
        ``summary`` with the one-time and recurring figures, ``schedule`` with
        exactly ``term_months`` rows, and the echoed inputs and settings.
    """
    iva = settings.iva
    rate = settings.annual_nominal_rate
    term = inputs.term_months

    if settings.finance_insurance_mode == SUBLOAN_12M and inputs.insurance.mode == INSURANCE_FINANCED:
        logger.warning("12m_subloan insurance financing is not computed; adding insurance to principal")

    # Principal assembly
    financed_vehicle = inputs.vehicle_value - inputs.down_payment_amount
    financed_insurance = inputs.insurance.amount if inputs.insurance.mode == INSURANCE_FINANCED else Decimal("0")
    cash_insurance = inputs.insurance.amount if inputs.insurance.mode == INSURANCE_CASH else Decimal("0")
    financed_total = financed_vehicle + financed_insurance

    # One-time charges
    opening_fee = round2(settings.opening_fee_rate * financed_total)
    opening_fee_with_iva = round2(opening_fee * (1 + iva))
    gps_install_with_iva = round2(settings.gps_initial * (1 + iva))
    initial_outlay = round2(
        inputs.down_payment_amount + opening_fee_with_iva + gps_install_with_iva + cash_insurance
    )

    rate_per_month = rate / 12
    payment = round2(pmt_fixed(financed_total, rate_per_month, term))

    gps_rent = settings.gps_monthly
    gps_rent_iva = round2(settings.gps_monthly * iva)

    def total_due(interest_iva: Decimal) -> Decimal:
        return round2(payment + interest_iva + gps_rent + gps_rent_iva)

    # Stub period: quote date to the next quincena
    first_date = next_quincena(inputs.as_of)
    interest = _stub_interest(financed_total, inputs, settings, first_date)
    interest_iva = round2(interest * iva)
    principal = round2(payment - interest)
    schedule: List[PeriodRow] = [
        PeriodRow(
            period=1,
            date=first_date,
            opening_balance=round2(financed_total),
            interest=interest,
            interest_iva=interest_iva,
            principal=principal,
            payment=payment,
            gps_rent=gps_rent,
            gps_rent_iva=gps_rent_iva,
            total_payment=total_due(interest_iva),
            closing_balance=round2(financed_total - principal),
        )
    ]

    for period in range(2, term + 1):
        previous = schedule[-1]
        opening = previous.closing_balance
        interest = round2(opening * rate_per_month)
        interest_iva = round2(interest * iva)
        principal = round2(payment - interest)
        schedule.append(
            PeriodRow(
                period=period,
                date=add_months(previous.date, 1),
                opening_balance=opening,
                interest=interest,
                interest_iva=interest_iva,
                principal=principal,
                payment=payment,
                gps_rent=gps_rent,
                gps_rent_iva=gps_rent_iva,
                total_payment=total_due(interest_iva),
                closing_balance=round2(opening - principal),
            )
        )

    # Fold the accumulated rounding residual into the last principal portion
    last = schedule[-1]
    residual = round2(last.closing_balance)
    if abs(residual) >= CENT:
        last.principal = round2(last.principal + residual)
        last.closing_balance = round2(last.opening_balance - last.principal)

    headline = schedule[1] if len(schedule) > 1 else schedule[0]
    summary = Summary(
        pmt_base=payment,
        pmt_total_month2=headline.total_payment,
        first_payment_date=schedule[0].date,
        last_payment_date=last.date,
        principal_financed=round2(financed_vehicle),
        principal_total=round2(financed_total),
        opening_fee=opening_fee,
        opening_fee_iva=round2(opening_fee * iva),
        gps=settings.gps_initial,
        gps_iva=round2(settings.gps_initial * iva),
        initial_outlay=initial_outlay,
    )
    return ComputeResult(summary=summary, schedule=schedule, inputs=inputs, settings=settings)


def compute_plans(
    inputs: Inputs,
    settings: ComputeSettings,
    tiers: Mapping[str, Decimal] = DEFAULT_RATE_TIERS,
    terms: Iterable[int] = DEFAULT_TERMS,
) -> Dict[str, Dict[int, ComputeResult]]:
    """Price the same vehicle across rate tiers and terms.

    Returns a nested mapping ``{tier_code: {term_months: ComputeResult}}``.
    The tier's annual rate replaces ``settings.annual_nominal_rate`` and the
    term replaces ``inputs.term_months``; everything else is shared.
    """
    terms = list(terms)
    plans: Dict[str, Dict[int, ComputeResult]] = {}
    for code, annual_rate in tiers.items():
        tier_settings = replace(settings, annual_nominal_rate=annual_rate)
        plans[code] = {
            term: compute_quote(replace(inputs, term_months=term), tier_settings) for term in terms
        }
    return plans
