"""Output helpers for the quote calculator.

This module provides simple functions to render quote summaries, amortization
schedules and plan matrices in a tabular text format. Values are printed
exactly as the engine produced them; nothing is recomputed here.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping

from .data_models import ComputeResult, PeriodRow, Summary


def print_summary(summary: Summary) -> None:
    """Print a quote summary in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Vehicle principal  : {summary.principal_financed:.2f}")
    print(f"Total financed     : {summary.principal_total:.2f}")
    print(f"Opening fee        : {summary.opening_fee:.2f} (+IVA {summary.opening_fee_iva:.2f})")
    if summary.gps:
        print(f"GPS installation   : {summary.gps:.2f} (+IVA {summary.gps_iva:.2f})")
    print(f"Initial outlay     : {summary.initial_outlay:.2f}")
    print(f"Base payment (PMT) : {summary.pmt_base:.2f}")
    # Period 1 is an irregular stub; month 2 is the representative total.
    print(f"Monthly total      : {summary.pmt_total_month2:.2f}")
    print(f"First payment date : {summary.first_payment_date.isoformat()}")
    print(f"Last payment date  : {summary.last_payment_date.isoformat()}")
    print("-" * 72)


def print_schedule(schedule: Iterable[PeriodRow], show_gps: bool = False) -> None:
    """Print the amortization schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[PeriodRow]
        The schedule rows to print.
    show_gps: bool
        Whether to include the GPS rent columns. They are constant for every
        period, so by default they are folded into ``Total`` only.
    """
    headers = [
        "Period",
        "Date",
        "StartBal",
        "Interest",
        "IVA",
        "Principal",
        "PMT",
    ]
    if show_gps:
        headers.extend(["GPS", "GPS_IVA"])
    headers.extend(["Total", "EndBal"])
    print("\t".join(headers))
    for row in schedule:
        cells = [
            str(row.period),
            row.date.isoformat(),
            f"{row.opening_balance:.2f}",
            f"{row.interest:.2f}",
            f"{row.interest_iva:.2f}",
            f"{row.principal:.2f}",
            f"{row.payment:.2f}",
        ]
        if show_gps:
            cells.extend([f"{row.gps_rent:.2f}", f"{row.gps_rent_iva:.2f}"])
        cells.extend([f"{row.total_payment:.2f}", f"{row.closing_balance:.2f}"])
        print("\t".join(cells))


def print_plans(plans: Mapping[str, Mapping[int, ComputeResult]]) -> None:
    """Print the monthly total of every tier/term combination side by side."""
    terms = sorted({term for by_term in plans.values() for term in by_term})
    print("Plans (monthly total, month 2)")
    print("=" * 72)
    print(f"{'Tier':8s}" + "".join(f"{str(term) + 'm':>15s}" for term in terms))
    for code, by_term in plans.items():
        cells: Dict[int, str] = {
            term: f"{result.summary.pmt_total_month2:15.2f}" for term, result in by_term.items()
        }
        print(f"{code:8s}" + "".join(cells.get(term, f"{'-':>15s}") for term in terms))
    print("=" * 72)
