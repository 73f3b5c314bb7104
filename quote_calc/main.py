"""Command‑line interface for the quote calculator.

This module uses the ``click`` library to implement a multi‑command interface.
Users can compute a full amortization schedule for a vehicle quote, view only
the summary or price the vehicle across rate tiers and terms. Results can be
printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
from datetime import date
from pathlib import Path
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import click
from pydantic import ValidationError

from .data_models import ComputeResult, PeriodRow
from .engine import DEFAULT_RATE_TIERS, DEFAULT_TERMS, compute_plans, compute_quote
from .formatter import print_plans, print_schedule, print_summary
from .schemas import QuoteRequest, validation_issues
from .utils import decimal_from_value


def parse_amount(value: str) -> float:
    """Parse a numeric string with optional suffixes.

    Accepts plain floats ("405900") and shorthand with ``k``/``m`` suffixes
    (e.g., "405.9k" meaning 405_900). Returns a float.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = 1.0
    if value.endswith("k"):
        factor = 1_000.0
        value = value[:-1]
    elif value.endswith("m"):
        factor = 1_000_000.0
        value = value[:-1]
    try:
        return float(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_percent(value: str) -> float:
    """Parse a percentage string (e.g. "45", "45%" or "0.45") into a fraction."""
    value = value.strip()
    if value.endswith("%"):
        value = value[:-1]
    try:
        p = float(value)
    except ValueError:
        raise click.BadParameter(f"Invalid percentage: {value}")
    # If the user enters a number like 45, treat it as 45%
    if p > 1:
        p = p / 100
    return p


def parse_down_payment(value: Optional[str], vehicle_value: float) -> float:
    """Parse a down payment given as an amount or as a share of the vehicle value ("30%")."""
    if not value:
        return 0.0
    if value.strip().endswith("%"):
        return round(vehicle_value * parse_percent(value), 2)
    return parse_amount(value)


def build_request_from_options(
    vehicle_value: str,
    down_payment: Optional[str],
    term: int,
    insurance_amount: Optional[str],
    insurance_mode: str,
    rate: str,
    iva: str,
    opening_fee: str,
    gps_initial: Optional[str],
    gps_monthly: Optional[str],
    as_of: Optional[str],
    first_period_interest: str = "day_prorated",
) -> QuoteRequest:
    vehicle = parse_amount(vehicle_value)
    payload: Dict[str, Any] = {
        "vehicle_value": vehicle,
        "down_payment_amount": parse_down_payment(down_payment, vehicle),
        "term_months": term,
        "insurance": {
            "mode": insurance_mode.lower(),
            "amount": parse_amount(insurance_amount) if insurance_amount else 0.0,
        },
        "commission": {"mode": "cash"},
        "settings": {
            "annual_nominal_rate": parse_percent(rate),
            "iva": parse_percent(iva),
            "opening_fee_rate": parse_percent(opening_fee),
            "gps_initial": parse_amount(gps_initial) if gps_initial else 0.0,
            "gps_monthly": parse_amount(gps_monthly) if gps_monthly else 400.0,
            "first_payment_rule": "next_quincena",
            "first_period_interest": first_period_interest,
        },
        "as_of": as_of or date.today().isoformat(),
    }
    try:
        return QuoteRequest.model_validate(payload)
    except ValidationError as exc:
        issues = "; ".join(
            f"{'.'.join(str(p) for p in issue['path']) or 'request'}: {issue['message']}"
            for issue in validation_issues(exc)
        )
        raise click.BadParameter(issues)


def export_to_json(path: Path, result: ComputeResult) -> None:
    """Export summary, schedule and echoed inputs to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2)


def export_to_csv(path: Path, schedule: List[PeriodRow]) -> None:
    """Export schedule to a CSV file."""
    header = [
        "Period",
        "Date",
        "Opening_Balance",
        "Interest",
        "Interest_IVA",
        "Principal",
        "Payment",
        "GPS_Rent",
        "GPS_Rent_IVA",
        "Total_Payment",
        "Closing_Balance",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in schedule:
            writer.writerow(
                [
                    row.period,
                    row.date.isoformat(),
                    f"{row.opening_balance:.2f}",
                    f"{row.interest:.2f}",
                    f"{row.interest_iva:.2f}",
                    f"{row.principal:.2f}",
                    f"{row.payment:.2f}",
                    f"{row.gps_rent:.2f}",
                    f"{row.gps_rent_iva:.2f}",
                    f"{row.total_payment:.2f}",
                    f"{row.closing_balance:.2f}",
                ]
            )


def quote_options(command: Callable) -> Callable:
    """Attach the options shared by every quote command."""
    options = [
        click.option("--vehicle-value", "-v", "vehicle_value", required=True, help="Vehicle price"),
        click.option("--down-payment", "-d", "down_payment", help="Down payment amount or share (e.g. 30%)"),
        click.option("--insurance-amount", "insurance_amount", help="Insurance premium"),
        click.option(
            "--insurance-mode",
            "insurance_mode",
            type=click.Choice(["cash", "financed"]),
            default="cash",
            help="Pay insurance upfront or add it to the financed principal",
        ),
        click.option("--iva", "iva", default="16", help="IVA rate (percent)"),
        click.option("--opening-fee", "opening_fee", default="3", help="Opening fee rate (percent)"),
        click.option("--gps-initial", "gps_initial", help="One-time GPS installation charge (pre-tax)"),
        click.option("--gps-monthly", "gps_monthly", help="Monthly GPS rent (pre-tax), default 400"),
        click.option("--as-of", "-s", "as_of", help="Quote date (YYYY-MM-DD), default today"),
    ]
    for option in reversed(options):
        command = option(command)
    return command


@click.group()
def cli() -> None:
    """A command‑line auto credit quote calculator."""
    pass


@cli.command()
@quote_options
@click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")
@click.option("--rate", "-r", "rate", required=True, help="Annual nominal rate (percent)")
@click.option(
    "--first-period-interest",
    "first_period_interest",
    type=click.Choice(["day_prorated", "flat_monthly"]),
    default="day_prorated",
    help="Interest on the first (stub) period: prorated by days or a full month",
)
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    vehicle_value: str,
    down_payment: Optional[str],
    insurance_amount: Optional[str],
    insurance_mode: str,
    iva: str,
    opening_fee: str,
    gps_initial: Optional[str],
    gps_monthly: Optional[str],
    as_of: Optional[str],
    term: int,
    rate: str,
    first_period_interest: str,
    output: Optional[str],
) -> None:
    """Compute and print the full amortization schedule."""
    request = build_request_from_options(
        vehicle_value,
        down_payment,
        term,
        insurance_amount,
        insurance_mode,
        rate,
        iva,
        opening_fee,
        gps_initial,
        gps_monthly,
        as_of,
        first_period_interest,
    )
    result = compute_quote(*request.to_engine_args())
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result)
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, result.schedule)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
    else:
        print_summary(result.summary)
        print_schedule(result.schedule)


@cli.command()
@quote_options
@click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")
@click.option("--rate", "-r", "rate", required=True, help="Annual nominal rate (percent)")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(
    vehicle_value: str,
    down_payment: Optional[str],
    insurance_amount: Optional[str],
    insurance_mode: str,
    iva: str,
    opening_fee: str,
    gps_initial: Optional[str],
    gps_monthly: Optional[str],
    as_of: Optional[str],
    term: int,
    rate: str,
    output: Optional[str],
) -> None:
    """Compute and print only the summary figures of a quote."""
    request = build_request_from_options(
        vehicle_value,
        down_payment,
        term,
        insurance_amount,
        insurance_mode,
        rate,
        iva,
        opening_fee,
        gps_initial,
        gps_monthly,
        as_of,
    )
    result = compute_quote(*request.to_engine_args())
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": result.summary.to_dict()}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(result.summary)


def parse_tier_strings(values: Tuple[str, ...]) -> Dict[str, Decimal]:
    tiers: Dict[str, Decimal] = {}
    for item in values:
        parts = item.split(":")
        if len(parts) != 2 or not parts[0].strip():
            raise click.BadParameter(f"Tier must be in CODE:RATE format; got {item}")
        code, rate_str = parts
        rate = decimal_from_value(parse_percent(rate_str))
        if rate <= 0:
            raise click.BadParameter(f"Tier rate must be positive; got {rate_str}")
        tiers[code.strip().upper()] = rate
    return tiers


@cli.command()
@quote_options
@click.option("--tier", "tier", multiple=True, help="Rate tier in CODE:RATE format, e.g. A:36")
@click.option("--term", "-t", "terms", multiple=True, type=int, help="Term in months (repeatable)")
def plans(
    vehicle_value: str,
    down_payment: Optional[str],
    insurance_amount: Optional[str],
    insurance_mode: str,
    iva: str,
    opening_fee: str,
    gps_initial: Optional[str],
    gps_monthly: Optional[str],
    as_of: Optional[str],
    tier: Tuple[str, ...],
    terms: Tuple[int, ...],
) -> None:
    """Compare the monthly total across rate tiers and terms."""
    tier_rates = parse_tier_strings(tier) if tier else dict(DEFAULT_RATE_TIERS)
    term_list = list(terms) if terms else list(DEFAULT_TERMS)
    if any(t < 1 for t in term_list):
        raise click.BadParameter("Terms must be positive")
    # The request is validated once; each tier then swaps in its own rate.
    request = build_request_from_options(
        vehicle_value,
        down_payment,
        term_list[0],
        insurance_amount,
        insurance_mode,
        str(next(iter(tier_rates.values()))),
        iva,
        opening_fee,
        gps_initial,
        gps_monthly,
        as_of,
    )
    inputs, settings = request.to_engine_args()
    print_plans(compute_plans(inputs, settings, tier_rates, term_list))


if __name__ == "__main__":
    cli()
