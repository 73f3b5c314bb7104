import os
from datetime import date
from decimal import Decimal

import pytest

# The web app opens its store at import time; keep it off the working tree.
os.environ.setdefault("QUOTE_DATABASE_URL", "sqlite://")

from quote_calc.data_models import ComputeSettings, Inputs, Insurance


@pytest.fixture
def settings():
    return ComputeSettings(
        annual_nominal_rate=Decimal("0.45"),
        iva=Decimal("0.16"),
        opening_fee_rate=Decimal("0.03"),
        gps_initial=Decimal("0"),
        gps_monthly=Decimal("400"),
    )


@pytest.fixture
def reference_inputs():
    """405,900 vehicle, 30 % down, 48 months, insurance paid in cash."""
    return Inputs(
        vehicle_value=Decimal("405900"),
        down_payment_amount=Decimal("121770"),
        term_months=48,
        insurance=Insurance(mode="cash", amount=Decimal("19000")),
        as_of=date(2025, 8, 11),
    )


@pytest.fixture
def reference_body():
    return {
        "vehicle_value": 405900,
        "down_payment_amount": 121770,
        "term_months": 48,
        "insurance": {"mode": "cash", "amount": 19000},
        "commission": {"mode": "cash"},
        "settings": {
            "annual_nominal_rate": 0.45,
            "iva": 0.16,
            "opening_fee_rate": 0.03,
            "gps_initial": 0,
            "gps_monthly": 400,
            "first_payment_rule": "next_quincena",
            "day_count": "A360",
            "finance_insurance_mode": "add_to_principal",
        },
        "as_of": "2025-08-11",
    }
