"""Request schemas for quote computations.

The HTTP API and the CLI both funnel raw values through these models before
anything reaches the engine, so malformed input is rejected with field-level
issues instead of surfacing as arithmetic errors.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, PositiveInt, ValidationError, model_validator

from .data_models import ComputeSettings, Inputs, Insurance
from .utils import decimal_from_value


class InsuranceSchema(BaseModel):
    mode: Literal["cash", "financed"]
    amount: float = Field(ge=0, allow_inf_nan=False)


class CommissionSchema(BaseModel):
    mode: Literal["cash", "financed"]


class SettingsSchema(BaseModel):
    annual_nominal_rate: float = Field(gt=0, allow_inf_nan=False)
    iva: float = Field(ge=0, le=1)
    opening_fee_rate: float = Field(ge=0, allow_inf_nan=False)
    gps_initial: float = Field(ge=0, allow_inf_nan=False)
    gps_monthly: float = Field(default=400, ge=0, allow_inf_nan=False)
    first_payment_rule: Literal["next_quincena"]
    day_count: Literal["A360", "ACT360"] = "A360"
    finance_insurance_mode: Literal["add_to_principal", "12m_subloan"] = "add_to_principal"
    first_period_interest: Literal["day_prorated", "flat_monthly"] = "day_prorated"

    def to_settings(self) -> ComputeSettings:
        return ComputeSettings(
            annual_nominal_rate=decimal_from_value(self.annual_nominal_rate),
            iva=decimal_from_value(self.iva),
            opening_fee_rate=decimal_from_value(self.opening_fee_rate),
            gps_initial=decimal_from_value(self.gps_initial),
            gps_monthly=decimal_from_value(self.gps_monthly),
            first_payment_rule=self.first_payment_rule,
            day_count=self.day_count,
            finance_insurance_mode=self.finance_insurance_mode,
            first_period_interest=self.first_period_interest,
        )


class QuoteRequest(BaseModel):
    """Body of ``POST /api/quotes/compute``."""

    vehicle_value: float = Field(gt=0, allow_inf_nan=False)
    down_payment_amount: float = Field(ge=0, allow_inf_nan=False)
    term_months: int = Field(ge=1)
    insurance: InsuranceSchema
    commission: CommissionSchema
    settings: SettingsSchema
    as_of: date

    @model_validator(mode="after")
    def _down_payment_within_value(self) -> "QuoteRequest":
        if self.down_payment_amount > self.vehicle_value:
            raise ValueError("down_payment_amount must not exceed vehicle_value")
        return self

    def to_inputs(self) -> Inputs:
        return Inputs(
            vehicle_value=decimal_from_value(self.vehicle_value),
            down_payment_amount=decimal_from_value(self.down_payment_amount),
            term_months=self.term_months,
            insurance=Insurance(
                mode=self.insurance.mode,
                amount=decimal_from_value(self.insurance.amount),
            ),
            as_of=self.as_of,
            commission_mode=self.commission.mode,
        )

    def to_engine_args(self) -> Tuple[Inputs, ComputeSettings]:
        return self.to_inputs(), self.settings.to_settings()


class PlanSettingsSchema(SettingsSchema):
    # Tiers supply the rate for plan matrices.
    annual_nominal_rate: float = Field(default=0.45, gt=0, allow_inf_nan=False)


class PlansRequest(QuoteRequest):
    """Body of ``POST /api/quotes/plans``; ``term_months`` is optional."""

    term_months: int = Field(default=48, ge=1)
    settings: PlanSettingsSchema
    terms: List[PositiveInt] = Field(default_factory=lambda: [24, 36, 48, 60], min_length=1)


class RateTierUpdate(BaseModel):
    tier_code: str = Field(min_length=1)
    annual_rate: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    tier_name: Optional[str] = None
    is_active: Optional[bool] = None


class RateUpdateRequest(BaseModel):
    """Body of ``POST /api/rates``."""

    rates: List[RateTierUpdate] = Field(min_length=1)


def parse_quote_request(payload: Dict[str, Any]) -> Tuple[Inputs, ComputeSettings]:
    """Validate a raw request body and convert it into engine arguments.

    Raises ``pydantic.ValidationError`` when the body is malformed.
    """
    return QuoteRequest.model_validate(payload).to_engine_args()


def validation_issues(exc: ValidationError) -> List[Dict[str, Any]]:
    """Flatten a validation error into JSON-safe field issues."""
    return [
        {"path": list(err["loc"]), "message": err["msg"], "type": err["type"]}
        for err in exc.errors(include_url=False)
    ]
