import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from quote_calc.data_models import FLAT_MONTHLY, SUBLOAN_12M, Insurance
from quote_calc.engine import DEFAULT_RATE_TIERS, compute_plans, compute_quote, pmt_fixed

CLOSE = 0.005


class TestPmtFixed:
    def test_reference_payment(self):
        pmt = pmt_fixed(Decimal("284130"), Decimal("0.45") / 12, 48)
        assert float(pmt) == pytest.approx(12850.09, abs=CLOSE)

    def test_zero_rate_is_straight_line(self):
        assert pmt_fixed(Decimal("1200"), Decimal("0"), 12) == Decimal("100")
        assert pmt_fixed(Decimal("1000"), Decimal("0"), 3) == Decimal("1000") / 3

    def test_single_period_repays_principal_plus_interest(self):
        assert pmt_fixed(Decimal("1000"), Decimal("0.01"), 1) == Decimal("1010")

    def test_higher_rate_means_higher_payment(self):
        low = pmt_fixed(Decimal("100000"), Decimal("0.01"), 36)
        high = pmt_fixed(Decimal("100000"), Decimal("0.02"), 36)
        assert high > low

    def test_rejects_non_positive_periods(self):
        with pytest.raises(ValueError):
            pmt_fixed(Decimal("1000"), Decimal("0.01"), 0)


class TestReferenceScenario:
    def test_summary(self, reference_inputs, settings):
        summary = compute_quote(reference_inputs, settings).summary
        assert summary.principal_financed == Decimal("284130")
        assert summary.principal_total == Decimal("284130")
        assert summary.opening_fee == Decimal("8523.90")
        assert summary.opening_fee_iva == Decimal("1363.82")
        assert float(summary.pmt_base) == pytest.approx(12850.09, abs=CLOSE)
        assert summary.first_payment_date == date(2025, 8, 15)
        assert summary.last_payment_date == date(2029, 7, 15)
        assert summary.gps == Decimal("0")
        assert summary.gps_iva == Decimal("0")

    def test_initial_outlay_includes_cash_insurance_and_fee_with_tax(self, reference_inputs, settings):
        summary = compute_quote(reference_inputs, settings).summary
        # 121,770 down + 9,887.72 fee with IVA + 19,000 insurance
        assert summary.initial_outlay == Decimal("150657.72")

    def test_first_period_is_prorated_by_days(self, reference_inputs, settings):
        first = compute_quote(reference_inputs, settings).schedule[0]
        assert first.period == 1
        assert first.date == date(2025, 8, 15)
        assert first.opening_balance == Decimal("284130")
        # 284,130 * 0.45 / 360 * 5 days = 1,775.8125
        assert first.interest == Decimal("1775.81")
        assert first.interest_iva == Decimal("284.13")
        assert first.principal == first.payment - first.interest
        assert float(first.principal) == pytest.approx(11074.28, abs=CLOSE)
        assert first.gps_rent == Decimal("400")
        assert first.gps_rent_iva == Decimal("64")
        assert float(first.total_payment) == pytest.approx(13598.22, abs=CLOSE)
        assert float(first.closing_balance) == pytest.approx(273055.72, abs=CLOSE)

    @pytest.mark.parametrize("as_of", [date(2025, 8, 15), date(2025, 8, 31)])
    def test_quote_dated_on_cutoff_accrues_one_day(self, reference_inputs, settings, as_of):
        first = compute_quote(replace(reference_inputs, as_of=as_of), settings).schedule[0]
        assert first.date == as_of
        # 284,130 * 0.45 / 360 * 1 day = 355.1625
        assert first.interest == Decimal("355.16")
        assert first.interest_iva == Decimal("56.83")

    def test_second_period_uses_monthly_rate(self, reference_inputs, settings):
        schedule = compute_quote(reference_inputs, settings).schedule
        second = schedule[1]
        assert second.period == 2
        assert second.date == date(2025, 9, 15)
        assert second.opening_balance == schedule[0].closing_balance
        assert float(second.interest) == pytest.approx(10239.59, abs=CLOSE)
        assert float(second.interest_iva) == pytest.approx(1638.33, abs=CLOSE)
        assert float(second.total_payment) == pytest.approx(14952.42, abs=CLOSE)

    def test_month_two_total_is_headline(self, reference_inputs, settings):
        result = compute_quote(reference_inputs, settings)
        assert result.summary.pmt_total_month2 == result.schedule[1].total_payment

    def test_total_payment_layers_taxes_on_fixed_payment(self, reference_inputs, settings):
        result = compute_quote(reference_inputs, settings)
        for row in result.schedule:
            assert row.payment == result.summary.pmt_base
            assert row.total_payment == row.payment + row.interest_iva + row.gps_rent + row.gps_rent_iva


SCENARIOS = [
    dict(vehicle="405900", down="121770", term=48, rate="0.45", as_of=date(2025, 8, 11)),
    dict(vehicle="405900", down="121770", term=24, rate="0.36", as_of=date(2025, 8, 20)),
    dict(vehicle="250000", down="0", term=60, rate="0.40", as_of=date(2024, 1, 31)),
    dict(vehicle="99999.99", down="12345.67", term=36, rate="0.2999", as_of=date(2025, 2, 16)),
    dict(vehicle="50000", down="10000", term=12, rate="0", as_of=date(2025, 8, 15)),
    dict(vehicle="50000", down="10000", term=1, rate="0.45", as_of=date(2025, 8, 1)),
    dict(vehicle="1000", down="1000", term=6, rate="0.45", as_of=date(2025, 8, 1)),
]


@pytest.fixture(params=SCENARIOS, ids=lambda s: f"{s['vehicle']}-{s['term']}m-{s['rate']}")
def scenario_result(request, settings):
    s = request.param
    inputs = replace(
        request.getfixturevalue("reference_inputs"),
        vehicle_value=Decimal(s["vehicle"]),
        down_payment_amount=Decimal(s["down"]),
        term_months=s["term"],
        as_of=s["as_of"],
    )
    return compute_quote(inputs, replace(settings, annual_nominal_rate=Decimal(s["rate"])))


class TestScheduleInvariants:
    def test_length_matches_term(self, scenario_result):
        assert len(scenario_result.schedule) == scenario_result.inputs.term_months
        assert [row.period for row in scenario_result.schedule] == list(
            range(1, scenario_result.inputs.term_months + 1)
        )

    def test_balance_continuity(self, scenario_result):
        schedule = scenario_result.schedule
        for previous, row in zip(schedule, schedule[1:]):
            assert row.opening_balance == previous.closing_balance

    def test_closing_balance_is_opening_minus_principal(self, scenario_result):
        for row in scenario_result.schedule:
            assert row.closing_balance == row.opening_balance - row.principal

    def test_amortizes_to_zero(self, scenario_result):
        assert abs(scenario_result.schedule[-1].closing_balance) < Decimal("0.01")

    def test_amounts_are_rounded_to_cents(self, scenario_result):
        for row in scenario_result.schedule:
            for value in (row.interest, row.interest_iva, row.principal, row.total_payment, row.closing_balance):
                assert value == value.quantize(Decimal("0.01"))

    def test_dates_advance_by_one_month(self, scenario_result):
        schedule = scenario_result.schedule
        assert schedule[0].date >= scenario_result.inputs.as_of
        for previous, row in zip(schedule, schedule[1:]):
            assert (row.date.year * 12 + row.date.month) - (previous.date.year * 12 + previous.date.month) == 1


class TestRates:
    def test_rate_tiers_are_strictly_ordered(self, reference_inputs, settings):
        inputs = replace(reference_inputs, insurance=Insurance(mode="cash", amount=Decimal("0")))
        payments = [
            compute_quote(inputs, replace(settings, annual_nominal_rate=Decimal(rate))).summary.pmt_base
            for rate in ("0.36", "0.40", "0.45")
        ]
        assert payments[0] < payments[1] < payments[2]
        assert float(payments[0]) == pytest.approx(11245.23, abs=CLOSE)
        assert float(payments[1]) == pytest.approx(11946.76, abs=CLOSE)
        assert float(payments[2]) == pytest.approx(12850.09, abs=CLOSE)

    def test_zero_rate_schedule_has_no_interest(self, reference_inputs, settings):
        result = compute_quote(reference_inputs, replace(settings, annual_nominal_rate=Decimal("0")))
        assert result.summary.pmt_base == Decimal("5919.38")
        assert all(row.interest == 0 for row in result.schedule)
        assert sum(row.principal for row in result.schedule) == Decimal("284130")
        assert result.schedule[-1].closing_balance == 0


class TestInsurance:
    def test_financed_insurance_increases_principal(self, reference_inputs, settings):
        cash = compute_quote(reference_inputs, settings)
        financed_inputs = replace(reference_inputs, insurance=Insurance(mode="financed", amount=Decimal("18000")))
        financed = compute_quote(financed_inputs, settings)
        assert financed.summary.principal_total == Decimal("302130")
        assert financed.summary.principal_financed == Decimal("284130")
        assert financed.summary.opening_fee == Decimal("9063.90")
        assert financed.summary.pmt_base > cash.summary.pmt_base
        assert financed.schedule[0].opening_balance == Decimal("302130")

    def test_financed_insurance_is_not_paid_upfront(self, reference_inputs, settings):
        financed_inputs = replace(reference_inputs, insurance=Insurance(mode="financed", amount=Decimal("18000")))
        summary = compute_quote(financed_inputs, settings).summary
        # 121,770 down + 10,514.12 fee with IVA
        assert summary.initial_outlay == Decimal("132284.12")

    def test_subloan_mode_falls_back_to_principal(self, reference_inputs, settings, caplog):
        financed_inputs = replace(reference_inputs, insurance=Insurance(mode="financed", amount=Decimal("18000")))
        with caplog.at_level(logging.WARNING, logger="quote_calc.engine"):
            subloan = compute_quote(financed_inputs, replace(settings, finance_insurance_mode=SUBLOAN_12M))
        assert "12m_subloan" in caplog.text
        assert subloan.summary == compute_quote(financed_inputs, settings).summary


class TestChargesAndVariants:
    def test_gps_installation_in_outlay(self, reference_inputs, settings):
        summary = compute_quote(reference_inputs, replace(settings, gps_initial=Decimal("400"))).summary
        assert summary.gps == Decimal("400")
        assert summary.gps_iva == Decimal("64")
        assert summary.initial_outlay == Decimal("150657.72") + Decimal("464")

    def test_day_count_conventions_agree(self, reference_inputs, settings):
        a360 = compute_quote(reference_inputs, settings)
        act360 = compute_quote(reference_inputs, replace(settings, day_count="ACT360"))
        assert a360.schedule == act360.schedule

    def test_flat_monthly_first_period(self, reference_inputs, settings):
        result = compute_quote(reference_inputs, replace(settings, first_period_interest=FLAT_MONTHLY))
        assert result.schedule[0].interest == Decimal("10654.88")
        assert result.schedule[0].date == date(2025, 8, 15)
        assert abs(result.schedule[-1].closing_balance) < Decimal("0.01")

    def test_single_period_headline_is_first_row(self, reference_inputs, settings):
        result = compute_quote(replace(reference_inputs, term_months=1), settings)
        assert len(result.schedule) == 1
        assert result.summary.pmt_total_month2 == result.schedule[0].total_payment
        assert result.summary.first_payment_date == result.summary.last_payment_date

    def test_month_end_dates_follow_previous_payment(self, reference_inputs, settings):
        result = compute_quote(replace(reference_inputs, as_of=date(2025, 1, 20), term_months=3), settings)
        assert [row.date for row in result.schedule] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 28)]


class TestSerialization:
    def test_to_dict_shape(self, reference_inputs, settings):
        data = compute_quote(reference_inputs, settings).to_dict()
        assert set(data) == {"summary", "schedule", "inputs"}
        assert data["summary"]["first_payment_date"] == "2025-08-15"
        assert data["summary"]["principal_total"] == 284130.0
        assert len(data["schedule"]) == 48
        assert data["schedule"][0]["interest"] == 1775.81
        assert data["inputs"]["as_of"] == "2025-08-11"
        assert data["inputs"]["insurance"] == {"mode": "cash", "amount": 19000.0}
        assert data["inputs"]["settings"]["annual_nominal_rate"] == 0.45
        assert data["inputs"]["settings"]["first_payment_rule"] == "next_quincena"


class TestPlans:
    def test_matrix_covers_every_tier_and_term(self, reference_inputs, settings):
        plans = compute_plans(reference_inputs, settings, DEFAULT_RATE_TIERS, (24, 36, 48))
        assert list(plans) == ["A", "B", "C"]
        for by_term in plans.values():
            assert list(by_term) == [24, 36, 48]
            for term, result in by_term.items():
                assert len(result.schedule) == term

    def test_matrix_uses_tier_rates(self, reference_inputs, settings):
        plans = compute_plans(reference_inputs, settings, DEFAULT_RATE_TIERS, (48,))
        assert plans["C"][48].summary == compute_quote(reference_inputs, settings).summary
        assert plans["A"][48].summary.pmt_total_month2 < plans["B"][48].summary.pmt_total_month2
        assert plans["B"][48].summary.pmt_total_month2 < plans["C"][48].summary.pmt_total_month2
