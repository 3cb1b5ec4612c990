"""
Tests for the KPI calculation engine.

Run with: pytest tests/test_kpi.py -v
"""

import logging

import pytest

import kpi as kpi_module
from config_loader import default_config
from kpi import KPIEngine, applicable_tiers, build_kpi_table, calculate_all, filter_by_tier
from models import BenchmarkRating, ClientRecord, KPIDefinition


def inp(kpi_id: str, tier: str | None = None, **kw) -> KPIDefinition:
    return KPIDefinition(id=kpi_id, type="input", form_tier=tier, **kw)


def calc(kpi_id: str, formula: str, tier: str | None = None, **kw) -> KPIDefinition:
    return KPIDefinition(id=kpi_id, type="calculated", formula=formula, form_tier=tier, **kw)


FUNNEL = [
    inp("total_leads"),
    inp("in_home_visits"),
    inp("jobs_closed"),
    calc("booking_rate", "PERCENTAGE:in_home_visits:total_leads"),
    calc("close_rate", "PERCENTAGE:jobs_closed:in_home_visits"),
]


class TestApplicableTiers:
    def test_tiers_are_cumulative(self):
        assert applicable_tiers("onboarding") == {"onboarding"}
        assert applicable_tiers("detailed") == {"onboarding", "detailed"}
        assert applicable_tiers("section_deep") == {"onboarding", "detailed", "section_deep"}

    def test_no_tier_is_ungated(self):
        assert applicable_tiers(None) is None
        assert applicable_tiers("") is None

    def test_unknown_tier_is_ungated(self, caplog):
        with caplog.at_level(logging.WARNING, logger="kpi"):
            assert applicable_tiers("platinum") is None
        assert "Unknown form tier" in caplog.text

    def test_unclassified_kpis_excluded_when_tier_set(self):
        kpis = [inp("a", "onboarding"), inp("b"), inp("c", "detailed")]
        assert [k.id for k in filter_by_tier(kpis, "onboarding")] == ["a"]
        assert [k.id for k in filter_by_tier(kpis, None)] == ["a", "b", "c"]


class TestCalculateAll:
    def test_funnel_rates(self):
        client = ClientRecord(inputs={"total_leads": 100, "in_home_visits": 40, "jobs_closed": 20})
        result = calculate_all(client, FUNNEL)
        assert result["booking_rate"] == pytest.approx(40.0)
        assert result["close_rate"] == pytest.approx(50.0)

    def test_only_calculated_kpis_returned(self):
        client = ClientRecord(inputs={"total_leads": 100, "in_home_visits": 40, "jobs_closed": 20})
        assert set(calculate_all(client, FUNNEL)) == {"booking_rate", "close_rate"}

    def test_inputs_not_mutated(self):
        inputs = {"total_leads": "100", "in_home_visits": 40, "jobs_closed": None}
        snapshot = dict(inputs)
        client = ClientRecord(inputs=inputs)
        calculate_all(client, FUNNEL)
        assert inputs == snapshot
        assert client.inputs is inputs

    def test_missing_input_propagates_none(self):
        client = ClientRecord(inputs={"total_leads": 100})
        result = calculate_all(client, FUNNEL)
        assert result == {"booking_rate": None, "close_rate": None}

    def test_calculated_chain_uses_earlier_results(self):
        kpis = [
            calc("capacity_utilization", "PERCENTAGE:billable_hours:schedule_capacity"),
            calc("schedule_capacity", "CUSTOM:schedule_capacity"),
            inp("num_techs"),
            inp("billable_hours"),
        ]
        client = ClientRecord(inputs={"num_techs": 4, "billable_hours": 504}, period_days=30)
        result = calculate_all(client, kpis)
        assert result["schedule_capacity"] == pytest.approx(672.0)
        assert result["capacity_utilization"] == pytest.approx(75.0)

    def test_period_days_from_data_period(self):
        kpis = [inp("total_revenue"), calc("revenue_per_day", "PER_DAY:total_revenue")]
        client = ClientRecord(inputs={"total_revenue": 9100}, data_period="quarterly")
        assert calculate_all(client, kpis)["revenue_per_day"] == pytest.approx(100.0)

    def test_deterministic(self):
        client = ClientRecord(inputs={"total_leads": 100, "in_home_visits": 40, "jobs_closed": 20})
        assert calculate_all(client, FUNNEL) == calculate_all(client, FUNNEL)


class TestTierScoping:
    KPIS = [
        inp("total_leads", "onboarding"),
        inp("in_home_visits", "onboarding"),
        inp("marketing_spend", "detailed"),
        calc("booking_rate", "PERCENTAGE:in_home_visits:total_leads", "onboarding"),
        calc("cost_per_lead", "DIVIDE:marketing_spend:total_leads", "detailed"),
        # Onboarding KPI that needs a detailed input
        calc("spend_per_visit", "DIVIDE:marketing_spend:in_home_visits", "onboarding"),
        calc("unclassified", "ADD:total_leads:1"),
    ]
    INPUTS = {"total_leads": 200, "in_home_visits": 50, "marketing_spend": 10000}

    def test_onboarding_tier(self):
        client = ClientRecord(inputs=self.INPUTS, form_tier="onboarding")
        assert calculate_all(client, self.KPIS) == {"booking_rate": pytest.approx(25.0)}

    def test_detailed_tier_includes_onboarding(self):
        client = ClientRecord(inputs=self.INPUTS, form_tier="detailed")
        result = calculate_all(client, self.KPIS)
        assert set(result) == {"booking_rate", "cost_per_lead", "spend_per_visit"}
        assert result["cost_per_lead"] == pytest.approx(50.0)
        assert result["spend_per_visit"] == pytest.approx(200.0)

    def test_out_of_tier_dependency_silently_omitted(self):
        engine = KPIEngine()
        client = ClientRecord(inputs=self.INPUTS, form_tier="onboarding")
        result = engine.calculate_all(client, self.KPIS)
        assert "spend_per_visit" not in result
        assert "spend_per_visit" in engine.skipped
        assert engine.errors == []

    def test_no_tier_evaluates_everything(self):
        client = ClientRecord(inputs=self.INPUTS)
        result = calculate_all(client, self.KPIS)
        assert result["unclassified"] == pytest.approx(201.0)
        assert len(result) == 4

    def test_undefined_reference_logged_and_skipped(self, caplog):
        kpis = [inp("a"), calc("bad", "ADD:a:not_defined"), calc("good", "ADD:a:1")]
        with caplog.at_level(logging.WARNING, logger="kpi"):
            result = calculate_all(ClientRecord(inputs={"a": 1}), kpis)
        assert result == {"good": pytest.approx(2.0)}
        assert "not_defined" in caplog.text


class TestFaultContainment:
    def test_one_failing_formula_does_not_abort_batch(self, monkeypatch):
        real_evaluate = kpi_module.evaluate

        def flaky(parsed, values, period_days, hours_per_day):
            if "boom" in parsed.raw:
                raise RuntimeError("boom")
            return real_evaluate(parsed, values, period_days, hours_per_day)

        monkeypatch.setattr(kpi_module, "evaluate", flaky)
        kpis = [inp("a"), calc("first", "ADD:a:1"), calc("broken", "ADD:a:boom_marker"), calc("last", "ADD:first:1")]
        kpis.append(inp("boom_marker"))
        engine = KPIEngine()
        result = engine.calculate_all(ClientRecord(inputs={"a": 1, "boom_marker": 1}), kpis)
        assert result["broken"] is None
        assert result["first"] == pytest.approx(2.0)
        assert result["last"] == pytest.approx(3.0)
        assert [e.kpi_id for e in engine.errors] == ["broken"]

    def test_cycle_degrades_without_raising(self):
        kpis = [inp("raw"), calc("a", "ADD:b:1"), calc("b", "ADD:a:1"), calc("c", "ADD:raw:1")]
        engine = KPIEngine()
        result = engine.calculate_all(ClientRecord(inputs={"raw": 1}), kpis)
        assert engine.last_resolution.cycle_detected is True
        assert result["c"] == pytest.approx(2.0)
        assert result["a"] is None

    def test_unknown_operator_gives_none(self):
        kpis = [inp("a"), calc("weird", "POWER:a:2")]
        assert calculate_all(ClientRecord(inputs={"a": 3}), kpis) == {"weird": None}


class TestDefaultConfiguration:
    def test_detailed_client(self):
        config = default_config()
        client = ClientRecord(
            inputs={"total_leads": 100, "in_home_visits": 42, "jobs_closed": 20, "total_revenue": 31000,
                    "num_techs": 4, "marketing_spend": 9000, "billable_hours": 520, "callbacks": 2},
            form_tier="detailed",
            period_days=30,
        )
        result = calculate_all(client, list(config.kpis))
        assert result["booking_rate"] == pytest.approx(42.0)
        assert result["average_ticket"] == pytest.approx(1550.0)
        assert result["cost_per_lead"] == pytest.approx(90.0)
        assert result["schedule_capacity"] == pytest.approx(672.0)
        assert result["capacity_utilization"] == pytest.approx(520 / 672 * 100)
        assert "callback_rate" not in result


class TestBuildKpiTable:
    def test_rows_sorted_by_pillar_then_tier_order(self):
        kpis = [
            inp("b", pillar=2, tier_order=1, name="B"),
            inp("a", pillar=1, tier_order=5, name="A", data_type="percentage"),
            inp("c", pillar=1, tier_order=2, name="C"),
            inp("not_in_values", pillar=1),
        ]
        values = {"a": 12.5, "b": 1500.0, "c": None}
        rating = BenchmarkRating(kpi_id="a", value=12.5, rating="good", comparison="above")
        df = build_kpi_table(values, kpis, {"a": rating})
        assert list(df["kpi_id"]) == ["c", "a", "b"]
        row_a = df[df["kpi_id"] == "a"].iloc[0]
        assert row_a["display"] == "12.5%"
        assert row_a["rating"] == "good"
        assert df[df["kpi_id"] == "c"].iloc[0]["display"] == "N/A"

    def test_empty(self):
        assert build_kpi_table({}, [inp("a")]).empty
