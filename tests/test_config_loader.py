"""
Tests for loading KPI definitions, rules, benchmarks and client records.

Run with: pytest tests/test_config_loader.py -v
"""

import json

import pytest

from config_loader import (
    ConfigError,
    benchmark_from_record,
    build_config,
    client_from_record,
    default_config,
    kpi_from_record,
    load_benchmarks_csv,
    load_config,
    load_config_file,
    load_kpi_definitions,
    rule_from_record,
)
from settings import Settings


class TestKpiRecords:
    def test_camel_case_record(self):
        kpi = kpi_from_record("booking_rate", {
            "name": "Booking Rate",
            "category": "Efficiency",
            "type": "calculated",
            "dataType": "percentage",
            "formula": "PERCENTAGE:in_home_visits:total_leads",
            "sections": [1, 2],
            "pillar": 2,
            "formTier": "onboarding",
            "tierOrder": 3,
        })
        assert kpi.is_calculated
        assert kpi.category == "efficiency"
        assert kpi.data_type == "percentage"
        assert kpi.sections == frozenset({1, 2})
        assert kpi.form_tier == "onboarding"
        assert kpi.tier_order == 3

    def test_defaults(self):
        kpi = kpi_from_record("x", {})
        assert kpi.name == "x"
        assert not kpi.is_calculated
        assert kpi.form_tier is None
        assert kpi.tier_order == 999
        assert kpi.direction == "higher"

    def test_sections_from_string(self):
        assert kpi_from_record("x", {"sections": "1, 3"}).sections == frozenset({1, 3})

    def test_calculated_without_formula_skipped(self):
        assert kpi_from_record("x", {"type": "calculated"}) is None

    def test_input_formula_dropped(self):
        assert kpi_from_record("x", {"type": "input", "formula": "ADD:a:b"}).formula is None

    def test_unknown_tier_left_unclassified(self):
        assert kpi_from_record("x", {"formTier": "expert"}).form_tier is None

    def test_list_form_and_duplicates(self):
        kpis = load_kpi_definitions([
            {"id": "a", "name": "First"},
            {"id": "a", "name": "Second"},
            {"id": "b"},
        ])
        assert [k.id for k in kpis] == ["a", "b"]
        assert kpis[0].name == "First"


class TestRuleRecords:
    def test_rule_record(self):
        rule = rule_from_record({
            "id": "r",
            "type": "Reconciliation",
            "formula": "RECONCILE:a:b",
            "tolerance": -0.1,
            "severity": "ERROR",
            "affectedKPIs": ["a", "b"],
        })
        assert rule.type == "reconciliation"
        assert rule.tolerance == pytest.approx(0.1)
        assert rule.severity == "error"
        assert rule.affected_kpis == ("a", "b")

    def test_defaults(self):
        rule = rule_from_record({"id": "r", "formula": "REQUIRES:a:b"})
        assert rule.severity == "warning"
        assert rule.tolerance == 0.0
        assert rule.affected_kpis == ()

    def test_unknown_severity(self):
        assert rule_from_record({"id": "r", "formula": "X", "severity": "fatal"}).severity == "warning"

    @pytest.mark.parametrize("record", [
        {"formula": "REQUIRES:a:b"},
        {"id": "r"},
        {"id": "", "formula": "REQUIRES:a:b"},
    ])
    def test_incomplete_rules_discarded(self, record, caplog):
        assert rule_from_record(record) is None
        assert "Discarding validation rule" in caplog.text


class TestBenchmarkRecords:
    def test_record(self):
        row = benchmark_from_record({
            "kpiId": "booking_rate", "industry": "HVAC", "state": "",
            "poor": "30", "average": 45, "good": None, "excellent": 75,
        })
        assert row.industry == "hvac"
        assert row.state == "all"
        assert row.poor == 30.0
        assert row.good is None
        assert row.direction is None
        assert row.period == "annual"

    def test_missing_kpi_id(self):
        assert benchmark_from_record({"poor": 1}) is None

    def test_csv(self, tmp_path):
        path = tmp_path / "benchmarks.csv"
        path.write_text(
            "kpiId,industry,state,poor,average,good,excellent,direction,period\n"
            "booking_rate,all,all,30,45,60,75,higher,\n"
            "total_revenue,hvac,all,500000,1200000,2500000,5000000,,annual\n"
        )
        rows = load_benchmarks_csv(path)
        assert len(rows) == 2
        assert rows[0].direction == "higher"
        assert rows[0].period == "annual"
        assert rows[1].industry == "hvac"
        assert rows[1].direction is None
        assert rows[1].average == 1200000

    def test_csv_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_benchmarks_csv(tmp_path / "missing.csv")


class TestClientRecord:
    def test_from_record(self):
        client = client_from_record({
            "clientId": "acme", "industry": "HVAC", "state": "Ontario",
            "formTier": "Detailed", "periodDays": "14", "inputs": {"total_leads": 10},
        })
        assert client.client_id == "acme"
        assert client.industry == "hvac"
        assert client.state == "ontario"
        assert client.form_tier == "detailed"
        assert client.period_days == 14.0
        assert client.inputs == {"total_leads": 10}

    def test_defaults(self):
        client = client_from_record({})
        assert client.form_tier is None
        assert client.industry == "all"
        assert client.resolved_period_days() == 30.0

    def test_period_from_data_period(self):
        assert client_from_record({"dataPeriod": "quarterly"}).resolved_period_days() == 91.0

    @pytest.mark.parametrize("inputs", [[1, 2, 3], "total_leads=10", 42])
    def test_non_mapping_inputs_rejected(self, inputs):
        with pytest.raises(ConfigError, match="inputs must be an object"):
            client_from_record({"clientId": "acme", "inputs": inputs})


class TestConfig:
    def test_default_config(self):
        config = default_config()
        assert config.kpi("booking_rate").is_calculated
        assert config.kpi("nope") is None
        assert len(config.rules) == 9
        assert any(b.kpi_id == "total_revenue" for b in config.benchmarks)

    def test_partial_override_keeps_defaults(self):
        config = build_config(rules=[])
        assert config.rules == ()
        assert config.kpis == default_config().kpis

    def test_config_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "kpis": {"a": {"type": "input"}, "b": {"type": "calculated", "formula": "ADD:a:a"}},
            "rules": [{"id": "r", "type": "range", "formula": "RANGE:b:0:10"}],
        }))
        config = load_config_file(path)
        assert [k.id for k in config.kpis] == ["a", "b"]
        assert config.rules[0].id == "r"
        assert config.benchmarks == default_config().benchmarks

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_csv_overrides_benchmarks(self, tmp_path):
        path = tmp_path / "benchmarks.csv"
        path.write_text("kpiId,poor,average,good,excellent\nbooking_rate,1,2,3,4\n")
        config = load_config(Settings(benchmarks_csv=str(path)))
        assert len(config.benchmarks) == 1
        assert config.benchmarks[0].poor == 1
        assert len(config.kpis) == len(default_config().kpis)
