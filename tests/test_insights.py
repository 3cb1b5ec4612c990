"""
Tests for the rule-based insight engine.

Run with: pytest tests/test_insights.py -v
"""

from insights import INSIGHT_RULES, run_insight_engine
from models import BenchmarkRating, KPIDefinition, ValidationIssue, ValidationResult

KPIS = [
    KPIDefinition(id="booking_rate", name="Booking Rate", pillar=2),
    KPIDefinition(id="close_rate", name="Close Rate", pillar=2),
    KPIDefinition(id="average_ticket", name="Average Ticket", pillar=4),
]

VALID = ValidationResult(status="valid")


def _rating(kpi_id, rating, comparison="vs average"):
    return BenchmarkRating(kpi_id=kpi_id, value=1.0, rating=rating, comparison=comparison)


def test_every_rule_has_required_fields():
    for rule_id, rule in INSIGHT_RULES.items():
        assert rule["id"] == rule_id
        assert rule["label"] in ("strength", "concern", "attention")
        assert rule["message_template"]


def test_strength_and_concern():
    ratings = {
        "booking_rate": _rating("booking_rate", "excellent", "30.0% above industry average (45%), better than typical"),
        "close_rate": _rating("close_rate", "poor"),
    }
    result = run_insight_engine(ratings, VALID, KPIS)
    assert result.fired_rule_ids == ["kpi_strength", "kpi_concern"]
    assert result.insights[0].message.startswith("Booking Rate is rated excellent: 30.0% above")
    assert result.insights[1].kpi_id == "close_rate"
    assert result.recommendations == ["Review the drivers of Close Rate against the industry average."]


def test_average_and_no_data_are_silent():
    ratings = {
        "booking_rate": _rating("booking_rate", "average"),
        "close_rate": _rating("close_rate", "no_data"),
    }
    result = run_insight_engine(ratings, VALID, KPIS)
    assert result.insights == []
    assert result.recommendations == []


def test_weakest_pillar_needs_two_weak_ratings():
    one = run_insight_engine({"booking_rate": _rating("booking_rate", "critical")}, VALID, KPIS)
    assert "weakest_pillar" not in one.fired_rule_ids

    two = run_insight_engine(
        {"booking_rate": _rating("booking_rate", "critical"), "close_rate": _rating("close_rate", "poor")},
        VALID,
        KPIS,
    )
    assert "weakest_pillar" in two.fired_rule_ids
    assert two.insights[-1].message == "Conversion has 2 KPIs rated poor or critical."
    assert "Focus the next review on Conversion." in two.recommendations


def test_validation_errors_reported_first():
    issue = ValidationIssue(
        rule_id="r", rule_type="dependency", severity="error", message="m", affected_sections=(2, 3),
    )
    validation = ValidationResult(status="errors", issues=[issue])
    result = run_insight_engine({"average_ticket": _rating("average_ticket", "good")}, validation, KPIS)
    assert result.fired_rule_ids[0] == "data_errors"
    assert "sections 2, 3" in result.insights[0].message
    assert result.recommendations[0].startswith("Correct the flagged inputs")


def test_validation_warnings():
    issue = ValidationIssue(rule_id="r", rule_type="range", severity="warning", message="m")
    result = run_insight_engine({}, ValidationResult(status="warnings", issues=[issue]), KPIS)
    assert result.fired_rule_ids == ["data_warnings"]
    assert result.insights[0].message.startswith("1 data consistency warning(s)")


def test_to_dict():
    result = run_insight_engine({"close_rate": _rating("close_rate", "poor")}, VALID, KPIS)
    data = result.to_dict()
    assert data["fired_rule_ids"] == ["kpi_concern"]
    assert data["insights"][0]["kpi_id"] == "close_rate"
