"""
Narrative insights: deterministic rules over benchmark ratings and validation results.

Every insight comes from a rule in INSIGHT_RULES; nothing is phrased freehand.
Ratings describe performance, validation status describes how far the
figures behind those ratings can be trusted.
"""

from dataclasses import dataclass, field

from benchmarks import RATING_CRITICAL, RATING_EXCELLENT, RATING_GOOD, RATING_POOR
from kpi_definitions import PILLAR_NAMES
from models import (
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    STATUS_ERRORS,
    STATUS_WARNINGS,
    BenchmarkRating,
    KPIDefinition,
    ValidationResult,
)


# -----------------------------------------------------------------------------
# RULE DEFINITIONS
# -----------------------------------------------------------------------------

INSIGHT_RULES = {
    "kpi_strength": {
        "id": "kpi_strength",
        "condition": "Benchmark rating is excellent or good",
        "label": "strength",
        "message_template": "{name} is rated {rating}: {comparison}.",
        "recommendation": None,
    },
    "kpi_concern": {
        "id": "kpi_concern",
        "condition": "Benchmark rating is poor",
        "label": "concern",
        "message_template": "{name} is rated poor: {comparison}.",
        "recommendation": "Review the drivers of {name} against the industry average.",
    },
    "kpi_critical": {
        "id": "kpi_critical",
        "condition": "Benchmark rating is below every threshold",
        "label": "attention",
        "message_template": "{name} is below the poor threshold for the industry: {comparison}.",
        "recommendation": "Prioritize {name}; it is the furthest from industry norms.",
    },
    "weakest_pillar": {
        "id": "weakest_pillar",
        "condition": "Pillar with the most poor or critical ratings (at least 2)",
        "label": "attention",
        "message_template": "{pillar} has {count} KPIs rated poor or critical.",
        "recommendation": "Focus the next review on {pillar}.",
    },
    "data_errors": {
        "id": "data_errors",
        "condition": "Validation status is errors",
        "label": "attention",
        "message_template": "{count} data consistency error(s) found; figures in sections {sections} may be unreliable.",
        "recommendation": "Correct the flagged inputs and re-run the analysis before acting on ratings.",
    },
    "data_warnings": {
        "id": "data_warnings",
        "condition": "Validation status is warnings",
        "label": "attention",
        "message_template": "{count} data consistency warning(s) found; confirm the flagged inputs.",
        "recommendation": None,
    },
}


@dataclass
class Insight:
    rule_id: str
    label: str  # "strength" | "concern" | "attention"
    message: str
    kpi_id: str | None = None


@dataclass
class InsightResult:
    insights: list[Insight] = field(default_factory=list)
    fired_rule_ids: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "fired_rule_ids": list(self.fired_rule_ids),
            "insights": [
                {"rule_id": i.rule_id, "label": i.label, "message": i.message, "kpi_id": i.kpi_id}
                for i in self.insights
            ],
            "recommendations": list(self.recommendations),
        }


def _fire(result: InsightResult, rule_id: str, kpi_id: str | None = None, **fields) -> None:
    rule = INSIGHT_RULES[rule_id]
    result.insights.append(
        Insight(rule_id=rule_id, label=rule["label"], message=rule["message_template"].format(**fields), kpi_id=kpi_id)
    )
    if rule_id not in result.fired_rule_ids:
        result.fired_rule_ids.append(rule_id)
    if rule["recommendation"]:
        text = rule["recommendation"].format(**fields)
        if text not in result.recommendations:
            result.recommendations.append(text)


def run_insight_engine(
    ratings: dict[str, BenchmarkRating],
    validation: ValidationResult,
    kpi_definitions: list[KPIDefinition],
) -> InsightResult:
    result = InsightResult()
    by_id = {k.id: k for k in kpi_definitions}

    # -------------------------------------------------------------------------
    # Data integrity first: it qualifies every rating below
    # -------------------------------------------------------------------------
    if validation.status == STATUS_ERRORS:
        errors = validation.by_severity(SEVERITY_ERROR)
        sections = sorted({s for i in errors for s in i.affected_sections})
        _fire(result, "data_errors", count=len(errors), sections=", ".join(map(str, sections)) or "n/a")
    elif validation.status == STATUS_WARNINGS:
        _fire(result, "data_warnings", count=len(validation.by_severity(SEVERITY_WARNING)))

    # -------------------------------------------------------------------------
    # Per-KPI ratings, in definition order
    # -------------------------------------------------------------------------
    weak_by_pillar: dict[int, int] = {}
    for kpi in kpi_definitions:
        rating = ratings.get(kpi.id)
        if rating is None:
            continue
        fields = {"name": kpi.name or kpi.id, "rating": rating.rating, "comparison": rating.comparison}
        if rating.rating in (RATING_EXCELLENT, RATING_GOOD):
            _fire(result, "kpi_strength", kpi.id, **fields)
        elif rating.rating == RATING_POOR:
            _fire(result, "kpi_concern", kpi.id, **fields)
        elif rating.rating == RATING_CRITICAL:
            _fire(result, "kpi_critical", kpi.id, **fields)
        if rating.rating in (RATING_POOR, RATING_CRITICAL):
            pillar = by_id[kpi.id].pillar
            weak_by_pillar[pillar] = weak_by_pillar.get(pillar, 0) + 1

    if weak_by_pillar:
        pillar, count = max(weak_by_pillar.items(), key=lambda item: item[1])
        if count >= 2:
            _fire(result, "weakest_pillar", pillar=PILLAR_NAMES.get(pillar, f"Pillar {pillar}"), count=count)

    return result
