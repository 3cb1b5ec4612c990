"""
One analysis run for one client: calculate -> validate -> rate -> insights.

Each run builds its own value map; the client's raw inputs are never modified.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from benchmarks import rate_all
from config_loader import AnalysisConfig
from formatting import to_number
from insights import InsightResult, run_insight_engine
from kpi import CalculationError, KPIEngine
from models import BenchmarkRating, ClientRecord, ValidationResult
from settings import Settings
from validation_engine import ValidationEngine

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    client: ClientRecord
    # Inputs + calculated KPIs
    values: dict[str, float | None]
    calculated: dict[str, float | None]
    validation: ValidationResult
    ratings: dict[str, BenchmarkRating] = field(default_factory=dict)
    insights: InsightResult = field(default_factory=InsightResult)
    calculation_errors: list[CalculationError] = field(default_factory=list)
    cycle_detected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client.client_id,
            "form_tier": self.client.form_tier,
            "industry": self.client.industry,
            "state": self.client.state,
            "values": dict(self.values),
            "calculated": dict(self.calculated),
            "validation": self.validation.to_dict(),
            "ratings": {k: r.to_dict() for k, r in self.ratings.items()},
            "insights": self.insights.to_dict(),
            "calculation_errors": [
                {"kpi_id": e.kpi_id, "formula": e.formula, "error": e.error}
                for e in self.calculation_errors
            ],
            "cycle_detected": self.cycle_detected,
        }


def run_analysis(
    client: ClientRecord,
    config: AnalysisConfig,
    settings: Settings | None = None,
) -> AnalysisResult:
    settings = settings or Settings()
    kpis = list(config.kpis)

    engine = KPIEngine(hours_per_day=settings.hours_per_day, default_period_days=settings.default_period_days)
    calculated = engine.calculate_all(client, kpis)

    values = {k: to_number(v) for k, v in client.inputs.items()}
    values.update(calculated)

    validation = ValidationEngine(kpis).validate_all(values, list(config.rules))
    ratings = rate_all(values, kpis, list(config.benchmarks), client, settings.default_period_days)
    insights = run_insight_engine(ratings, validation, kpis)

    resolution = engine.last_resolution
    logger.info(
        "Analysis for %s: %d calculated, status=%s, %d ratings, %d insights",
        client.client_id or "?", len(calculated), validation.status, len(ratings), len(insights.insights),
    )
    return AnalysisResult(
        client=client,
        values=values,
        calculated=calculated,
        validation=validation,
        ratings=ratings,
        insights=insights,
        calculation_errors=list(engine.errors),
        cycle_detected=bool(resolution and resolution.cycle_detected),
    )
