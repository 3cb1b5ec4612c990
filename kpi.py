import logging
from dataclasses import dataclass
from typing import Any

import pandas as pd

from dependency import ResolutionResult, resolve_order
from formatting import format_value, to_number
from formula import extract_dependencies, is_numeric_literal, parse_formula, evaluate
from models import FORM_TIERS, BenchmarkRating, ClientRecord, KPIDefinition
from settings import DEFAULT_HOURS_PER_DAY, DEFAULT_PERIOD_DAYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalculationError:
    kpi_id: str
    formula: str
    error: str


def applicable_tiers(form_tier: str | None) -> set[str] | None:
    """
    Cumulative tier set for a client's tier: onboarding ⊂ detailed ⊂ section_deep.
    None means ungated (every KPI is in scope).
    """
    if not form_tier:
        return None
    tier = form_tier.strip().lower()
    if tier not in FORM_TIERS:
        logger.warning("Unknown form tier %r; evaluating all KPIs", form_tier)
        return None
    return set(FORM_TIERS[: FORM_TIERS.index(tier) + 1])


def filter_by_tier(kpis: list[KPIDefinition], form_tier: str | None) -> list[KPIDefinition]:
    tiers = applicable_tiers(form_tier)
    if tiers is None:
        return list(kpis)
    return [k for k in kpis if k.form_tier and k.form_tier.lower() in tiers]


def _seed_values(inputs: dict[str, Any]) -> dict[str, float | None]:
    # Fresh dict: the caller's inputs are never written to
    return {k: to_number(v) for k, v in inputs.items()}


class KPIEngine:
    """Tier filter -> dependency sort -> per-KPI formula evaluation."""

    def __init__(
        self,
        hours_per_day: float = DEFAULT_HOURS_PER_DAY,
        default_period_days: float = DEFAULT_PERIOD_DAYS,
    ):
        self.hours_per_day = hours_per_day
        self.default_period_days = default_period_days
        self.errors: list[CalculationError] = []
        self.skipped: list[str] = []
        self.last_resolution: ResolutionResult | None = None

    def calculable_kpis(self, client: ClientRecord, kpi_definitions: list[KPIDefinition]) -> list[KPIDefinition]:
        """Calculated KPIs in the client's tier whose references all resolve inside that tier."""
        in_scope = filter_by_tier(kpi_definitions, client.form_tier)
        scoped_ids = {k.id for k in in_scope}
        gated = applicable_tiers(client.form_tier) is not None

        calculable = []
        for kpi in in_scope:
            if not kpi.is_calculated:
                continue
            missing = [
                d for d in extract_dependencies(kpi.formula)
                if d not in scoped_ids and not is_numeric_literal(d)
            ]
            if missing:
                self.skipped.append(kpi.id)
                if gated:
                    logger.debug("KPI %s not calculable at tier %s (needs %s)", kpi.id, client.form_tier, missing)
                else:
                    logger.warning("KPI %s references undefined KPI(s) %s; skipped", kpi.id, ", ".join(missing))
                continue
            calculable.append(kpi)
        return calculable

    def calculate_all(self, client: ClientRecord, kpi_definitions: list[KPIDefinition]) -> dict[str, float | None]:
        """
        Calculate every applicable KPI for one client.
        Returns only calculated KPI values; raw inputs stay on the client record.
        """
        self.errors = []
        self.skipped = []

        calculable = self.calculable_kpis(client, kpi_definitions)
        values = _seed_values(client.inputs)
        period_days = client.resolved_period_days(self.default_period_days)

        self.last_resolution = resolve_order(calculable)
        ordered = self.last_resolution.ordered

        logger.info(
            "Calculating %d KPIs for client %s (tier=%s, period_days=%s)",
            len(ordered), client.client_id or "?", client.form_tier or "all", period_days,
        )

        for kpi in ordered:
            try:
                values[kpi.id] = evaluate(parse_formula(kpi.formula), values, period_days, self.hours_per_day)
            except Exception as e:
                logger.exception("Formula for KPI %s failed: %s", kpi.id, kpi.formula)
                self.errors.append(CalculationError(kpi.id, kpi.formula or "", str(e)))
                values[kpi.id] = None

        return {kpi.id: values.get(kpi.id) for kpi in ordered}


def calculate_all(
    client: ClientRecord,
    kpi_definitions: list[KPIDefinition],
    hours_per_day: float = DEFAULT_HOURS_PER_DAY,
) -> dict[str, float | None]:
    return KPIEngine(hours_per_day=hours_per_day).calculate_all(client, kpi_definitions)


def build_kpi_table(
    values: dict[str, float | None],
    kpi_definitions: list[KPIDefinition],
    ratings: dict[str, BenchmarkRating] | None = None,
) -> pd.DataFrame:
    """One row per defined KPI that has a key in `values`, ordered by pillar then tier order."""
    ratings = ratings or {}
    rows = []
    for kpi in kpi_definitions:
        if kpi.id not in values:
            continue
        value = values[kpi.id]
        rating = ratings.get(kpi.id)
        rows.append({
            "kpi_id": kpi.id,
            "name": kpi.name or kpi.id,
            "category": kpi.category,
            "pillar": kpi.pillar,
            "tier_order": kpi.tier_order,
            "type": kpi.type,
            "value": value,
            "display": format_value(value, kpi.data_type),
            "rating": rating.rating if rating else "",
            "comparison": rating.comparison if rating else "",
        })
    columns = ["kpi_id", "name", "category", "pillar", "tier_order", "type", "value", "display", "rating", "comparison"]
    df = pd.DataFrame(rows, columns=columns)
    if df.empty:
        return df
    return df.sort_values(["pillar", "tier_order"], kind="stable").reset_index(drop=True)
