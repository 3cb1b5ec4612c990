"""
Benchmark selection and rating.

Rows are keyed by (kpi_id, industry, state); "all" is the wildcard. The most
specific row wins:

    (industry, state) > (all, state) > (industry, all) > (all, all)

Thresholds for cumulative-count KPIs describe the benchmark's reporting period
(annual by default) and are scaled to the client's period before rating.
Rates and percentages are never scaled.
"""

import logging
from dataclasses import replace
from typing import Any

from formatting import format_value, is_empty, to_number
from models import (
    DIRECTION_HIGHER,
    DIRECTION_LOWER,
    PERIOD_DAYS,
    WILDCARD,
    BenchmarkRating,
    BenchmarkRow,
    ClientRecord,
    KPIDefinition,
)

logger = logging.getLogger(__name__)

RATING_EXCELLENT = "excellent"
RATING_GOOD = "good"
RATING_AVERAGE = "average"
RATING_POOR = "poor"
RATING_CRITICAL = "critical"
RATING_NO_DATA = "no_data"

# KPI categories whose values accumulate over the reporting period
CUMULATIVE_CATEGORIES = frozenset({"volume", "capacity"})


def _norm(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip().lower()
    return value or None


def select_benchmark(
    rows: list[BenchmarkRow],
    kpi_id: str,
    industry: str | None = None,
    state: str | None = None,
) -> BenchmarkRow | None:
    industry, state = _norm(industry), _norm(state)
    if industry == WILDCARD:
        industry = None
    if state == WILDCARD:
        state = None

    candidates = {
        (_norm(r.industry) or WILDCARD, _norm(r.state) or WILDCARD): r
        for r in reversed(rows)
        if r.kpi_id == kpi_id
    }
    if not candidates:
        return None

    priorities = []
    if industry and state:
        priorities.append((industry, state))
    if state:
        priorities.append((WILDCARD, state))
    if industry:
        priorities.append((industry, WILDCARD))
    priorities.append((WILDCARD, WILDCARD))

    for key in priorities:
        if key in candidates:
            return candidates[key]
    return None


def is_cumulative(kpi: KPIDefinition) -> bool:
    return kpi.category.lower() in CUMULATIVE_CATEGORIES and kpi.data_type != "percentage"


def period_factor(period_days: float, benchmark_period: str = "annual") -> float:
    benchmark_days = PERIOD_DAYS.get((benchmark_period or "").lower())
    if not benchmark_days:
        logger.warning("Unknown benchmark period %r; thresholds not scaled", benchmark_period)
        return 1.0
    return period_days / benchmark_days


def normalize_thresholds(row: BenchmarkRow, period_days: float, cumulative: bool) -> BenchmarkRow:
    """Copy of `row` with thresholds scaled to the client's reporting period."""
    if not cumulative:
        return row
    factor = period_factor(period_days, row.period)
    if factor == 1.0:
        return row

    def scale(v: float | None) -> float | None:
        return None if v is None else v * factor

    return replace(
        row,
        poor=scale(row.poor),
        average=scale(row.average),
        good=scale(row.good),
        excellent=scale(row.excellent),
    )


def _thresholds(row: BenchmarkRow) -> list[tuple[str, float | None]]:
    return [
        (RATING_EXCELLENT, row.excellent),
        (RATING_GOOD, row.good),
        (RATING_AVERAGE, row.average),
        (RATING_POOR, row.poor),
    ]


def rate(value: float | None, row: BenchmarkRow, direction: str | None = None) -> str:
    """
    Rating tier for a value.
    higher-is-better: first of excellent/good/average/poor the value reaches (>=).
    lower-is-better: first of excellent/good/average/poor the value stays within (<=).
    Below every threshold is "critical".
    """
    if is_empty(value):
        return RATING_NO_DATA
    direction = (direction or row.direction or DIRECTION_HIGHER).lower()
    tiers = [(label, t) for label, t in _thresholds(row) if t is not None]
    if not tiers:
        return RATING_NO_DATA
    for label, threshold in tiers:
        if direction == DIRECTION_LOWER:
            if value <= threshold:
                return label
        elif value >= threshold:
            return label
    return RATING_CRITICAL


def compare(
    value: float | None,
    row: BenchmarkRow,
    direction: str | None = None,
    data_type: str = "number",
) -> str:
    """Short comparison against the benchmark's average threshold."""
    if is_empty(value):
        return "No data"
    average = row.average
    if average is None:
        return "No industry average available"
    shown_avg = format_value(average, data_type)
    if average == 0:
        return f"{format_value(value, data_type)} vs industry average {shown_avg}"
    diff_pct = (value - average) / abs(average) * 100
    if abs(diff_pct) < 0.05:
        return f"In line with industry average ({shown_avg})"
    direction = (direction or row.direction or DIRECTION_HIGHER).lower()
    better = diff_pct > 0 if direction != DIRECTION_LOWER else diff_pct < 0
    position = "above" if diff_pct > 0 else "below"
    verdict = "better" if better else "worse"
    return f"{abs(diff_pct):.1f}% {position} industry average ({shown_avg}), {verdict} than typical"


def rate_kpi(
    kpi: KPIDefinition,
    value: Any,
    rows: list[BenchmarkRow],
    client: ClientRecord,
    default_period_days: float = 30,
) -> BenchmarkRating | None:
    """Rating for one KPI, or None when no benchmark row applies."""
    row = select_benchmark(rows, kpi.id, client.industry, client.state)
    if row is None:
        return None
    number = to_number(value)
    direction = row.direction or kpi.direction
    period_days = client.resolved_period_days(default_period_days)
    adjusted = normalize_thresholds(row, period_days, is_cumulative(kpi))
    return BenchmarkRating(
        kpi_id=kpi.id,
        value=number,
        rating=rate(number, adjusted, direction),
        comparison=compare(number, adjusted, direction, kpi.data_type),
        benchmark=row,
        thresholds=(adjusted.poor, adjusted.average, adjusted.good, adjusted.excellent),
    )


def rate_all(
    values: dict[str, Any],
    kpi_definitions: list[KPIDefinition],
    rows: list[BenchmarkRow],
    client: ClientRecord,
    default_period_days: float = 30,
) -> dict[str, BenchmarkRating]:
    ratings: dict[str, BenchmarkRating] = {}
    for kpi in kpi_definitions:
        if kpi.id not in values:
            continue
        rating = rate_kpi(kpi, values[kpi.id], rows, client, default_period_days)
        if rating is not None:
            ratings[kpi.id] = rating
    logger.info("Rated %d KPIs against benchmarks (%s/%s)", len(ratings), client.industry, client.state)
    return ratings
