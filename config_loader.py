"""
Configuration model: turns plain records (dicts, a JSON file, a benchmark CSV)
into the read-only records the engines consume.

Keys are accepted in camelCase (formTier, affectedKPIs, ...) or snake_case.
Bad records are logged and skipped. An unreadable file, or a client record
whose inputs are not a mapping, raises ConfigError.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from formatting import is_empty, to_number
from kpi_definitions import BENCHMARKS, KPI_DEFINITIONS, VALIDATION_RULES
from models import (
    DEFAULT_TIER_ORDER,
    DIRECTION_HIGHER,
    DIRECTION_LOWER,
    FORM_TIERS,
    KPI_TYPE_CALCULATED,
    KPI_TYPE_INPUT,
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    WILDCARD,
    BenchmarkRow,
    ClientRecord,
    KPIDefinition,
    ValidationRule,
)
from settings import Settings

logger = logging.getLogger(__name__)

SEVERITIES = (SEVERITY_ERROR, SEVERITY_WARNING, SEVERITY_INFO)


class ConfigError(ValueError):
    """Configuration source that cannot be read at all."""


@dataclass(frozen=True)
class AnalysisConfig:
    kpis: tuple[KPIDefinition, ...] = ()
    rules: tuple[ValidationRule, ...] = ()
    benchmarks: tuple[BenchmarkRow, ...] = ()

    def kpi(self, kpi_id: str) -> KPIDefinition | None:
        for k in self.kpis:
            if k.id == kpi_id:
                return k
        return None


def _get(record: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and not is_empty(record[key]):
            return record[key]
    return default


def _text(value: Any) -> str:
    return "" if is_empty(value) else str(value).strip()


def _sections(value: Any) -> frozenset[int]:
    if is_empty(value) or value == "":
        return frozenset()
    if isinstance(value, str):
        value = [v for v in value.replace(";", ",").split(",") if v.strip()]
    if not isinstance(value, (list, tuple, set, frozenset)):
        value = [value]
    sections = set()
    for v in value:
        number = to_number(v)
        if number is None:
            logger.warning("Ignoring non-numeric section reference %r", v)
            continue
        sections.add(int(number))
    return frozenset(sections)


def _int(value: Any, default: int) -> int:
    number = to_number(value)
    return default if number is None else int(number)


def kpi_from_record(kpi_id: str, record: dict[str, Any]) -> KPIDefinition | None:
    kpi_id = _text(kpi_id)
    if not kpi_id:
        logger.warning("Skipping KPI definition without an id: %r", record)
        return None

    kpi_type = _text(_get(record, "type", default=KPI_TYPE_INPUT)).lower()
    if kpi_type not in (KPI_TYPE_INPUT, KPI_TYPE_CALCULATED):
        logger.warning("KPI %s has unknown type %r; treated as input", kpi_id, kpi_type)
        kpi_type = KPI_TYPE_INPUT
    formula = _text(_get(record, "formula")) or None
    if kpi_type == KPI_TYPE_CALCULATED and not formula:
        logger.warning("Calculated KPI %s has no formula; skipped", kpi_id)
        return None
    if kpi_type == KPI_TYPE_INPUT:
        formula = None

    form_tier = _text(_get(record, "formTier", "form_tier")).lower() or None
    if form_tier and form_tier not in FORM_TIERS:
        logger.warning("KPI %s has unknown form tier %r; left unclassified", kpi_id, form_tier)
        form_tier = None

    direction = _text(_get(record, "direction", default=DIRECTION_HIGHER)).lower()
    if direction not in (DIRECTION_HIGHER, DIRECTION_LOWER):
        direction = DIRECTION_HIGHER

    return KPIDefinition(
        id=kpi_id,
        name=_text(_get(record, "name")) or kpi_id,
        category=_text(_get(record, "category")).lower(),
        type=kpi_type,
        data_type=_text(_get(record, "dataType", "data_type", default="number")).lower(),
        formula=formula,
        sections=_sections(_get(record, "sections")),
        pillar=_int(_get(record, "pillar"), 0),
        form_tier=form_tier,
        tier_order=_int(_get(record, "tierOrder", "tier_order"), DEFAULT_TIER_ORDER),
        direction=direction,
        description=_text(_get(record, "description")),
    )


def load_kpi_definitions(records: dict[str, dict] | list[dict]) -> list[KPIDefinition]:
    """Accepts {id: record} or a list of records carrying an "id" key. First definition of an id wins."""
    if isinstance(records, dict):
        items = list(records.items())
    else:
        items = [(_text(r.get("id")), r) for r in records]
    kpis: list[KPIDefinition] = []
    seen: set[str] = set()
    for kpi_id, record in items:
        kpi = kpi_from_record(kpi_id, record)
        if kpi is None:
            continue
        if kpi.id in seen:
            logger.warning("Duplicate KPI id %s; later definition ignored", kpi.id)
            continue
        seen.add(kpi.id)
        kpis.append(kpi)
    return kpis


def rule_from_record(record: dict[str, Any]) -> ValidationRule | None:
    rule_id = _text(_get(record, "id"))
    formula = _text(_get(record, "formula"))
    if not rule_id or not formula:
        logger.warning("Discarding validation rule without id or formula: %r", record)
        return None
    severity = _text(_get(record, "severity", default=SEVERITY_WARNING)).lower()
    if severity not in SEVERITIES:
        logger.warning("Rule %s has unknown severity %r; using warning", rule_id, severity)
        severity = SEVERITY_WARNING
    tolerance = to_number(_get(record, "tolerance"))
    affected = _get(record, "affectedKPIs", "affected_kpis", default=[])
    if isinstance(affected, str):
        affected = [a.strip() for a in affected.split(",") if a.strip()]
    return ValidationRule(
        id=rule_id,
        type=_text(_get(record, "type")).lower(),
        formula=formula,
        tolerance=abs(tolerance) if tolerance is not None else 0.0,
        severity=severity,
        message=_text(_get(record, "message")),
        affected_kpis=tuple(_text(a) for a in affected if _text(a)),
    )


def load_validation_rules(records: list[dict]) -> list[ValidationRule]:
    rules = [rule_from_record(r) for r in records]
    return [r for r in rules if r is not None]


def benchmark_from_record(record: dict[str, Any]) -> BenchmarkRow | None:
    kpi_id = _text(_get(record, "kpiId", "kpi_id"))
    if not kpi_id:
        logger.warning("Skipping benchmark row without kpiId: %r", record)
        return None
    direction = _text(_get(record, "direction")).lower() or None
    if direction and direction not in (DIRECTION_HIGHER, DIRECTION_LOWER):
        logger.warning("Benchmark for %s has unknown direction %r; using KPI direction", kpi_id, direction)
        direction = None
    return BenchmarkRow(
        kpi_id=kpi_id,
        industry=_text(_get(record, "industry", default=WILDCARD)).lower() or WILDCARD,
        state=_text(_get(record, "state", default=WILDCARD)).lower() or WILDCARD,
        poor=to_number(_get(record, "poor")),
        average=to_number(_get(record, "average")),
        good=to_number(_get(record, "good")),
        excellent=to_number(_get(record, "excellent")),
        direction=direction,
        period=_text(_get(record, "period", default="annual")).lower(),
    )


def load_benchmarks(records: list[dict]) -> list[BenchmarkRow]:
    rows = [benchmark_from_record(r) for r in records]
    return [r for r in rows if r is not None]


def load_benchmarks_csv(path: str | Path) -> list[BenchmarkRow]:
    try:
        df = pd.read_csv(path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ConfigError(f"Cannot read benchmark CSV {path}: {e}") from e
    df.columns = df.columns.str.strip()
    return load_benchmarks(df.to_dict(orient="records"))


def client_from_record(record: dict[str, Any]) -> ClientRecord:
    inputs = _get(record, "inputs", default={})
    if not isinstance(inputs, dict):
        raise ConfigError(f"Client inputs must be an object of KPI values, got {type(inputs).__name__}")
    period_days = to_number(_get(record, "periodDays", "period_days"))
    return ClientRecord(
        client_id=_text(_get(record, "clientId", "client_id", "id")),
        inputs=dict(inputs),
        form_tier=_text(_get(record, "formTier", "form_tier")).lower() or None,
        period_days=period_days,
        industry=_text(_get(record, "industry", default=WILDCARD)).lower() or WILDCARD,
        state=_text(_get(record, "state", default=WILDCARD)).lower() or WILDCARD,
        data_period=_text(_get(record, "dataPeriod", "data_period", default="monthly")).lower(),
    )


def build_config(
    kpis: dict | list | None = None,
    rules: list | None = None,
    benchmarks: list | None = None,
) -> AnalysisConfig:
    """Missing tables fall back to the defaults in kpi_definitions."""
    return AnalysisConfig(
        kpis=tuple(load_kpi_definitions(KPI_DEFINITIONS if kpis is None else kpis)),
        rules=tuple(load_validation_rules(VALIDATION_RULES if rules is None else rules)),
        benchmarks=tuple(load_benchmarks(BENCHMARKS if benchmarks is None else benchmarks)),
    )


def default_config() -> AnalysisConfig:
    return build_config()


def read_json(path: str | Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read JSON file {path}: {e}") from e


def load_config_file(path: str | Path) -> AnalysisConfig:
    """JSON object with optional "kpis", "rules" and "benchmarks" keys."""
    data = read_json(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a JSON object")
    return build_config(data.get("kpis"), data.get("rules"), data.get("benchmarks"))


def load_config(settings: Settings) -> AnalysisConfig:
    config = load_config_file(settings.config_file) if settings.config_file else default_config()
    if settings.benchmarks_csv:
        config = AnalysisConfig(
            kpis=config.kpis,
            rules=config.rules,
            benchmarks=tuple(load_benchmarks_csv(settings.benchmarks_csv)),
        )
    logger.info(
        "Configuration loaded: %d KPIs, %d rules, %d benchmark rows",
        len(config.kpis), len(config.rules), len(config.benchmarks),
    )
    return config
