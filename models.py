"""
Data model for the KPI diagnostic pipeline.

Plain records handed between stages:
- KPIDefinition / ValidationRule / BenchmarkRow / ClientRecord come from configuration
- ValidationIssue / ValidationResult / BenchmarkRating come out of the engines

Configuration records are frozen: the engines read them, never change them.
"""

from dataclasses import dataclass, field
from typing import Any


KPI_TYPE_INPUT = "input"
KPI_TYPE_CALCULATED = "calculated"

FORM_TIERS = ("onboarding", "detailed", "section_deep")
DEFAULT_TIER_ORDER = 999

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"

STATUS_ERRORS = "errors"
STATUS_WARNINGS = "warnings"
STATUS_VALID = "valid"

DIRECTION_HIGHER = "higher"
DIRECTION_LOWER = "lower"

WILDCARD = "all"

# Reporting period -> days; used when a client record has no explicit period_days
PERIOD_DAYS = {
    "weekly": 7,
    "monthly": 30,
    "quarterly": 91,
    "annual": 365,
}


@dataclass(frozen=True)
class KPIDefinition:
    id: str
    name: str = ""
    category: str = ""
    type: str = KPI_TYPE_INPUT  # "input" | "calculated"
    data_type: str = "number"  # "number" | "currency" | "percentage" | "integer"
    formula: str | None = None
    sections: frozenset[int] = frozenset()
    pillar: int = 0
    form_tier: str | None = None
    tier_order: int = DEFAULT_TIER_ORDER
    direction: str = DIRECTION_HIGHER
    description: str = ""

    @property
    def is_calculated(self) -> bool:
        return self.type == KPI_TYPE_CALCULATED


@dataclass(frozen=True)
class ValidationRule:
    id: str
    type: str  # "dependency" | "range" | "reconciliation" | "ratio"
    formula: str
    tolerance: float = 0.0
    severity: str = SEVERITY_WARNING
    message: str = ""
    affected_kpis: tuple[str, ...] = ()


@dataclass(frozen=True)
class BenchmarkRow:
    kpi_id: str
    industry: str = WILDCARD
    state: str = WILDCARD
    poor: float | None = None
    average: float | None = None
    good: float | None = None
    excellent: float | None = None
    # None: fall back to the KPI definition's direction
    direction: str | None = None
    period: str = "annual"


@dataclass
class ClientRecord:
    client_id: str = ""
    inputs: dict[str, Any] = field(default_factory=dict)
    form_tier: str | None = None
    period_days: float | None = None
    industry: str = WILDCARD
    state: str = WILDCARD
    data_period: str = "monthly"

    def resolved_period_days(self, default: float = 30) -> float:
        """Explicit period_days wins; otherwise derived from data_period."""
        if self.period_days is not None and self.period_days > 0:
            return float(self.period_days)
        return float(PERIOD_DAYS.get((self.data_period or "").lower(), default))


@dataclass(frozen=True)
class ValidationIssue:
    """One failing rule. Created once per validation run and never changed."""
    rule_id: str
    rule_type: str
    severity: str
    message: str
    expected: float | None = None
    actual: float | None = None
    variance: float | None = None
    affected_kpis: tuple[str, ...] = ()
    affected_sections: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_type": self.rule_type,
            "severity": self.severity,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
            "variance": self.variance,
            "affected_kpis": list(self.affected_kpis),
            "affected_sections": list(self.affected_sections),
        }


@dataclass
class ValidationResult:
    status: str  # "errors" | "warnings" | "valid"
    issues: list[ValidationIssue] = field(default_factory=list)

    def by_severity(self, severity: str) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "issues": [i.to_dict() for i in self.issues]}


@dataclass(frozen=True)
class BenchmarkRating:
    kpi_id: str
    value: float | None
    rating: str  # "excellent" | "good" | "average" | "poor" | "critical" | "no_data"
    comparison: str
    benchmark: BenchmarkRow | None = None
    # Thresholds after period normalization: poor, average, good, excellent
    thresholds: tuple[float | None, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kpi_id": self.kpi_id,
            "value": self.value,
            "rating": self.rating,
            "comparison": self.comparison,
            "industry": self.benchmark.industry if self.benchmark else None,
            "state": self.benchmark.state if self.benchmark else None,
            "thresholds": list(self.thresholds),
        }
