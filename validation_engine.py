"""
Rule-based consistency checks over a calculated value map.

Rule formulas are operator-prefixed and colon-delimited:

    REQUIRES:dependent:parent                  (type "dependency")
    RANGE:kpi:min:max                          (type "range"; either bound may be blank)
    RECONCILE:<infix expression>:target        (type "reconciliation")
    GREATER:a:b  /  EQUALS:a:b                 (type "ratio")

POLICY:
- Rules run by type priority (dependency, range, reconciliation, ratio) so
  structural problems surface before arithmetic on incomplete data.
- A rule only fails on present-but-inconsistent data. Missing values, or a
  formula that does not fit the rule's type, count as passed.
- A rule that raises becomes an error-severity issue; the remaining rules still run.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from arithmetic import evaluate_expression
from formatting import (
    format_accounting,
    format_number,
    format_variance,
    is_empty,
    render_message,
    to_number,
)
from formula import is_numeric_literal
from models import (
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    STATUS_ERRORS,
    STATUS_VALID,
    STATUS_WARNINGS,
    KPIDefinition,
    ValidationIssue,
    ValidationResult,
    ValidationRule,
)

logger = logging.getLogger(__name__)

RULE_TYPE_ORDER = ("dependency", "range", "reconciliation", "ratio")
RULE_OPERATORS = {
    "dependency": ("REQUIRES",),
    "range": ("RANGE",),
    "reconciliation": ("RECONCILE",),
    "ratio": ("GREATER", "EQUALS"),
}
# Whole tokens only: "2a" or "a.5" must not splice a value into a neighbouring number
IDENTIFIER = re.compile(r"(?<![\w.])[A-Za-z_][A-Za-z0-9_]*(?![\w.])")
# Float noise allowance when comparing a variance with its tolerance
VARIANCE_EPSILON = 1e-9


@dataclass(frozen=True)
class RuleOutcome:
    passed: bool
    expected: float | None = None
    actual: float | None = None
    variance: float | None = None
    # False for range/greater, where variance is a distance in KPI units
    variance_is_fraction: bool = True


PASSED = RuleOutcome(passed=True)


def sort_rules(rules: list[ValidationRule]) -> list[ValidationRule]:
    """Stable sort by type priority; unknown types run last."""
    def priority(rule: ValidationRule) -> int:
        rule_type = (rule.type or "").lower()
        return RULE_TYPE_ORDER.index(rule_type) if rule_type in RULE_TYPE_ORDER else len(RULE_TYPE_ORDER)
    return sorted(rules, key=priority)


def split_rule_formula(formula: str) -> tuple[str, list[str]]:
    """Operator token (upper-cased) and its arguments. RECONCILE keeps colons inside its expression."""
    parts = [p.strip() for p in (formula or "").split(":")]
    operator = parts[0].upper() if parts else ""
    args = parts[1:]
    if operator == "RECONCILE" and len(args) > 2:
        args = [":".join(args[:-1]), args[-1]]
    return operator, args


def relative_variance(expected: float, actual: float) -> float:
    """|expected - actual| / |expected|; when expected is 0 the variance is 0 or 1 (100%)."""
    if expected != 0:
        return abs(expected - actual) / abs(expected)
    return 0.0 if actual == 0 else 1.0


def _value(values: dict[str, Any], token: str) -> float | None:
    if is_numeric_literal(token):
        return float(token)
    return to_number(values.get(token))


def _render_number(value: float) -> str:
    text = np.format_float_positional(value, trim="-")
    return f"({text})" if value < 0 else text


def substitute_identifiers(expression: str, values: dict[str, Any]) -> str | None:
    """Replace every KPI id in an expression with its value; None if any value is missing."""
    missing: list[str] = []

    def replace(m: re.Match) -> str:
        value = to_number(values.get(m.group(0)))
        if value is None:
            missing.append(m.group(0))
            return "0"
        return _render_number(value)

    substituted = IDENTIFIER.sub(replace, expression)
    if missing:
        return None
    return substituted


def referenced_kpis(rule: ValidationRule) -> list[str]:
    operator, args = split_rule_formula(rule.formula)
    tokens = []
    for arg in args:
        if operator == "RECONCILE":
            tokens.extend(IDENTIFIER.findall(arg))
        elif arg and not is_numeric_literal(arg):
            tokens.append(arg)
    if operator == "RANGE":
        tokens = tokens[:1]
    seen: list[str] = []
    for t in tokens:
        if t not in seen:
            seen.append(t)
    return seen


# -----------------------------------------------------------------------------
# Rule checks
# -----------------------------------------------------------------------------

def check_requires(args: list[str], values: dict[str, Any], rule: ValidationRule) -> RuleOutcome:
    """
    Fails only when the dependent has a value and its parent has none.
    Magnitudes are not compared: a dependent may legitimately exceed its
    parent (e.g. jobs carried over from a previous period).
    """
    if len(args) < 2:
        return PASSED
    dependent, parent = _value(values, args[0]), _value(values, args[1])
    if dependent is not None and parent is None:
        return RuleOutcome(passed=False, actual=dependent)
    return PASSED


def _bound(token: str) -> float | None:
    if not token:
        return None
    if not is_numeric_literal(token):
        raise ValueError(f"malformed range bound {token!r}")
    return float(token)


def check_range(args: list[str], values: dict[str, Any], rule: ValidationRule) -> RuleOutcome:
    if len(args) < 3:
        return PASSED
    try:
        low, high = _bound(args[1]), _bound(args[2])
    except ValueError as e:
        logger.warning("Range rule %s skipped: %s", rule.id, e)
        return PASSED
    if low is not None and high is not None and low > high:
        logger.warning("Range rule %s skipped: min %s > max %s", rule.id, low, high)
        return PASSED
    value = _value(values, args[0])
    if value is None:
        return PASSED
    if low is not None and value < low:
        return RuleOutcome(False, expected=low, actual=value, variance=low - value, variance_is_fraction=False)
    if high is not None and value > high:
        return RuleOutcome(False, expected=high, actual=value, variance=value - high, variance_is_fraction=False)
    return PASSED


def check_reconcile(args: list[str], values: dict[str, Any], rule: ValidationRule) -> RuleOutcome:
    if len(args) != 2 or not args[0] or not args[1]:
        return PASSED
    expression, target = args
    actual = _value(values, target)
    if actual is None:
        return PASSED
    substituted = substitute_identifiers(expression, values)
    if substituted is None:
        return PASSED
    try:
        expected = evaluate_expression(substituted)
    except ZeroDivisionError:
        return PASSED
    variance = relative_variance(expected, actual)
    passed = variance <= rule.tolerance + VARIANCE_EPSILON
    return RuleOutcome(passed, expected=expected, actual=actual, variance=variance)


def check_greater(args: list[str], values: dict[str, Any], rule: ValidationRule) -> RuleOutcome:
    if len(args) < 2:
        return PASSED
    a, b = _value(values, args[0]), _value(values, args[1])
    if a is None or b is None:
        return PASSED
    if a > b:
        return PASSED
    return RuleOutcome(False, expected=b, actual=a, variance=b - a, variance_is_fraction=False)


def check_equals(args: list[str], values: dict[str, Any], rule: ValidationRule) -> RuleOutcome:
    if len(args) < 2:
        return PASSED
    expected, actual = _value(values, args[0]), _value(values, args[1])
    if expected is None or actual is None:
        return PASSED
    variance = relative_variance(expected, actual)
    passed = variance <= rule.tolerance + VARIANCE_EPSILON
    return RuleOutcome(passed, expected=expected, actual=actual, variance=variance)


RULE_CHECKS: dict[str, Callable[[list[str], dict[str, Any], ValidationRule], RuleOutcome]] = {
    "REQUIRES": check_requires,
    "RANGE": check_range,
    "RECONCILE": check_reconcile,
    "GREATER": check_greater,
    "EQUALS": check_equals,
}


def overall_status(issues: list[ValidationIssue]) -> str:
    severities = {i.severity for i in issues}
    if SEVERITY_ERROR in severities:
        return STATUS_ERRORS
    if SEVERITY_WARNING in severities:
        return STATUS_WARNINGS
    return STATUS_VALID


class ValidationEngine:
    def __init__(self, kpi_definitions: list[KPIDefinition] | None = None):
        self.sections_by_kpi = {k.id: k.sections for k in (kpi_definitions or [])}

    def affected_sections(self, kpi_ids: list[str] | tuple[str, ...]) -> tuple[int, ...]:
        sections: set[int] = set()
        for kpi_id in kpi_ids:
            sections.update(self.sections_by_kpi.get(kpi_id, ()))
        return tuple(sorted(sections))

    def run_rule(self, rule: ValidationRule, values: dict[str, Any]) -> RuleOutcome:
        rule_type = (rule.type or "").lower()
        allowed = RULE_OPERATORS.get(rule_type)
        if allowed is None:
            logger.warning("Rule %s has unknown type %r; skipped", rule.id, rule.type)
            return PASSED
        operator, args = split_rule_formula(rule.formula)
        if operator not in allowed:
            logger.debug("Rule %s: operator %s does not fit type %s; skipped", rule.id, operator, rule_type)
            return PASSED
        return RULE_CHECKS[operator](args, values, rule)

    def _issue(self, rule: ValidationRule, outcome: RuleOutcome) -> ValidationIssue:
        affected = tuple(rule.affected_kpis) or tuple(referenced_kpis(rule))
        operator, _ = split_rule_formula(rule.formula)
        fmt_expected = format_accounting if operator == "RANGE" else format_number
        if outcome.variance_is_fraction:
            variance_text = format_variance(outcome.variance)
        else:
            variance_text = format_number(outcome.variance)
        message = render_message(
            rule.message or f"Validation rule {rule.id} failed",
            expected=fmt_expected(outcome.expected),
            actual=format_number(outcome.actual),
            variance=variance_text,
        )
        return ValidationIssue(
            rule_id=rule.id,
            rule_type=rule.type,
            severity=rule.severity,
            message=message,
            expected=outcome.expected,
            actual=outcome.actual,
            variance=None if is_empty(outcome.variance) else outcome.variance,
            affected_kpis=affected,
            affected_sections=self.affected_sections(affected),
        )

    def _error_issue(self, rule: ValidationRule, error: Exception) -> ValidationIssue:
        affected = tuple(rule.affected_kpis)
        return ValidationIssue(
            rule_id=rule.id,
            rule_type=rule.type,
            severity=SEVERITY_ERROR,
            message=f"Validation rule {rule.id} could not be evaluated: {error}",
            affected_kpis=affected,
            affected_sections=self.affected_sections(affected),
        )

    def validate_all(self, values: dict[str, Any], rules: list[ValidationRule]) -> ValidationResult:
        issues: list[ValidationIssue] = []
        for rule in sort_rules(rules):
            try:
                outcome = self.run_rule(rule, values)
            except Exception as e:
                logger.exception("Validation rule %s raised", rule.id)
                issues.append(self._error_issue(rule, e))
                continue
            if not outcome.passed:
                issues.append(self._issue(rule, outcome))

        status = overall_status(issues)
        logger.info("Validation finished: %s (%d issues from %d rules)", status, len(issues), len(rules))
        return ValidationResult(status=status, issues=issues)


def validate_all(
    values: dict[str, Any],
    rules: list[ValidationRule],
    kpi_definitions: list[KPIDefinition] | None = None,
) -> ValidationResult:
    return ValidationEngine(kpi_definitions).validate_all(values, rules)
