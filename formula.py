"""
Formula language for calculated KPIs.

A formula is colon-delimited: an operator token followed by operand tokens,
each operand being a KPI id or a numeric literal.

    PERCENTAGE:in_home_visits:total_leads
    PER_DAY:jobs_closed
    CUSTOM:schedule_capacity

Formulas are parsed once into a ParsedFormula and evaluated against a value map.
Every operator returns None (never raises) when an operand is empty, so missing
data propagates through the whole KPI graph as None.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import numpy as np

from formatting import is_empty, to_number
from settings import DEFAULT_HOURS_PER_DAY

logger = logging.getLogger(__name__)

DELIMITER = ":"
NUMERIC_LITERAL = re.compile(r"^-?\d+\.?\d*$")
# Operand tokens that are never KPI references
NON_REFERENCE_TOKENS = frozenset({"period", "days", "true", "false"})


class Operator(Enum):
    DIVIDE = "DIVIDE"
    MULTIPLY = "MULTIPLY"
    SUBTRACT = "SUBTRACT"
    ADD = "ADD"
    PERCENTAGE = "PERCENTAGE"
    PER_DAY = "PER_DAY"
    CAPACITY = "CAPACITY"
    CUSTOM = "CUSTOM"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ParsedFormula:
    operator: Operator
    operands: tuple[str, ...]
    raw: str
    # Operator token as written; differs from operator.value only for UNKNOWN
    token: str = ""


def is_numeric_literal(token: str) -> bool:
    return bool(NUMERIC_LITERAL.match(token.strip()))


def parse_formula(formula: str | None) -> ParsedFormula:
    raw = (formula or "").strip()
    parts = [p.strip() for p in raw.split(DELIMITER)] if raw else []
    if not parts or not parts[0]:
        return ParsedFormula(Operator.UNKNOWN, (), raw, "")
    token = parts[0].upper()
    try:
        operator = Operator(token)
    except ValueError:
        operator = Operator.UNKNOWN
    if operator is Operator.UNKNOWN:
        token = parts[0]
    operands = tuple(p for p in parts[1:] if p)
    return ParsedFormula(operator, operands, raw, token)


def extract_dependencies(formula: str | ParsedFormula | None) -> list[str]:
    """
    KPI ids a formula references, in order of appearance, without duplicates.
    CUSTOM formulas are opaque and report no dependencies.
    """
    parsed = formula if isinstance(formula, ParsedFormula) else parse_formula(formula)
    if parsed.operator is Operator.CUSTOM:
        return []
    deps: list[str] = []
    for token in parsed.operands:
        if is_numeric_literal(token) or token.lower() in NON_REFERENCE_TOKENS:
            continue
        if token not in deps:
            deps.append(token)
    return deps


def _operand(token: str, values: dict[str, Any]) -> float | None:
    if is_numeric_literal(token):
        return float(token)
    return to_number(values.get(token))


def _operands(parsed: ParsedFormula, values: dict[str, Any], count: int) -> list[float] | None:
    """First `count` operands resolved to numbers, or None if any is missing."""
    if len(parsed.operands) < count:
        return None
    resolved = [_operand(t, values) for t in parsed.operands[:count]]
    if any(is_empty(v) for v in resolved):
        return None
    return resolved


# -----------------------------------------------------------------------------
# Operators
# -----------------------------------------------------------------------------

def _divide(a: float, b: float) -> float | None:
    if b == 0:
        return None
    return a / b


def _eval_divide(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 2)
    return None if ops is None else _divide(*ops)


def _eval_multiply(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 2)
    return None if ops is None else ops[0] * ops[1]


def _eval_subtract(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 2)
    return None if ops is None else ops[0] - ops[1]


def _eval_add(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 2)
    return None if ops is None else ops[0] + ops[1]


def _eval_percentage(parsed, values, period_days, hours_per_day):
    ratio = _eval_divide(parsed, values, period_days, hours_per_day)
    return None if ratio is None else ratio * 100


def _eval_per_day(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 1)
    if ops is None or is_empty(period_days) or period_days <= 0:
        return None
    return ops[0] / period_days


def _eval_capacity(parsed, values, period_days, hours_per_day):
    ops = _operands(parsed, values, 3)
    return None if ops is None else ops[0] * ops[1] * ops[2]


def _eval_custom(parsed, values, period_days, hours_per_day):
    if not parsed.operands:
        logger.error("CUSTOM formula without a function name: %r", parsed.raw)
        return None
    name = parsed.operands[0]
    fn = CUSTOM_FUNCTIONS.get(_custom_key(name))
    if fn is None:
        logger.error("Unknown custom function %r in formula %r", name, parsed.raw)
        return None
    return fn(list(parsed.operands[1:]), values, period_days, hours_per_day)


# -----------------------------------------------------------------------------
# CUSTOM built-ins
# -----------------------------------------------------------------------------

def working_days(period_days: float) -> int:
    """5-day-week approximation of the working days in a period."""
    return int(round(period_days * 5 / 7))


def schedule_capacity(
    args: list[str],
    values: dict[str, Any],
    period_days: float | None,
    hours_per_day: float = DEFAULT_HOURS_PER_DAY,
) -> float | None:
    """techs * hours per day * working days. Args: [techs_kpi, hours_kpi], both optional."""
    techs_key = args[0] if args else "num_techs"
    hours_key = args[1] if len(args) > 1 else "hours_per_day"
    techs = _operand(techs_key, values)
    if is_empty(techs) or techs <= 0:
        return None
    if is_empty(period_days) or period_days <= 0:
        return None
    hours = _operand(hours_key, values)
    if is_empty(hours) or hours <= 0:
        hours = hours_per_day
    return techs * hours * working_days(period_days)


def _custom_key(name: str) -> str:
    return name.replace("_", "").lower()


CUSTOM_FUNCTIONS: dict[str, Callable[..., float | None]] = {
    _custom_key("schedule_capacity"): schedule_capacity,
}


_EVALUATORS = {
    Operator.DIVIDE: _eval_divide,
    Operator.MULTIPLY: _eval_multiply,
    Operator.SUBTRACT: _eval_subtract,
    Operator.ADD: _eval_add,
    Operator.PERCENTAGE: _eval_percentage,
    Operator.PER_DAY: _eval_per_day,
    Operator.CAPACITY: _eval_capacity,
    Operator.CUSTOM: _eval_custom,
}


def evaluate(
    formula: str | ParsedFormula | None,
    values: dict[str, Any],
    period_days: float | None,
    hours_per_day: float = DEFAULT_HOURS_PER_DAY,
) -> float | None:
    """
    Evaluate a formula against the current value map.
    Returns None for missing operands, division by zero, non-finite results and
    unknown operators (the latter logged as configuration errors).
    """
    parsed = formula if isinstance(formula, ParsedFormula) else parse_formula(formula)
    evaluator = _EVALUATORS.get(parsed.operator)
    if evaluator is None:
        logger.error("Unknown formula operator %r in %r", parsed.token, parsed.raw)
        return None
    result = evaluator(parsed, values, period_days, hours_per_day)
    if result is None or not np.isfinite(result):
        return None
    return float(result)
