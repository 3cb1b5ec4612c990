"""
Locale-free number formatting shared by validation messages, benchmark comparisons and reports.

Rule: |value| >= 1000 is rounded to an integer with "," thousands separators,
anything smaller keeps at most 2 decimals (trailing zeros dropped).
"""

from typing import Any

import numpy as np
import pandas as pd

NOT_AVAILABLE = "N/A"


def is_empty(value: Any) -> bool:
    """None, NaN and pandas NA all mean "not available"."""
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_number(value: Any) -> float | None:
    """Coerce a raw form value to float; anything unusable becomes None."""
    if is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if not s:
            return None
        try:
            number = float(s)
        except ValueError:
            return None
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
    if not np.isfinite(number):
        return None
    return number


def format_number(value: float | None) -> str:
    if is_empty(value):
        return NOT_AVAILABLE
    # Rounded first so 999.999 lands in the thousands branch as "1,000"
    value = round(float(value), 2)
    if abs(value) >= 1000:
        return f"{int(round(value)):,}"
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_accounting(value: float | None) -> str:
    """Negative numbers in parentheses: -25 -> (25)."""
    if is_empty(value):
        return NOT_AVAILABLE
    if value < 0:
        return f"({format_number(-value)})"
    return format_number(value)


def format_variance(fraction: float | None) -> str:
    """Fractional variance rendered as a percentage with one decimal: 0.05 -> 5.0%."""
    if is_empty(fraction):
        return NOT_AVAILABLE
    return f"{fraction * 100:.1f}%"


def format_value(value: float | None, data_type: str = "number") -> str:
    """Display form of a KPI value according to its data type."""
    if is_empty(value):
        return NOT_AVAILABLE
    if data_type == "percentage":
        return f"{format_number(value)}%"
    if data_type == "currency":
        if value < 0:
            return f"-${format_number(-value)}"
        return f"${format_number(value)}"
    if data_type == "integer":
        return f"{int(round(value)):,}"
    return format_number(value)


def render_message(
    template: str,
    expected: str = NOT_AVAILABLE,
    actual: str = NOT_AVAILABLE,
    variance: str = NOT_AVAILABLE,
) -> str:
    """
    Substitute {expected}, {actual} and {variance} into a message template.
    Plain replacement: other braces in the template are left untouched.
    """
    return (
        (template or "")
        .replace("{expected}", expected)
        .replace("{actual}", actual)
        .replace("{variance}", variance)
    )
