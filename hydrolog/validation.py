"""
Input Validation for Garden Readings
====================================

Pure functions that check manual form input and sensor feed values.
Validation failures are reported as messages keyed by field, for display
next to the offending input; they never raise.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .fields import STEMS, STEM_COUNTERS, stem_field, total_field


@dataclass(frozen=True)
class FieldRule:
    """Acceptable range for one numeric form field."""

    minimum: float
    maximum: float
    too_low: str
    too_high: str
    integer: bool = False


def _range_rule(label: str, lo: float, hi: float, unit: str = "") -> FieldRule:
    message = f"{label} must be between {lo:g} and {hi:g}{unit}"
    return FieldRule(lo, hi, message, message)


HEIGHT_RULE = FieldRule(0, 200, "Height cannot be negative", "Height cannot exceed 200cm")
COUNT_RULE = FieldRule(0, 999, "Count cannot be negative", "Count cannot exceed 999", integer=True)

FIELD_RULES: Dict[str, FieldRule] = {
    "temperature": _range_rule("Temperature", -10, 60, "°C"),
    "humidity": _range_rule("Humidity", 0, 100, "%"),
    "light": _range_rule("Light intensity", 0, 200000, " lux"),
    "ph": _range_rule("pH", 0, 14),
    "ec": _range_rule("EC", 0, 10, " mS/cm"),
    "water_temp": _range_rule("Water temperature", -10, 60, "°C"),
}
for _stem in STEMS:
    FIELD_RULES[stem_field(_stem, "height")] = HEIGHT_RULE
    for _counter in STEM_COUNTERS + ("leaves",):
        FIELD_RULES[stem_field(_stem, _counter)] = COUNT_RULE
for _counter in STEM_COUNTERS:
    FIELD_RULES[total_field(_counter)] = COUNT_RULE

# Plausible physical limits for automatic sensor values
FEED_RANGES: Dict[str, Tuple[float, float]] = {
    "temperature": (-40.0, 80.0),
    "humidity": (0.0, 100.0),
    "light": (0.0, 200000.0),
    "ph": (0.0, 14.0),
    "ec": (0.0, 20.0),
    "water_temp": (-10.0, 60.0),
}


def validate_input(field: str, raw: str) -> Tuple[bool, Optional[str]]:
    """Check one form value.

    Args:
        field: Field name
        raw: Text as typed by the user

    Returns:
        (is_valid, error message or None)
    """
    try:
        value = float(str(raw).strip())
    except ValueError:
        return False, "Please enter a valid number"

    if math.isnan(value) or math.isinf(value):
        return False, "Please enter a valid number"

    rule = FIELD_RULES.get(field)
    if rule is None:
        return True, None

    if rule.integer and not value.is_integer():
        return False, "Must be a whole number"
    if value < rule.minimum:
        return False, rule.too_low
    if value > rule.maximum:
        return False, rule.too_high
    return True, None


def parse_form(raw: Mapping[str, str], fields: Iterable[str]) -> Tuple[Dict[str, float], Dict[str, str]]:
    """Validate and convert the numeric inputs of a form.

    Blank inputs are left out. Callers must not record anything when the
    error dict is non-empty.

    Args:
        raw: Form inputs keyed by field name
        fields: Fields the form is allowed to set

    Returns:
        (values, errors) keyed by field name
    """
    values: Dict[str, float] = {}
    errors: Dict[str, str] = {}

    for name in fields:
        text = raw.get(name)
        if text is None or str(text).strip() == "":
            continue
        ok, error = validate_input(name, text)
        if ok:
            values[name] = float(str(text).strip())
        else:
            errors[name] = error or "Invalid input"

    return values, errors


def validate_sensor_range(value, lo: float, hi: float) -> bool:
    """True for a finite number within [lo, hi]; None, bools and strings are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and lo <= value <= hi
