"""
cron.py - Validate and describe five-field cron expressions.

    minute  hour  day-of-month  month  day-of-week
    0-59    0-23  1-31          1-12   0-7 (0 and 7 are Sunday)

Each field accepts ``*``, single values, ranges (``1-5``), lists (``1,15``)
and steps (``*/10``, ``0-30/5``). Month and weekday fields also accept
three-letter names (``JAN``, ``MON``).

Usage:
    from flowscript.parse.cron import validate_cron_expression, describe_cron_expression

    result = validate_cron_expression("0 9 * * 1-5")
    if not result.valid:
        print(result.error)
    describe_cron_expression("0 0 * * *")   # "Daily at midnight"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

_MONTH_NAMES = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]
_DAY_NAMES = ["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"]
_DAY_LABELS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class CronField:
    label: str
    minimum: int
    maximum: int
    names: Optional[Dict[str, int]] = None


CRON_FIELDS: Tuple[CronField, ...] = (
    CronField("minute", 0, 59),
    CronField("hour", 0, 23),
    CronField("day of month", 1, 31),
    CronField("month", 1, 12, {name: i + 1 for i, name in enumerate(_MONTH_NAMES)}),
    CronField("day of week", 0, 7, {name: i for i, name in enumerate(_DAY_NAMES)}),
)


@dataclass(frozen=True)
class CronValidation:
    valid: bool
    error: Optional[str] = None


def _parse_value(text: str, cron_field: CronField) -> Optional[int]:
    if cron_field.names and text.upper() in cron_field.names:
        return cron_field.names[text.upper()]
    if not text.isdigit():
        return None
    return int(text)


def _check_item(item: str, cron_field: CronField) -> Optional[str]:
    """Error message for one comma-separated item, or None when valid."""
    if not item:
        return f"Empty value in {cron_field.label} field"

    base, step = item, None
    if "/" in item:
        base, step = item.split("/", 1)
        if not step.isdigit() or int(step) < 1:
            return f"Invalid step '{step}' in {cron_field.label} field"

    if base == "*":
        return None

    bounds = base.split("-", 1) if "-" in base else [base]
    values: List[int] = []
    for part in bounds:
        value = _parse_value(part, cron_field)
        if value is None:
            return f"Invalid {cron_field.label} value '{part}'"
        if not cron_field.minimum <= value <= cron_field.maximum:
            return f"{cron_field.label.capitalize()} value {value} out of range ({cron_field.minimum}-{cron_field.maximum})"
        values.append(value)
    if len(values) == 2 and values[0] > values[1]:
        return f"Invalid {cron_field.label} range '{base}'"
    return None


def validate_cron_expression(expression: str) -> CronValidation:
    """Check that an expression is a well-formed five-field cron schedule."""
    if not isinstance(expression, str) or not expression.strip():
        return CronValidation(False, "Cron expression is empty")
    fields = expression.split()
    if len(fields) != len(CRON_FIELDS):
        return CronValidation(
            False, f"Cron expression must have exactly 5 fields (got {len(fields)})"
        )
    for value, cron_field in zip(fields, CRON_FIELDS):
        for item in value.split(","):
            error = _check_item(item, cron_field)
            if error:
                return CronValidation(False, error)
    return CronValidation(True)


def _time(hour: str, minute: str) -> str:
    return f"{int(hour):02d}:{int(minute):02d}"


def describe_cron_expression(expression: str) -> str:
    """Human description of common schedules; other expressions come back unchanged."""
    if not validate_cron_expression(expression).valid:
        return expression
    minute, hour, dom, month, dow = expression.split()

    if (minute, hour, dom, month, dow) == ("*", "*", "*", "*", "*"):
        return "Every minute"
    if minute.startswith("*/") and (hour, dom, month, dow) == ("*", "*", "*", "*"):
        return f"Every {minute[2:]} minutes"
    if minute.isdigit() and (hour, dom, month, dow) == ("*", "*", "*", "*"):
        return "Every hour" if int(minute) == 0 else f"Every hour at minute {int(minute)}"
    if minute.isdigit() and hour.startswith("*/") and (dom, month, dow) == ("*", "*", "*"):
        return f"Every {hour[2:]} hours"
    if not (minute.isdigit() and hour.isdigit()) or month != "*":
        return expression

    at = _time(hour, minute)
    if dom == "*" and dow == "*":
        if at == "00:00":
            return "Daily at midnight"
        if at == "12:00":
            return "Daily at noon"
        return f"Daily at {at}"
    if dom == "*" and dow in ("1-5", "MON-FRI"):
        return f"Weekdays at {at}"
    if dom == "*":
        day = _parse_value(dow, CRON_FIELDS[4])
        if day is not None:
            return f"Weekly on {_DAY_LABELS[day]} at {at}"
    if dow == "*" and dom.isdigit():
        return f"Monthly on day {int(dom)} at {at}"
    return expression
