"""
Effort unit conversion.

Effort is stored in staff weeks everywhere. These helpers convert to and
from days and hours for input and display. Conversions are plain linear
multiplications; rounding only ever happens in ``format_effort``.
"""

DAYS_PER_WEEK = 5
HOURS_PER_DAY = 8


def weeks_to_days(weeks: float, days_per_week: float = DAYS_PER_WEEK) -> float:
    return weeks * days_per_week


def days_to_weeks(days: float, days_per_week: float = DAYS_PER_WEEK) -> float:
    return days / days_per_week


def weeks_to_hours(weeks: float, days_per_week: float = DAYS_PER_WEEK) -> float:
    return weeks * days_per_week * HOURS_PER_DAY


def hours_to_weeks(hours: float, days_per_week: float = DAYS_PER_WEEK) -> float:
    return hours / (days_per_week * HOURS_PER_DAY)


def days_to_hours(days: float) -> float:
    return days * HOURS_PER_DAY


def hours_to_days(hours: float) -> float:
    return hours / HOURS_PER_DAY


_UNIT_SUFFIX = {"weeks": ("w", 2), "days": ("d", 1), "hours": ("h", 1)}


def format_effort(value, unit: str = "weeks") -> str:
    """Format a week value for display in the requested unit.

    >>> format_effort(5, "weeks")
    '5.00w'
    >>> format_effort(5, "days")
    '25.0d'
    """
    if unit not in _UNIT_SUFFIX:
        raise ValueError(f"Unknown effort unit: {unit}")
    weeks = float(value or 0)
    converted = {
        "weeks": weeks,
        "days": weeks_to_days(weeks),
        "hours": weeks_to_hours(weeks),
    }[unit]
    suffix, places = _UNIT_SUFFIX[unit]
    return f"{converted:.{places}f}{suffix}"
