"""
Duration formatting and lenient parsing of user supplied numbers.
"""

import logging
import math
from typing import Any

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE


def format_duration(ms: int, compact: bool = False) -> str:
    """
    Format milliseconds as ``HH:MM:SS``.

    Args:
        ms: Duration in milliseconds. Negative values display as zero.
        compact: Drop the hour field when it is zero (``MM:SS``).

    Returns:
        The formatted string. Hours grow past two digits when needed.
    """
    total_seconds = max(0, int(ms)) // MS_PER_SECOND
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    if compact and hours == 0:
        return f"{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip()
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def parse_minutes(value: Any, minimum: int = 1) -> int:
    """
    Parse a whole number of units, clamping bad input to ``minimum``.

    Non-numeric, negative or below-minimum input never raises; it is
    replaced by ``minimum``.
    """
    try:
        number = int(_to_number(value))
    except (TypeError, ValueError):
        logger.debug('Clamping non-numeric input %r to %d', value, minimum)
        return minimum
    if number < minimum:
        logger.debug('Clamping %r to %d', value, minimum)
        return minimum
    return number


def parse_non_negative(value: Any) -> int:
    """Parse a whole number, clamping anything invalid or negative to 0."""
    return parse_minutes(value, minimum=0)
