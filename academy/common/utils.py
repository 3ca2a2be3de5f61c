"""
Common utility functions for the academy backend.

This module provides small helpers shared by the quiz engine, mostly for
time handling, number formatting and lenient boolean parsing.
"""

import datetime
from typing import Any, Optional, Union


def utcnow() -> datetime.datetime:
    """
    Get the current UTC time as a naive datetime.

    All timestamps in the store are naive UTC, so comparisons between
    freshly computed times and loaded columns never mix aware and naive values.
    """
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def serialize_datetime(value: Optional[datetime.datetime]) -> Optional[str]:
    """Serialize a datetime to ISO format, passing None through."""
    if value is None:
        return None
    return value.isoformat()


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format a duration in seconds to a short human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2m 5s", "45s")
    """
    seconds = max(0, int(seconds))
    minutes, remainder = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {remainder}s"
    return f"{remainder}s"


def safe_divide(numerator: Union[int, float], denominator: Union[int, float], default: Union[int, float] = 0) -> float:
    """
    Safely divide two numbers, returning a default value if denominator is zero.

    Args:
        numerator: Number to divide
        denominator: Number to divide by
        default: Value to return if denominator is zero

    Returns:
        Result of division or default value
    """
    if not denominator:
        return default
    return numerator / denominator


def parse_strict_bool(value: Any) -> Optional[bool]:
    """
    Parse a value that must be recognizably boolean.

    Only real booleans and the exact strings "true"/"false" are accepted.

    Returns:
        The boolean value, or None if the value is not boolean-like
    """
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    return None
