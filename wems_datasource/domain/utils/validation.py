"""
Validation utilities for numeric data.

Provides utilities for validating float values ahead of JSON serialization,
which cannot represent infinity or NaN.
"""

import math
from typing import Iterable, List, Optional


def is_valid_float(value: float) -> bool:
    """
    Check if a float value is finite and JSON-serializable.

    Parameters
    ----------
    value : float
        The float value to check

    Returns
    -------
    bool
        True if the value is finite (not inf, -inf, or nan), False otherwise

    Examples
    --------
    >>> is_valid_float(42.5)
    True
    >>> is_valid_float(float('inf'))
    False
    >>> is_valid_float(float('nan'))
    False
    """
    return math.isfinite(value)


def json_safe_floats(values: Iterable[float]) -> List[Optional[float]]:
    """
    Replace non-finite floats with ``None``, keeping positions.

    Examples
    --------
    >>> json_safe_floats([1.0, float('nan'), 3.0])
    [1.0, None, 3.0]
    """
    return [value if is_valid_float(value) else None for value in values]
