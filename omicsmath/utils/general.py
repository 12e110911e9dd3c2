"""
General utility functions for the omicsmath package.

This module provides the value coercion helpers shared by the numeric
primitives, the engines and the sampling functions.
"""

import math
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional

import numpy as np


def to_number(value: Any, fallback: Optional[float] = None) -> Optional[float]:
    """
    Convert a value to a finite float.

    Args:
        value: Value to convert (number, numeric string, numpy scalar...)
        fallback: Value returned when conversion fails or is not finite

    Returns:
        Finite float, or fallback
    """
    if value is None:
        return fallback

    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback

    return n if math.isfinite(n) else fallback


def is_finite_number(value: Any) -> bool:
    """
    Check whether a value converts to a finite float.
    """
    return to_number(value) is not None


def clean_numbers(values: Any) -> List[float]:
    """
    Keep only the values that convert to finite floats, preserving order.

    Anything that is not an iterable of values (None, a string, a mapping)
    yields an empty list.

    Args:
        values: Sequence of raw values

    Returns:
        List of finite floats
    """
    if values is None or isinstance(values, (str, bytes, Mapping)):
        return []

    if isinstance(values, np.ndarray) and values.dtype.kind in 'fiub':
        flat = values.astype(float).ravel()
        return flat[np.isfinite(flat)].tolist()

    try:
        iterator: Iterable[Any] = iter(values)
    except TypeError:
        return []

    out = []
    for v in iterator:
        n = to_number(v)
        if n is not None:
            out.append(n)
    return out


def round_to(n: float, digits: int = 0) -> float:
    """
    Round a number to a specific number of decimal places.

    Args:
        n: Number to round
        digits: Number of decimal digits to keep

    Returns:
        Rounded number
    """
    return round(n, digits)


def make_rng(seed: Any = 0) -> np.random.Generator:
    """
    Build the seeded generator used wherever a seed is accepted.

    Non-integer seeds are coerced; negative seeds are folded into the
    unsigned 32-bit range so any integer is a valid seed.

    Args:
        seed: Seed value

    Returns:
        numpy Generator
    """
    n = to_number(seed, 0.0)
    return np.random.default_rng(int(n) & 0xFFFFFFFF)
