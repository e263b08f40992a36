"""
Module: autoformat.boundary

Purpose:
    Monotonic boundary search. Bisection over a numeric range driven
    by a safe/unsafe predicate, used to refine a boundary once linear
    stepping has stopped converging.

Key Functions:
    - find_boundary(): Locate the safe/unsafe threshold within tolerance
    - narrow_bracket(): Apply one reading to a search bracket
    - max_probes(): Number of predicate calls find_boundary() makes

Algorithm:
    Precondition: ``is_safe`` is monotonic in the value.
    - prefer_max=True: safe for every v <= t, unsafe for every v > t;
      returns the largest safe value found (t within tolerance).
    - prefer_max=False: safe for every v >= t, unsafe for every v < t;
      returns the smallest safe value found.
    The bracket halves on every probe, so after
    ceil(log2((high - low) / tolerance)) probes it is no wider than the
    tolerance. The probe count is fixed in advance; the search never
    stops early and never loops.

    The endpoints themselves are never probed: ``low`` is assumed safe
    for prefer_max (``high`` for prefer_min). Callers that cannot assume
    this re-check the returned value.

Dependencies:
    - math (std)

Used By:
    - autoformat.controller: Binary-search promotion inside a phase
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Tuple

logger = logging.getLogger(__name__)


def max_probes(low: float, high: float, tolerance: float) -> int:
    """
    Number of predicate calls made by find_boundary().

    Args:
        low: Lower end of the range
        high: Upper end of the range
        tolerance: Target bracket width

    Returns:
        ceil(log2((high - low) / tolerance)), or 0 if the range is
        already within tolerance

    Example:
        >>> max_probes(8, 48, 0.5)
        7
        >>> max_probes(0.1, 1.0, 0.01)
        7
    """
    if tolerance <= 0:
        raise ValueError(f"tolerance must be positive: {tolerance}")
    ratio = (high - low) / tolerance
    if ratio <= 1:
        return 0
    return math.ceil(math.log2(ratio))


def narrow_bracket(
    low: float,
    high: float,
    mid: float,
    safe: bool,
    prefer_max: bool = True,
) -> Tuple[float, float]:
    """
    Shrink a bracket to the half that still contains the threshold.

    Shared by find_boundary() and the controller's stepwise search,
    which takes one reading per step() call.

    Args:
        low: Lower end of the bracket
        high: Upper end of the bracket
        mid: Point that was tested, strictly inside the bracket
        safe: Predicate result at mid
        prefer_max: Direction of the search (see find_boundary)

    Returns:
        New (low, high) bracket

    Example:
        >>> narrow_bracket(8, 48, 28, safe=False)
        (8, 28)
    """
    if safe == prefer_max:
        return mid, high
    return low, mid


def find_boundary(
    low: float,
    high: float,
    tolerance: float,
    is_safe: Callable[[float], bool],
    prefer_max: bool = True,
) -> float:
    """
    Find the safe/unsafe threshold of a monotonic predicate.

    Args:
        low: Lower end of the search range
        high: Upper end of the search range
        tolerance: Precision of the result
        is_safe: Monotonic predicate (may call an external oracle)
        prefer_max: Search for the largest safe value (True) or the
            smallest safe value (False)

    Returns:
        Safe end of the final bracket: within tolerance of the threshold
        and inside [low, high]

    Raises:
        ValueError: If low > high or tolerance <= 0

    Example:
        >>> find_boundary(8, 48, 0.5, lambda v: v <= 22)
        21.75
    """
    if low > high:
        raise ValueError(f"low ({low}) must not exceed high ({high})")

    probes = max_probes(low, high, tolerance)
    lo, hi = low, high

    for _ in range(probes):
        mid = (lo + hi) / 2
        lo, hi = narrow_bracket(lo, hi, mid, is_safe(mid), prefer_max)

    result = lo if prefer_max else hi
    logger.debug(
        f"Boundary search [{low}, {high}] tol={tolerance} "
        f"prefer_max={prefer_max}: {probes} probes -> {result}"
    )
    return result
