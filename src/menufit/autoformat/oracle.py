"""
Module: autoformat.oracle

Purpose:
    Overflow oracle interface and helpers for oracle implementers.
    An oracle answers whether content overflows its container at a
    candidate LayoutParameters. It is supplied by the rendering layer.

Key Classes:
    - OverflowOracle: Callable type of an oracle
    - CachedOracle: Short-lived memo of oracle readings

Key Functions:
    - is_overflow_significant(): Scroll-extent check with a noise band

Dependencies:
    - time (std)
    - autoformat.models: LayoutParameters

Used By:
    - autoformat.controller: Boundary search probes, solve()
    - autoformat.metrics: ColumnFitOracle
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Tuple

from .config import DEFAULT_OVERFLOW_TOLERANCE_PX
from .models import LayoutParameters

logger = logging.getLogger(__name__)

# True means the content overflows at the candidate parameters
OverflowOracle = Callable[[LayoutParameters], bool]

DEFAULT_CACHE_TTL_SECONDS = 0.1


def is_overflow_significant(
    scroll_extent: float,
    client_extent: float,
    tolerance: float = DEFAULT_OVERFLOW_TOLERANCE_PX,
) -> bool:
    """
    Decide whether measured overflow is more than sub-pixel noise.

    Args:
        scroll_extent: Full content extent (e.g. scroll height)
        client_extent: Visible container extent
        tolerance: Overflow below this many pixels is ignored

    Returns:
        True if content exceeds the container by more than tolerance

    Example:
        >>> is_overflow_significant(1003, 1000)
        False
        >>> is_overflow_significant(1010, 1000)
        True
    """
    return scroll_extent > client_extent + tolerance


class CachedOracle:
    """
    Memoising wrapper around an expensive oracle.

    Readings are cached per parameter set for ``ttl_seconds``. Call
    clear() whenever the content changes; a stale reading for new
    content is worse than a repeated measurement.

    Attributes:
        oracle: Wrapped oracle
        ttl_seconds: Lifetime of a cached reading
        hits: Number of readings served from the cache
        misses: Number of readings delegated to the oracle

    Example:
        >>> cached = CachedOracle(measure, ttl_seconds=0.1)
        >>> cached(params)  # measures
        >>> cached(params)  # served from cache
    """

    def __init__(
        self,
        oracle: OverflowOracle,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative: {ttl_seconds}")
        self.oracle = oracle
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[float, float, int], Tuple[bool, float]] = {}
        self.hits = 0
        self.misses = 0

    def __call__(self, params: LayoutParameters) -> bool:
        key = (params.font_size_px, params.line_spacing, params.columns)
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and now - entry[1] < self.ttl_seconds:
            self.hits += 1
            return entry[0]

        overflow = bool(self.oracle(params))
        self._entries[key] = (overflow, now)
        self.misses += 1
        return overflow

    def clear(self) -> None:
        """Drop all cached readings."""
        if self._entries:
            logger.debug(f"Clearing {len(self._entries)} cached overflow readings")
        self._entries.clear()
