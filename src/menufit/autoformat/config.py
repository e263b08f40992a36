"""
Module: autoformat.config

Purpose:
    Configuration for the auto-formatter. Static bounds and tolerances
    for the two tunable parameters, density tier tables and run limits.

Key Classes:
    - ParameterRange: Bounds, tolerance and precision for one parameter
    - RangeConfig: Font size and line spacing ranges
    - DensityTiers: Density score thresholds and step tables
    - OptimizerConfig: Complete run configuration

Dependencies:
    - dataclasses (std)
    - math (std)

Used By:
    - autoformat.density: Step size lookup
    - autoformat.controller: State machine limits
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


# Slider ranges of the formatting panel
DEFAULT_FONT_SIZE_PX = 14.0
MIN_FONT_SIZE_PX = 8.0
MAX_FONT_SIZE_PX = 48.0
DEFAULT_LINE_SPACING = 0.3
MIN_LINE_SPACING = 0.1
MAX_LINE_SPACING = 1.0

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_BINARY_SEARCH_AFTER = 3
DEFAULT_OVERFLOW_TOLERANCE_PX = 5.0

# Each group header takes about 1.5 items worth of space
GROUP_WEIGHT = 1.5


@dataclass(frozen=True)
class ParameterRange:
    """
    Range for one tunable parameter (immutable).

    Attributes:
        minimum: Floor of the parameter
        maximum: Ceiling of the parameter
        default: Value used for a fresh layout
        tolerance: Precision of boundary searches
        decimals: Digits kept when proposing values

    Example:
        >>> r = ParameterRange(minimum=8, maximum=48, default=14, tolerance=0.5, decimals=1)
        >>> r.clamp(50)
        48
    """

    minimum: float
    maximum: float
    default: float
    tolerance: float
    decimals: int

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        if self.maximum <= self.minimum:
            raise ValueError(
                f"maximum ({self.maximum}) must be greater than minimum ({self.minimum})"
            )
        if not self.minimum <= self.default <= self.maximum:
            raise ValueError(
                f"default must lie in [{self.minimum}, {self.maximum}]: {self.default}"
            )
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive: {self.tolerance}")
        if self.decimals < 0:
            raise ValueError(f"decimals must be non-negative: {self.decimals}")

    @property
    def span(self) -> float:
        """Width of the range."""
        return self.maximum - self.minimum

    def contains(self, value: float) -> bool:
        """Check if value lies inside the range (within rounding noise)."""
        eps = 10 ** -(self.decimals + 3)
        return self.minimum - eps <= value <= self.maximum + eps

    def clamp(self, value: float) -> float:
        """Clamp value into [minimum, maximum]."""
        return max(self.minimum, min(self.maximum, value))

    def quantize(self, value: float) -> float:
        """Round value to the configured precision."""
        return round(value, self.decimals)

    def quantize_down(self, value: float) -> float:
        """Round value down to the configured precision (never crosses upward)."""
        scale = 10 ** self.decimals
        # 1e-9 absorbs float noise such as 22.8 * 10 == 227.99999999999997
        return math.floor(value * scale + 1e-9) / scale

    def at_floor(self, value: float) -> bool:
        """True when value is at (or below) the minimum."""
        return self.quantize(value) <= self.minimum

    def above_ceiling(self, value: float) -> bool:
        """True when value exceeds the maximum."""
        return self.quantize(value) > self.maximum

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minimum": self.minimum,
            "maximum": self.maximum,
            "default": self.default,
            "tolerance": self.tolerance,
            "decimals": self.decimals,
        }


FONT_SIZE_RANGE = ParameterRange(
    minimum=MIN_FONT_SIZE_PX,
    maximum=MAX_FONT_SIZE_PX,
    default=DEFAULT_FONT_SIZE_PX,
    tolerance=0.5,
    decimals=1,
)

LINE_SPACING_RANGE = ParameterRange(
    minimum=MIN_LINE_SPACING,
    maximum=MAX_LINE_SPACING,
    default=DEFAULT_LINE_SPACING,
    tolerance=0.01,
    decimals=2,
)


@dataclass(frozen=True)
class RangeConfig:
    """
    Bounds for both tunable parameters (immutable).

    Attributes:
        font_size: Range for the base font size in px
        line_spacing: Range for the line-spacing multiplier
    """

    font_size: ParameterRange = FONT_SIZE_RANGE
    line_spacing: ParameterRange = LINE_SPACING_RANGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "font_size": self.font_size.to_dict(),
            "line_spacing": self.line_spacing.to_dict(),
        }


@dataclass(frozen=True)
class DensityTiers:
    """
    Density thresholds and per-tier step sizes (immutable).

    Tier ``i`` covers scores in ``[thresholds[i-1], thresholds[i])``;
    the last tier is everything at or above the last threshold.
    Growth and shrink tables are deliberately not mirror images.

    Attributes:
        thresholds: Ascending tier upper bounds (exclusive)
        font_grow: Font size growth step per tier (px)
        font_shrink: Font size shrink step per tier (px)
        line_grow: Line spacing growth step per tier
        line_shrink: Line spacing shrink step per tier

    Invariants:
        - len(step table) == len(thresholds) + 1
        - thresholds strictly ascending
    """

    thresholds: Tuple[float, ...] = (5.0, 15.0, 25.0)
    font_grow: Tuple[float, ...] = (4.0, 2.0, 1.0, 0.5)
    font_shrink: Tuple[float, ...] = (0.5, 1.0, 1.0, 2.0)
    line_grow: Tuple[float, ...] = (0.20, 0.10, 0.05, 0.02)
    line_shrink: Tuple[float, ...] = (0.05, 0.05, 0.10, 0.15)

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        if list(self.thresholds) != sorted(set(self.thresholds)):
            raise ValueError(f"thresholds must be strictly ascending: {self.thresholds}")
        expected = len(self.thresholds) + 1
        for name in ("font_grow", "font_shrink", "line_grow", "line_shrink"):
            table = getattr(self, name)
            if len(table) != expected:
                raise ValueError(f"{name} needs {expected} entries, got {len(table)}")
            if any(step <= 0 for step in table):
                raise ValueError(f"{name} steps must be positive: {table}")

    def tier(self, score: float) -> int:
        """Index of the tier containing score (boundaries are inclusive-low)."""
        for index, threshold in enumerate(self.thresholds):
            if score < threshold:
                return index
        return len(self.thresholds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thresholds": list(self.thresholds),
            "font_grow": list(self.font_grow),
            "font_shrink": list(self.font_shrink),
            "line_grow": list(self.line_grow),
            "line_shrink": list(self.line_shrink),
        }


@dataclass(frozen=True)
class OptimizerConfig:
    """
    Configuration for one auto-format run (immutable).

    Attributes:
        ranges: Parameter bounds
        tiers: Density step tables
        max_iterations: Cap on step() calls per run
        binary_search_after: Linear proposals in a phase before switching
            to boundary search
        overflow_tolerance_px: Overflow band ignored by measuring oracles

    Example:
        >>> config = OptimizerConfig(max_iterations=20)
        >>> config.ranges.font_size.maximum
        48.0
    """

    ranges: RangeConfig = field(default_factory=RangeConfig)
    tiers: DensityTiers = field(default_factory=DensityTiers)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    binary_search_after: int = DEFAULT_BINARY_SEARCH_AFTER
    overflow_tolerance_px: float = DEFAULT_OVERFLOW_TOLERANCE_PX

    def __post_init__(self) -> None:
        """Validate configuration on construction."""
        if self.max_iterations <= 0:
            raise ValueError(f"max_iterations must be positive: {self.max_iterations}")
        if self.binary_search_after < 0:
            raise ValueError(
                f"binary_search_after must be non-negative: {self.binary_search_after}"
            )
        if self.overflow_tolerance_px < 0:
            raise ValueError(
                f"overflow_tolerance_px must be non-negative: {self.overflow_tolerance_px}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as a JSON-compatible dictionary."""
        return {
            "ranges": self.ranges.to_dict(),
            "tiers": self.tiers.to_dict(),
            "max_iterations": self.max_iterations,
            "binary_search_after": self.binary_search_after,
            "overflow_tolerance_px": self.overflow_tolerance_px,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizerConfig":
        """
        Build a configuration from a (possibly partial) dictionary.

        Missing keys fall back to defaults; unknown keys are ignored.

        Args:
            data: Dictionary as produced by to_dict()

        Returns:
            Validated OptimizerConfig

        Raises:
            ValueError: If any value fails validation
        """
        ranges_data = data.get("ranges", {})
        ranges = RangeConfig(
            font_size=_range_from_dict(ranges_data.get("font_size"), FONT_SIZE_RANGE),
            line_spacing=_range_from_dict(ranges_data.get("line_spacing"), LINE_SPACING_RANGE),
        )

        tiers_data = data.get("tiers", {})
        defaults = DensityTiers()
        tiers = DensityTiers(**{
            name: tuple(tiers_data.get(name, getattr(defaults, name)))
            for name in ("thresholds", "font_grow", "font_shrink", "line_grow", "line_shrink")
        })

        return cls(
            ranges=ranges,
            tiers=tiers,
            max_iterations=int(data.get("max_iterations", DEFAULT_MAX_ITERATIONS)),
            binary_search_after=int(data.get("binary_search_after", DEFAULT_BINARY_SEARCH_AFTER)),
            overflow_tolerance_px=float(
                data.get("overflow_tolerance_px", DEFAULT_OVERFLOW_TOLERANCE_PX)
            ),
        )


def _range_from_dict(data: Any, default: ParameterRange) -> ParameterRange:
    """Overlay a partial dict onto a default ParameterRange."""
    if not data:
        return default
    merged = {**default.to_dict(), **data}
    return ParameterRange(
        minimum=float(merged["minimum"]),
        maximum=float(merged["maximum"]),
        default=float(merged["default"]),
        tolerance=float(merged["tolerance"]),
        decimals=int(merged["decimals"]),
    )
