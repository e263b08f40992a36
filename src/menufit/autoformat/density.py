"""
Module: autoformat.density

Purpose:
    Content density model. Converts a content profile and column count
    into a density score and maps that score to a step size per
    parameter and direction. Sparse content takes large jumps; dense
    content takes fine steps when growing and large steps when shrinking.

Key Functions:
    - density_score(): Weighted items-per-column score
    - step_size(): Tiered step lookup

Dependencies:
    - autoformat.config: DensityTiers
    - autoformat.models: ContentProfile, Parameter, Direction

Used By:
    - autoformat.controller: Linear proposals and rollback
"""

from __future__ import annotations

from typing import Dict, Tuple

from .config import GROUP_WEIGHT, DensityTiers
from .models import ContentProfile, Direction, Parameter

DEFAULT_TIERS = DensityTiers()

_TABLES: Dict[Tuple[Parameter, Direction], str] = {
    (Parameter.FONT_SIZE, Direction.GROW): "font_grow",
    (Parameter.FONT_SIZE, Direction.SHRINK): "font_shrink",
    (Parameter.LINE_SPACING, Direction.GROW): "line_grow",
    (Parameter.LINE_SPACING, Direction.SHRINK): "line_shrink",
}


def density_score(profile: ContentProfile, columns: int) -> float:
    """
    Compute the content density score.

    score = item_count / columns + 1.5 * group_count / columns

    Args:
        profile: Content snapshot
        columns: Column count of the page

    Returns:
        Density score (items per column, headers weighted)

    Raises:
        ValueError: If columns < 1

    Example:
        >>> density_score(ContentProfile(item_count=40, group_count=4), columns=2)
        23.0
    """
    if columns < 1:
        raise ValueError(f"columns must be at least 1: {columns}")
    return profile.item_count / columns + GROUP_WEIGHT * profile.group_count / columns


def step_size(
    score: float,
    parameter: Parameter,
    direction: Direction,
    tiers: DensityTiers = DEFAULT_TIERS,
) -> float:
    """
    Look up the step size for a density score.

    Args:
        score: Density score from density_score()
        parameter: FONT_SIZE or LINE_SPACING
        direction: GROW or SHRINK
        tiers: Tier thresholds and tables

    Returns:
        Step size in the parameter's own units
    """
    table = getattr(tiers, _TABLES[(parameter, direction)])
    return table[tiers.tier(score)]
