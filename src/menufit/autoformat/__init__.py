"""
Module: autoformat

Purpose:
    Adaptive layout auto-formatter. Picks a base font size and a
    line-spacing multiplier so that fixed content fills a fixed-column
    page without overflowing it, as legibly as possible.

Key Functions:
    - solve(): One-shot optimization against a synchronous oracle
    - run_optimization(): Same, returning the structured final result
    - find_boundary(): Monotonic boundary bisection
    - density_score() / step_size(): Density-adaptive step sizing

Key Classes:
    - OptimizationController: Stepwise state machine for UI driver loops
    - OptimizerConfig / RangeConfig: Bounds, tolerances and limits
    - LayoutParameters / ContentProfile: Inputs
    - OptimizationState / OptimizationResult: Per-step state and output
    - ColumnFitOracle: Headless font-metrics oracle

Dependencies:
    - reportlab: Font metrics for ColumnFitOracle

Used By:
    - Auto-Format action of the menu editor
"""

from .config import OptimizerConfig, RangeConfig, ParameterRange, DensityTiers
from .models import (
    LayoutParameters,
    ContentProfile,
    OptimizationState,
    OptimizationResult,
    Phase,
    Mode,
    Outcome,
    Parameter,
    Direction,
    SearchStrategy,
    FailureReason,
)
from .density import density_score, step_size
from .boundary import find_boundary, max_probes
from .oracle import OverflowOracle, CachedOracle, is_overflow_significant
from .metrics import ColumnFitOracle, ContentGroup, ColumnFill
from .trace import OptimizationTrace, TraceEntry
from .controller import (
    OptimizationController,
    run_optimization,
    solve,
    OptimizerError,
    OptimizationError,
    BoundsExhaustedError,
    IterationBudgetExceededError,
)

__all__ = [
    # Config
    "OptimizerConfig",
    "RangeConfig",
    "ParameterRange",
    "DensityTiers",
    # Models
    "LayoutParameters",
    "ContentProfile",
    "OptimizationState",
    "OptimizationResult",
    "Phase",
    "Mode",
    "Outcome",
    "Parameter",
    "Direction",
    "SearchStrategy",
    "FailureReason",
    # Density / search
    "density_score",
    "step_size",
    "find_boundary",
    "max_probes",
    # Oracles
    "OverflowOracle",
    "CachedOracle",
    "is_overflow_significant",
    "ColumnFitOracle",
    "ContentGroup",
    "ColumnFill",
    # Diagnostics
    "OptimizationTrace",
    "TraceEntry",
    # Controller
    "OptimizationController",
    "run_optimization",
    "solve",
    "OptimizerError",
    "OptimizationError",
    "BoundsExhaustedError",
    "IterationBudgetExceededError",
]
