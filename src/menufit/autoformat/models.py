"""
Module: autoformat.models

Purpose:
    Data models for the auto-formatter. Immutable dataclasses for the
    searched parameters, the content snapshot, the caller-owned run
    state and the per-step result.

Key Classes:
    - LayoutParameters: Font size, line spacing and fixed column count
    - ContentProfile: Item and group counts for a run
    - OptimizationState: State threaded through step() calls
    - OptimizationResult: Outcome of one step() call

Dependencies:
    - dataclasses (std)
    - enum (std)

Used By:
    - autoformat.controller: State machine
    - autoformat.oracle / autoformat.metrics: Oracle implementations
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Phase(str, Enum):
    """Which parameter is being searched, or a terminal marker."""
    FONT_SIZE = "font-size"
    LINE_HEIGHT = "line-height"
    COMPLETE = "complete"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.FAILED)


class Mode(str, Enum):
    """Whether the run grows parameters or shrinks them. Fixed per run."""
    EXPANSION = "expansion"
    REDUCTION = "reduction"

    def __str__(self) -> str:
        return self.value


class Outcome(str, Enum):
    """Result of a step() call."""
    CONTINUE = "continue"  # Re-render with params, measure, call again
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class Parameter(str, Enum):
    """Tunable layout parameter."""
    FONT_SIZE = "font_size_px"
    LINE_SPACING = "line_spacing"

    def __str__(self) -> str:
        return self.value


class Direction(str, Enum):
    """Direction of a parameter change."""
    GROW = "grow"
    SHRINK = "shrink"

    def __str__(self) -> str:
        return self.value


class SearchStrategy(str, Enum):
    """Proposal mechanism inside a phase."""
    LINEAR = "linear"
    BINARY = "binary"

    def __str__(self) -> str:
        return self.value


class FailureReason(str, Enum):
    """Why a run ended in FAILED."""
    BOUNDS_EXHAUSTED = "bounds_exhausted"
    ITERATION_BUDGET_EXCEEDED = "iteration_budget_exceeded"

    def __str__(self) -> str:
        return self.value


PHASE_PARAMETER = {
    Phase.FONT_SIZE: Parameter.FONT_SIZE,
    Phase.LINE_HEIGHT: Parameter.LINE_SPACING,
}


@dataclass(frozen=True)
class LayoutParameters:
    """
    Layout parameters under search (immutable).

    A fresh copy is produced at every step; ``columns`` is never changed
    by the auto-formatter.

    Attributes:
        font_size_px: Base font size in pixels
        line_spacing: Line-spacing (padding) multiplier
        columns: Externally fixed column count

    Example:
        >>> params = LayoutParameters(font_size_px=14, line_spacing=0.3, columns=2)
        >>> params.with_value(Parameter.FONT_SIZE, 15).font_size_px
        15
    """

    font_size_px: float
    line_spacing: float
    columns: int

    def __post_init__(self) -> None:
        """Validate parameters on construction."""
        if self.columns < 1:
            raise ValueError(f"columns must be at least 1: {self.columns}")
        if self.font_size_px <= 0:
            raise ValueError(f"font_size_px must be positive: {self.font_size_px}")
        if self.line_spacing < 0:
            raise ValueError(f"line_spacing must be non-negative: {self.line_spacing}")

    def value_of(self, parameter: Parameter) -> float:
        """Current value of a tunable parameter."""
        return getattr(self, parameter.value)

    def with_value(self, parameter: Parameter, value: float) -> "LayoutParameters":
        """Copy with one tunable parameter replaced."""
        return replace(self, **{parameter.value: value})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "font_size_px": self.font_size_px,
            "line_spacing": self.line_spacing,
            "columns": self.columns,
        }


@dataclass(frozen=True)
class ContentProfile:
    """
    Snapshot of how much content must fit (immutable).

    Supplied once per run and assumed constant for that run.

    Attributes:
        item_count: Number of content items (rows)
        group_count: Number of groups (each adds a header)
    """

    item_count: int
    group_count: int = 0

    def __post_init__(self) -> None:
        """Validate counts on construction."""
        if self.item_count < 0:
            raise ValueError(f"item_count must be non-negative: {self.item_count}")
        if self.group_count < 0:
            raise ValueError(f"group_count must be non-negative: {self.group_count}")


@dataclass(frozen=True)
class OptimizationState:
    """
    Caller-owned state of one auto-format run (immutable).

    Created by the first step() call from the initial overflow reading
    and replaced by every later call. The controller keeps nothing
    between calls; everything it needs is here.

    Attributes:
        phase: Parameter being searched, or COMPLETE/FAILED
        mode: EXPANSION or REDUCTION, fixed for the run
        iteration_count: step() calls processed so far
        hit_font_ceiling: Font size growth was stopped by overflow, or font
            size reached its floor while shrinking
        hit_line_ceiling: Same for line spacing
        strategy: LINEAR stepping or BINARY search inside the phase
        phase_iterations: Linear proposals made in the current phase
        last_step: Increment applied by the pending proposal (0 = none)
        search_low: Safe end of the open search bracket (None = no search)
        search_high: Unsafe end of the open search bracket
        failure: Reason for FAILED, None otherwise
        message: Message of the most recent result
        warnings: Oracle contract warnings collected so far
    """

    phase: Phase
    mode: Mode
    iteration_count: int = 0
    hit_font_ceiling: bool = False
    hit_line_ceiling: bool = False
    strategy: SearchStrategy = SearchStrategy.LINEAR
    phase_iterations: int = 0
    last_step: float = 0.0
    search_low: Optional[float] = None
    search_high: Optional[float] = None
    failure: Optional[FailureReason] = None
    message: str = ""
    warnings: Tuple[str, ...] = ()

    @property
    def is_terminal(self) -> bool:
        """Check if the run has reached COMPLETE or FAILED."""
        return self.phase.is_terminal

    @property
    def parameter(self) -> Optional[Parameter]:
        """Parameter searched in the current phase (None when terminal)."""
        return PHASE_PARAMETER.get(self.phase)

    @property
    def searching(self) -> bool:
        """True while a stepwise boundary search is narrowing its bracket."""
        return self.search_low is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "mode": self.mode.value,
            "iteration_count": self.iteration_count,
            "hit_font_ceiling": self.hit_font_ceiling,
            "hit_line_ceiling": self.hit_line_ceiling,
            "strategy": self.strategy.value,
            "phase_iterations": self.phase_iterations,
            "last_step": self.last_step,
            "search_low": self.search_low,
            "search_high": self.search_high,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class OptimizationResult:
    """
    Outcome of one step() call (immutable).

    Attributes:
        outcome: CONTINUE, DONE or FAILED
        params: Parameters to apply (the proposal when CONTINUE)
        state: State to pass into the next call
        message: Human-readable progress or failure text

    Example:
        >>> result = controller.step(params, None, overflow=False)
        >>> result.should_continue
        True
    """

    outcome: Outcome
    params: LayoutParameters
    state: OptimizationState
    message: str

    @property
    def should_continue(self) -> bool:
        """True when the caller must re-render, measure and call again."""
        return self.outcome is Outcome.CONTINUE

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.DONE

    @property
    def warnings(self) -> Tuple[str, ...]:
        """Oracle contract warnings collected during the run."""
        return self.state.warnings
