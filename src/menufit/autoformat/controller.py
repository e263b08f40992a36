"""
Module: autoformat.controller

Purpose:
    Auto-format state machine. Picks a font size and line spacing that
    fill a fixed-column page without overflowing it. Drives one
    parameter at a time from a boolean overflow signal supplied by the
    caller.

Key Functions:
    - run_optimization(): Loop step() against a synchronous oracle
    - solve(): One-shot entry point returning the final parameters

Key Classes:
    - OptimizationController: Pure step() over (params, state, overflow)
    - OptimizationError: Raised by solve() when a run fails
    - OptimizerError: Unhandled transition (programming error)

Algorithm:
    The first overflow reading fixes the mode for the whole run.
    Expansion (no overflow):
    1. Grow font size by the density step while readings stay safe
    2. On overflow back off one step, then do the same for line spacing
    3. Proposals past the ceiling end the phase without growing
    Reduction (overflow):
    1. Shrink line spacing (cheapest for legibility) down to its floor
    2. Then shrink font size down to its floor
    3. Both floors hit with overflow remaining -> FAILED
    After ``binary_search_after`` linear proposals in one phase, the
    phase is finished with a bounded boundary search instead. With a
    ``probe`` oracle the search runs inside one step() call; without one
    it proposes one bracket midpoint per call and narrows the bracket
    from the next reading.

Dependencies:
    - autoformat.boundary: find_boundary, narrow_bracket
    - autoformat.density: density_score, step_size
    - autoformat.config: OptimizerConfig

Used By:
    - UI driver loops (stepwise)
    - Headless callers via solve()
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

from .boundary import find_boundary, max_probes, narrow_bracket
from .config import OptimizerConfig, ParameterRange
from .density import density_score, step_size
from .models import (
    ContentProfile,
    Direction,
    FailureReason,
    LayoutParameters,
    Mode,
    OptimizationResult,
    OptimizationState,
    Outcome,
    Parameter,
    Phase,
    SearchStrategy,
)
from .oracle import OverflowOracle
from .trace import OptimizationTrace

logger = logging.getLogger(__name__)


FAILURE_MESSAGES: Dict[FailureReason, str] = {
    FailureReason.BOUNDS_EXHAUSTED: (
        "Cannot eliminate overflow: font size ({font}) and line spacing ({line}) "
        "are both at their minimum. Try increasing columns or reducing content."
    ),
    FailureReason.ITERATION_BUDGET_EXCEEDED: (
        "Auto-format stopped after {iterations} steps without settling. "
        "The overflow measurement may be unstable; adjust settings manually."
    ),
}

_LABELS = {
    Parameter.FONT_SIZE: "font size",
    Parameter.LINE_SPACING: "line spacing",
}

_CEILING_FLAGS = {
    Parameter.FONT_SIZE: "hit_font_ceiling",
    Parameter.LINE_SPACING: "hit_line_ceiling",
}

# Phase that follows when the current (phase, mode) is finished
_NEXT_PHASE: Dict[Tuple[Phase, Mode], Phase] = {
    (Phase.FONT_SIZE, Mode.EXPANSION): Phase.LINE_HEIGHT,
    (Phase.LINE_HEIGHT, Mode.EXPANSION): Phase.COMPLETE,
    (Phase.LINE_HEIGHT, Mode.REDUCTION): Phase.FONT_SIZE,
    (Phase.FONT_SIZE, Mode.REDUCTION): Phase.FAILED,
}


class OptimizerError(Exception):
    """Controller has no transition for a state."""
    pass


class OptimizationError(Exception):
    """Auto-format run ended in FAILED."""

    def __init__(self, result: OptimizationResult):
        super().__init__(result.message)
        self.result = result


class BoundsExhaustedError(OptimizationError):
    """Both parameters at their floor and overflow persists."""
    pass


class IterationBudgetExceededError(OptimizationError):
    """Run exceeded its step cap without settling."""
    pass


_FAILURE_ERRORS = {
    FailureReason.BOUNDS_EXHAUSTED: BoundsExhaustedError,
    FailureReason.ITERATION_BUDGET_EXCEEDED: IterationBudgetExceededError,
}


def _format_value(parameter: Parameter, value: float) -> str:
    if parameter is Parameter.FONT_SIZE:
        return f"{value:g}px"
    return f"{value:.2f}"


class OptimizationController:
    """
    Auto-format state machine.

    Stateless between calls: everything a run needs travels in the
    OptimizationState passed into and returned from step(). One
    controller may serve any number of runs over the same content.

    Attributes:
        profile: Content snapshot for the run
        config: Ranges, step tables and limits
        probe: Optional synchronous oracle. When given, a boundary
            search finishes inside a single step() call; otherwise the
            search proposes one midpoint per call.

    Example:
        >>> controller = OptimizationController(ContentProfile(40, 4))
        >>> result = controller.step(params, None, overflow=measure(params))
        >>> while result.should_continue:
        ...     result = controller.step(result.params, result.state, measure(result.params))
    """

    def __init__(
        self,
        profile: ContentProfile,
        config: Optional[OptimizerConfig] = None,
        probe: Optional[OverflowOracle] = None,
    ):
        self.profile = profile
        self.config = config or OptimizerConfig()
        self.probe = probe

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, overflow: bool) -> OptimizationState:
        """
        Create the state for a new run from the initial overflow reading.

        Reduction always starts with line spacing; expansion with font size.
        """
        if overflow:
            return OptimizationState(phase=Phase.LINE_HEIGHT, mode=Mode.REDUCTION)
        return OptimizationState(phase=Phase.FONT_SIZE, mode=Mode.EXPANSION)

    def step(
        self,
        params: LayoutParameters,
        state: Optional[OptimizationState],
        overflow: bool,
    ) -> OptimizationResult:
        """
        Advance the run by one reading.

        Args:
            params: Parameters currently rendered (the previous proposal)
            state: State returned by the previous call, None to start a run
            overflow: Oracle reading for ``params``

        Returns:
            OptimizationResult; when CONTINUE the caller renders
            ``result.params``, measures and calls again with ``result.state``

        Raises:
            ValueError: If params lie outside the configured ranges
            OptimizerError: If the state has no transition
        """
        self._validate(params)

        if state is None:
            state = self.start(overflow)
            logger.info(
                f"Starting auto-format in {state.mode} mode "
                f"(density {self.density(params):.1f}, {params.columns} columns)"
            )
        elif state.is_terminal:
            return self._terminal_result(params, state)

        state = replace(state, iteration_count=state.iteration_count + 1)
        if state.iteration_count > self.config.max_iterations:
            return self._fail(params, state, FailureReason.ITERATION_BUDGET_EXCEEDED)

        handler = _HANDLERS.get((state.phase, state.mode))
        if handler is None:
            raise OptimizerError(f"No transition for phase={state.phase} mode={state.mode}")
        return handler(self, params, state, overflow)

    def density(self, params: LayoutParameters) -> float:
        """Density score of the run's content at the params' column count."""
        return density_score(self.profile, params.columns)

    # ─────────────────────────────────────────────────────────────────────────
    # Reading handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _on_expansion_reading(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        overflow: bool,
    ) -> OptimizationResult:
        if state.searching:
            return self._narrow(params, state, overflow)

        parameter = state.parameter
        rng = self._range(parameter)
        value = params.value_of(parameter)
        label = _LABELS[parameter]

        if overflow:
            if state.last_step <= 0:
                state = self._contract_warning(
                    state,
                    f"Overflow reported at the starting {label} {_format_value(parameter, value)}, "
                    "which was measured safe earlier",
                )
            accepted = rng.clamp(round(value - state.last_step, 10))
            state = replace(state, **{_CEILING_FLAGS[parameter]: True})
            logger.info(
                f"Overflow at {label} {_format_value(parameter, value)}, "
                f"backing off to {_format_value(parameter, accepted)}"
            )
            return self._advance(
                params.with_value(parameter, accepted),
                state,
                f"Found optimal {label}: {_format_value(parameter, accepted)} "
                "(backing off from overflow).",
            )

        if self._should_search(state):
            if self.probe is None:
                return self._open_search(params, state, value, rng.maximum)
            return self._expand_with_search(params, state)
        return self._grow(params, state)

    def _on_reduction_reading(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        overflow: bool,
    ) -> OptimizationResult:
        if state.searching:
            return self._narrow(params, state, overflow)

        parameter = state.parameter
        if not overflow:
            value = params.value_of(parameter)
            return self._complete(
                params,
                state,
                f"Overflow eliminated! {_LABELS[parameter].capitalize()} optimized at "
                f"{_format_value(parameter, value)} for {params.columns} columns.",
            )
        return self._shrink(params, state)

    # ─────────────────────────────────────────────────────────────────────────
    # Linear stepping
    # ─────────────────────────────────────────────────────────────────────────

    def _grow(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        prefix: str = "",
    ) -> OptimizationResult:
        """Propose value + grow step, or finish the phase at the ceiling."""
        parameter = state.parameter
        rng = self._range(parameter)
        value = params.value_of(parameter)
        label = _LABELS[parameter]

        increment = self._step_size(params, parameter, Direction.GROW)
        proposed = rng.quantize(value + increment)
        if rng.above_ceiling(proposed):
            return self._advance(
                params,
                state,
                _join(prefix, f"{label.capitalize()} optimized at {_format_value(parameter, value)} "
                              f"(maximum {_format_value(parameter, rng.maximum)})."),
            )

        state = replace(
            state,
            phase_iterations=state.phase_iterations + 1,
            last_step=proposed - value,
        )
        logger.debug(
            f"Proposing {label} {_format_value(parameter, proposed)} "
            f"(+{increment:g}, iteration {state.phase_iterations})"
        )
        return self._result(
            Outcome.CONTINUE,
            params.with_value(parameter, proposed),
            state,
            _join(prefix, f"Increasing {label} to {_format_value(parameter, proposed)} (testing fit...)"),
        )

    def _shrink(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        prefix: str = "",
    ) -> OptimizationResult:
        """Propose value - shrink step clamped to the floor, or leave the phase at the floor."""
        parameter = state.parameter
        rng = self._range(parameter)
        value = params.value_of(parameter)
        label = _LABELS[parameter]

        if rng.at_floor(value):
            state = replace(state, **{_CEILING_FLAGS[parameter]: True})
            return self._advance(
                params,
                state,
                _join(prefix, f"{label.capitalize()} at minimum ({_format_value(parameter, rng.minimum)})."),
            )

        if self._should_search(state):
            if self.probe is None:
                return self._open_search(params, state, rng.minimum, value, prefix)
            return self._reduce_with_search(params, state, prefix)

        decrement = self._step_size(params, parameter, Direction.SHRINK)
        proposed = rng.quantize(rng.clamp(value - decrement))
        state = replace(
            state,
            phase_iterations=state.phase_iterations + 1,
            last_step=value - proposed,
        )
        logger.debug(
            f"Proposing {label} {_format_value(parameter, proposed)} "
            f"(-{decrement:g}, iteration {state.phase_iterations})"
        )
        return self._result(
            Outcome.CONTINUE,
            params.with_value(parameter, proposed),
            state,
            _join(prefix, f"Reducing {label} to {_format_value(parameter, proposed)} "
                          "to eliminate overflow..."),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Boundary search
    # ─────────────────────────────────────────────────────────────────────────

    def _should_search(self, state: OptimizationState) -> bool:
        return (
            state.strategy is SearchStrategy.LINEAR
            and state.phase_iterations >= self.config.binary_search_after
        )

    def _expand_with_search(
        self,
        params: LayoutParameters,
        state: OptimizationState,
    ) -> OptimizationResult:
        """Search [current safe value, maximum] for the largest safe value."""
        parameter = state.parameter
        rng = self._range(parameter)
        value = params.value_of(parameter)
        label = _LABELS[parameter]
        state = replace(state, strategy=SearchStrategy.BINARY)

        estimate = self._search(params, parameter, value, rng.maximum, rng)
        found = max(value, rng.quantize_down(estimate))

        # The search never probes its lower end, which is already known safe
        if found > value and self.probe(params.with_value(parameter, found)):
            state = self._contract_warning(
                state,
                f"Boundary search accepted {label} {_format_value(parameter, found)} "
                "but the oracle reports overflow there",
            )
            found = value

        if found + rng.tolerance < rng.maximum:
            state = replace(state, **{_CEILING_FLAGS[parameter]: True})

        return self._advance(
            params.with_value(parameter, found),
            state,
            f"Optimized {label} to {_format_value(parameter, found)} using binary search "
            f"after {state.phase_iterations} iterations.",
        )

    def _reduce_with_search(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        prefix: str = "",
    ) -> OptimizationResult:
        """Search [minimum, current overflowing value] for the largest safe value."""
        parameter = state.parameter
        rng = self._range(parameter)
        value = params.value_of(parameter)
        label = _LABELS[parameter]
        state = replace(state, strategy=SearchStrategy.BINARY)

        estimate = self._search(params, parameter, rng.minimum, value, rng)
        found = max(rng.minimum, rng.quantize_down(estimate))
        candidate = params.with_value(parameter, found)

        # The floor is never probed by the search itself
        if not self.probe(candidate):
            return self._complete(
                candidate,
                state,
                _join(prefix, f"Overflow eliminated! Optimized {label} to "
                              f"{_format_value(parameter, found)} using binary search."),
            )

        if not rng.at_floor(found):
            state = self._contract_warning(
                state,
                f"Boundary search accepted {label} {_format_value(parameter, found)} "
                "but the oracle reports overflow there",
            )
        return self._shrink(candidate, state, prefix)

    def _search(
        self,
        params: LayoutParameters,
        parameter: Parameter,
        low: float,
        high: float,
        rng: ParameterRange,
    ) -> float:
        probe = self.probe

        def is_safe(candidate: float) -> bool:
            return not probe(params.with_value(parameter, candidate))

        logger.info(
            f"Switching {_LABELS[parameter]} to binary search in [{low:g}, {high:g}] "
            f"({max_probes(low, high, rng.tolerance)} probes)"
        )
        return find_boundary(low, high, rng.tolerance, is_safe, prefer_max=True)

    # ─────────────────────────────────────────────────────────────────────────
    # Stepwise boundary search (no probe: one midpoint per step() call)
    # ─────────────────────────────────────────────────────────────────────────

    def _open_search(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        low: float,
        high: float,
        prefix: str = "",
    ) -> OptimizationResult:
        """Start a bracket search; ``low`` is the safe end, ``high`` the unsafe one."""
        parameter = state.parameter
        rng = self._range(parameter)
        logger.info(
            f"Switching {_LABELS[parameter]} to stepwise binary search in [{low:g}, {high:g}] "
            f"(up to {max_probes(low, high, rng.tolerance)} steps)"
        )
        state = replace(
            state,
            strategy=SearchStrategy.BINARY,
            last_step=0.0,
            search_low=low,
            search_high=high,
        )
        return self._propose_midpoint(params, state, prefix)

    def _narrow(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        overflow: bool,
    ) -> OptimizationResult:
        """Apply the reading at the proposed midpoint to the bracket."""
        parameter = state.parameter
        low, high = narrow_bracket(
            state.search_low,
            state.search_high,
            params.value_of(parameter),
            safe=not overflow,
        )
        changes = {"search_low": low, "search_high": high}
        if overflow and state.mode is Mode.EXPANSION:
            changes[_CEILING_FLAGS[parameter]] = True
        return self._propose_midpoint(params, replace(state, **changes))

    def _propose_midpoint(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        prefix: str = "",
    ) -> OptimizationResult:
        parameter = state.parameter
        rng = self._range(parameter)
        label = _LABELS[parameter]
        low, high = state.search_low, state.search_high

        mid = rng.quantize((low + high) / 2)
        if rng.quantize(high - low) <= rng.tolerance or not low < mid < high:
            return self._close_search(params, state, prefix)

        logger.debug(
            f"Proposing {label} {_format_value(parameter, mid)} "
            f"(bracket [{_format_value(parameter, low)}, {_format_value(parameter, high)}])"
        )
        return self._result(
            Outcome.CONTINUE,
            params.with_value(parameter, mid),
            state,
            _join(prefix, f"Testing {label} {_format_value(parameter, mid)} (binary search between "
                          f"{_format_value(parameter, low)} and {_format_value(parameter, high)})..."),
        )

    def _close_search(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        prefix: str = "",
    ) -> OptimizationResult:
        """Accept the safe end of a converged bracket."""
        parameter = state.parameter
        rng = self._range(parameter)
        label = _LABELS[parameter]
        low = state.search_low
        accepted = params.with_value(parameter, low)
        state = replace(state, search_low=None, search_high=None)

        if state.mode is Mode.EXPANSION:
            return self._advance(
                accepted,
                state,
                _join(prefix, f"Optimized {label} to {_format_value(parameter, low)} using binary "
                              f"search after {state.phase_iterations} iterations."),
            )

        # search_low only moves to midpoints measured safe; the floor is never measured
        if low > rng.minimum:
            return self._complete(
                accepted,
                state,
                _join(prefix, f"Overflow eliminated! Optimized {label} to "
                              f"{_format_value(parameter, low)} using binary search."),
            )
        state = replace(state, last_step=params.value_of(parameter) - low)
        return self._result(
            Outcome.CONTINUE,
            accepted,
            state,
            _join(prefix, f"Reducing {label} to {_format_value(parameter, low)} "
                          "to eliminate overflow..."),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    def _advance(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        message: str,
    ) -> OptimizationResult:
        """Finish the current phase and enter the next one."""
        next_phase = _NEXT_PHASE.get((state.phase, state.mode))
        if next_phase is None:
            raise OptimizerError(f"No successor for phase={state.phase} mode={state.mode}")

        if next_phase is Phase.COMPLETE:
            return self._complete(params, state, message)
        if next_phase is Phase.FAILED:
            return self._fail(params, state, FailureReason.BOUNDS_EXHAUSTED)

        logger.info(f"{message} Moving to {next_phase} {state.mode}")
        state = replace(
            state,
            phase=next_phase,
            strategy=SearchStrategy.LINEAR,
            phase_iterations=0,
            last_step=0.0,
            search_low=None,
            search_high=None,
        )
        if state.mode is Mode.EXPANSION:
            # The accepted value was measured safe: propose growth right away
            return self._grow(params, state, prefix=message)
        return self._shrink(params, state, prefix=message)

    def _complete(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        message: str,
    ) -> OptimizationResult:
        state = replace(state, phase=Phase.COMPLETE, last_step=0.0)
        logger.info(
            f"Auto-format complete after {state.iteration_count} steps: "
            f"font {params.font_size_px:g}px, spacing {params.line_spacing:.2f}"
        )
        return self._result(Outcome.DONE, params, state, message)

    def _fail(
        self,
        params: LayoutParameters,
        state: OptimizationState,
        reason: FailureReason,
    ) -> OptimizationResult:
        message = FAILURE_MESSAGES[reason].format(
            font=_format_value(Parameter.FONT_SIZE, params.font_size_px),
            line=_format_value(Parameter.LINE_SPACING, params.line_spacing),
            iterations=self.config.max_iterations,
        )
        changes = {"phase": Phase.FAILED, "failure": reason, "last_step": 0.0}
        if reason is FailureReason.BOUNDS_EXHAUSTED:
            changes.update(hit_font_ceiling=True, hit_line_ceiling=True)
        state = replace(state, **changes)
        logger.warning(f"Auto-format failed ({reason}): {message}")
        return self._result(Outcome.FAILED, params, state, message)

    def _terminal_result(
        self,
        params: LayoutParameters,
        state: OptimizationState,
    ) -> OptimizationResult:
        outcome = Outcome.DONE if state.phase is Phase.COMPLETE else Outcome.FAILED
        return OptimizationResult(outcome=outcome, params=params, state=state, message=state.message)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _result(
        self,
        outcome: Outcome,
        params: LayoutParameters,
        state: OptimizationState,
        message: str,
    ) -> OptimizationResult:
        state = replace(state, message=message)
        return OptimizationResult(outcome=outcome, params=params, state=state, message=message)

    def _contract_warning(self, state: OptimizationState, message: str) -> OptimizationState:
        logger.warning(f"Oracle contract violation: {message}")
        return replace(state, warnings=state.warnings + (message,))

    def _range(self, parameter: Parameter) -> ParameterRange:
        if parameter is Parameter.FONT_SIZE:
            return self.config.ranges.font_size
        return self.config.ranges.line_spacing

    def _step_size(
        self,
        params: LayoutParameters,
        parameter: Parameter,
        direction: Direction,
    ) -> float:
        return step_size(self.density(params), parameter, direction, self.config.tiers)

    def _validate(self, params: LayoutParameters) -> None:
        for parameter in (Parameter.FONT_SIZE, Parameter.LINE_SPACING):
            rng = self._range(parameter)
            value = params.value_of(parameter)
            if not rng.contains(value):
                raise ValueError(
                    f"{parameter} must lie in [{rng.minimum}, {rng.maximum}]: {value}"
                )


# Handler for a reading taken in (phase, mode)
_HANDLERS: Dict[Tuple[Phase, Mode], Callable[..., OptimizationResult]] = {
    (Phase.FONT_SIZE, Mode.EXPANSION): OptimizationController._on_expansion_reading,
    (Phase.LINE_HEIGHT, Mode.EXPANSION): OptimizationController._on_expansion_reading,
    (Phase.LINE_HEIGHT, Mode.REDUCTION): OptimizationController._on_reduction_reading,
    (Phase.FONT_SIZE, Mode.REDUCTION): OptimizationController._on_reduction_reading,
}


def _join(prefix: str, message: str) -> str:
    return f"{prefix} {message}" if prefix else message


def run_optimization(
    initial: LayoutParameters,
    oracle: OverflowOracle,
    profile: ContentProfile,
    config: Optional[OptimizerConfig] = None,
    trace: Optional[OptimizationTrace] = None,
) -> OptimizationResult:
    """
    Drive a complete run against a synchronous oracle.

    Args:
        initial: Parameters currently applied
        oracle: Overflow oracle (True = overflow)
        profile: Content snapshot
        config: Optional configuration override
        trace: Optional trace receiving every step

    Returns:
        Final OptimizationResult (DONE or FAILED); failures are not raised

    Example:
        >>> result = run_optimization(params, oracle, ContentProfile(40, 4))
        >>> result.outcome
        <Outcome.DONE: 'done'>
    """
    controller = OptimizationController(profile, config, probe=oracle)
    params = initial
    state: Optional[OptimizationState] = None

    while True:
        start = time.perf_counter()
        overflow = oracle(params)
        result = controller.step(params, state, overflow)
        if trace is not None:
            trace.record(params, overflow, result, time.perf_counter() - start)
        if not result.should_continue:
            return result
        params, state = result.params, result.state


def solve(
    initial: LayoutParameters,
    oracle: OverflowOracle,
    profile: ContentProfile,
    config: Optional[OptimizerConfig] = None,
) -> LayoutParameters:
    """
    One-shot auto-format.

    Args:
        initial: Parameters currently applied
        oracle: Overflow oracle (True = overflow)
        profile: Content snapshot
        config: Optional configuration override

    Returns:
        Final LayoutParameters

    Raises:
        BoundsExhaustedError: Overflow remains with both parameters at their floor
        IterationBudgetExceededError: Run did not settle within the step cap
    """
    result = run_optimization(initial, oracle, profile, config)
    if result.outcome is Outcome.FAILED:
        raise _FAILURE_ERRORS[result.state.failure](result)
    return result.params
