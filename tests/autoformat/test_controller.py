"""
Unit tests for the auto-format state machine.

Readings are passed to step() by hand, the way a UI driver loop would
after re-rendering, so every transition can be checked in isolation.
"""

import logging

import pytest

from menufit.autoformat import (
    ContentProfile,
    FailureReason,
    LayoutParameters,
    Mode,
    OptimizationController,
    OptimizationState,
    OptimizerConfig,
    OptimizerError,
    Outcome,
    Phase,
    SearchStrategy,
)
from menufit.autoformat import controller as controller_module


def drive(controller, params, overflows, limit=200):
    """Run step() until terminal, measuring each proposal with a predicate."""
    results = []
    state = None
    for _ in range(limit):
        result = controller.step(params, state, overflows(params))
        results.append(result)
        if not result.should_continue:
            return results
        params, state = result.params, result.state
    raise AssertionError("run did not terminate")


class TestStart:
    """Tests for mode selection from the first reading."""

    def test_start_when_no_overflow_then_expansion_font_phase(self, scenario_a_profile):
        """A fitting page starts growing font size."""
        state = OptimizationController(scenario_a_profile).start(overflow=False)

        assert state.mode is Mode.EXPANSION
        assert state.phase is Phase.FONT_SIZE
        assert state.iteration_count == 0

    def test_start_when_overflow_then_reduction_line_phase(self, scenario_a_profile):
        """An overflowing page starts shrinking line spacing."""
        state = OptimizationController(scenario_a_profile).start(overflow=True)

        assert state.mode is Mode.REDUCTION
        assert state.phase is Phase.LINE_HEIGHT

    def test_step_when_first_call_then_counts_one_iteration(self, scenario_a_params, scenario_a_profile):
        """The first step() creates the state and counts itself."""
        result = OptimizationController(scenario_a_profile).step(scenario_a_params, None, overflow=False)

        assert result.state.iteration_count == 1
        assert result.outcome is Outcome.CONTINUE


class TestExpansionLinear:
    """Expansion with fixed density steps (search promotion disabled)."""

    LINEAR_ONLY = OptimizerConfig(binary_search_after=50)

    def test_step_when_safe_then_grows_font_by_density_step(self, scenario_a_params, scenario_a_profile):
        """Density 23 grows font size by 1px per step."""
        result = OptimizationController(scenario_a_profile).step(scenario_a_params, None, overflow=False)

        assert result.params == LayoutParameters(font_size_px=15, line_spacing=0.3, columns=2)
        assert result.state.last_step == 1.0
        assert result.message == "Increasing font size to 15px (testing fit...)"

    def test_run_when_overflow_at_23_then_backs_off_to_22(self, scenario_a_params, scenario_a_profile):
        """Overflow at 23px rolls back one step and enters the line-height phase."""
        # Arrange
        controller = OptimizationController(scenario_a_profile, self.LINEAR_ONLY)

        # Act
        results = drive(controller, scenario_a_params, lambda p: p.font_size_px > 22)

        # Assert
        proposals = [r.params.font_size_px for r in results[:9]]
        assert proposals == [15, 16, 17, 18, 19, 20, 21, 22, 23]

        backoff = results[9]
        assert backoff.outcome is Outcome.CONTINUE
        assert backoff.params.font_size_px == 22
        assert backoff.params.line_spacing == pytest.approx(0.35)
        assert backoff.state.phase is Phase.LINE_HEIGHT
        assert backoff.state.hit_font_ceiling is True
        assert backoff.state.hit_line_ceiling is False
        assert "Found optimal font size: 22px" in backoff.message

    def test_run_when_line_spacing_reaches_maximum_then_completes(self, scenario_a_params, scenario_a_profile):
        """Line spacing grows to its maximum and the run completes."""
        controller = OptimizationController(scenario_a_profile, self.LINEAR_ONLY)

        results = drive(controller, scenario_a_params, lambda p: p.font_size_px > 22)

        final = results[-1]
        assert len(results) == 24
        assert final.outcome is Outcome.DONE
        assert final.state.phase is Phase.COMPLETE
        assert final.params.font_size_px == 22
        assert final.params.line_spacing == pytest.approx(1.0)
        assert final.state.hit_line_ceiling is False
        assert final.warnings == ()

    def test_run_when_font_reaches_maximum_then_stops_without_overshoot(self):
        """Sparse content stops growing before a proposal would pass 48px."""
        # Arrange
        profile = ContentProfile(item_count=0)
        params = LayoutParameters(font_size_px=40, line_spacing=0.3, columns=1)

        # Act
        results = drive(OptimizationController(profile, self.LINEAR_ONLY), params, lambda p: False)

        # Assert
        fonts = [r.params.font_size_px for r in results]
        assert max(fonts) == 48
        final = results[-1]
        assert final.outcome is Outcome.DONE
        assert final.params.font_size_px == 48
        assert final.params.line_spacing == pytest.approx(0.9)
        assert final.state.hit_font_ceiling is False

    def test_run_when_accepted_then_oracle_reports_safe(self):
        """Every accepted value after backoff fits."""
        profile = ContentProfile(item_count=12, group_count=2)
        params = LayoutParameters(font_size_px=10, line_spacing=0.2, columns=3)

        def overflows(p):
            return p.font_size_px * (1 + p.line_spacing) > 27

        results = drive(OptimizationController(profile), params, overflows)

        assert results[-1].succeeded
        assert overflows(results[-1].params) is False

    def test_step_when_overflow_without_pending_step_then_warns(self, scenario_a_params, scenario_a_profile, caplog):
        """Overflow at a value already measured safe is an oracle contract violation."""
        # Arrange
        state = OptimizationState(phase=Phase.FONT_SIZE, mode=Mode.EXPANSION, iteration_count=1)

        # Act
        with caplog.at_level(logging.WARNING):
            result = OptimizationController(scenario_a_profile).step(scenario_a_params, state, overflow=True)

        # Assert
        assert result.params.font_size_px == 14
        assert result.state.phase is Phase.LINE_HEIGHT
        assert len(result.warnings) == 1
        assert "Oracle contract violation" in caplog.text


class TestReductionLinear:
    """Reduction driven one reading at a time."""

    def test_run_when_dense_then_line_spacing_shrinks_first(self, dense_profile):
        """Density 32 shrinks line spacing by 0.15, then font size by 2px."""
        # Arrange
        controller = OptimizationController(dense_profile)
        params = LayoutParameters(font_size_px=20, line_spacing=0.4, columns=1)

        # Act
        first = controller.step(params, None, overflow=True)
        second = controller.step(first.params, first.state, overflow=True)
        third = controller.step(second.params, second.state, overflow=True)

        # Assert
        assert first.state.mode is Mode.REDUCTION
        assert first.params.line_spacing == pytest.approx(0.25)
        assert second.params.line_spacing == pytest.approx(0.1)
        assert third.state.phase is Phase.FONT_SIZE
        assert third.state.hit_line_ceiling is True
        assert third.params.font_size_px == 18
        assert third.params.line_spacing == pytest.approx(0.1)
        assert third.outcome is Outcome.CONTINUE

    def test_step_when_overflow_resolved_then_done(self, dense_profile):
        """A safe reading during reduction completes the run."""
        controller = OptimizationController(dense_profile)
        params = LayoutParameters(font_size_px=20, line_spacing=0.4, columns=1)

        first = controller.step(params, None, overflow=True)
        done = controller.step(first.params, first.state, overflow=False)

        assert done.outcome is Outcome.DONE
        assert done.params.line_spacing == pytest.approx(0.25)
        assert done.message == "Overflow eliminated! Line spacing optimized at 0.25 for 1 columns."

    def test_step_when_both_at_floor_then_bounds_exhausted(self):
        """Overflow with both parameters at their minimum fails at once."""
        # Arrange
        controller = OptimizationController(ContentProfile(item_count=200, group_count=20))
        params = LayoutParameters(font_size_px=8, line_spacing=0.1, columns=2)

        # Act
        result = controller.step(params, None, overflow=True)

        # Assert
        assert result.outcome is Outcome.FAILED
        assert result.state.phase is Phase.FAILED
        assert result.state.failure is FailureReason.BOUNDS_EXHAUSTED
        assert result.state.hit_font_ceiling and result.state.hit_line_ceiling
        assert "font size (8px)" in result.message
        assert "line spacing (0.10)" in result.message
        assert result.params == params

    def test_run_when_never_fits_then_monotonic_decrease_until_failure(self, dense_profile):
        """With overflow at every value, parameters only ever decrease."""
        params = LayoutParameters(font_size_px=20, line_spacing=0.6, columns=1)

        results = drive(OptimizationController(dense_profile), params, lambda p: True)

        fonts = [params.font_size_px] + [r.params.font_size_px for r in results]
        lines = [params.line_spacing] + [r.params.line_spacing for r in results]
        assert fonts == sorted(fonts, reverse=True)
        assert lines == sorted(lines, reverse=True)
        assert results[-1].state.failure is FailureReason.BOUNDS_EXHAUSTED
        assert results[-1].params.font_size_px == 8


class TestBoundarySearchPromotion:
    """Binary search after three linear proposals in a phase."""

    def _advance(self, controller, params, readings):
        result = None
        state = None
        for overflow in readings:
            result = controller.step(params, state, overflow)
            params, state = result.params, result.state
        return result

    def test_step_when_three_growth_steps_then_searches_font(
        self, scenario_a_params, scenario_a_profile, oracle_factory
    ):
        """The fourth safe reading finishes the font phase with a bounded search."""
        # Arrange
        probe = oracle_factory(lambda p: p.font_size_px > 30)
        controller = OptimizationController(scenario_a_profile, probe=probe)

        # Act
        result = self._advance(controller, scenario_a_params, [False, False, False, False])

        # Assert
        assert result.outcome is Outcome.CONTINUE
        assert result.params.font_size_px == 29.5
        assert result.params.line_spacing == pytest.approx(0.35)
        assert result.state.phase is Phase.LINE_HEIGHT
        assert result.state.strategy is SearchStrategy.LINEAR
        assert result.state.phase_iterations == 1
        assert result.state.hit_font_ceiling is True
        assert "using binary search after 3 iterations" in result.message
        # Six bisection probes plus one re-check
        assert probe.call_count == 7

    def test_step_when_search_result_overflows_then_falls_back_with_warning(
        self, scenario_a_params, scenario_a_profile, caplog
    ):
        """A re-check contradicting the search keeps the last safe value."""
        # Arrange
        calls = []

        def probe(params):
            calls.append(params)
            return len(calls) > 6

        controller = OptimizationController(scenario_a_profile, probe=probe)

        # Act
        with caplog.at_level(logging.WARNING):
            result = self._advance(controller, scenario_a_params, [False, False, False, False])

        # Assert
        assert result.params.font_size_px == 17
        assert result.params.line_spacing == pytest.approx(0.35)
        assert len(result.warnings) == 1
        assert "Oracle contract violation" in caplog.text

    def test_step_when_no_synchronous_oracle_then_proposes_bracket_midpoint(
        self, scenario_a_params, scenario_a_profile
    ):
        """Without a synchronous oracle the search proposes one midpoint per call."""
        controller = OptimizationController(scenario_a_profile)

        result = self._advance(controller, scenario_a_params, [False, False, False, False])

        assert result.outcome is Outcome.CONTINUE
        assert result.params.font_size_px == 32.5
        assert result.state.phase is Phase.FONT_SIZE
        assert result.state.strategy is SearchStrategy.BINARY
        assert result.state.searching is True
        assert (result.state.search_low, result.state.search_high) == (17, 48)
        assert "binary search between 17px and 48px" in result.message

    def test_step_when_three_shrink_steps_then_searches_line_spacing(self, dense_profile, oracle_factory):
        """Reduction promotes too, and completes when the search result fits."""
        # Arrange
        probe = oracle_factory(lambda p: p.line_spacing > 0.23)
        controller = OptimizationController(dense_profile, probe=probe)
        params = LayoutParameters(font_size_px=20, line_spacing=1.0, columns=1)

        # Act
        first = controller.step(params, None, overflow=True)
        result = self._advance(controller, params, [True, True, True, True])

        # Assert
        assert first.params.line_spacing == pytest.approx(0.85)
        assert result.outcome is Outcome.DONE
        assert result.params.line_spacing == pytest.approx(0.22)
        assert result.params.font_size_px == 20
        assert result.state.strategy is SearchStrategy.BINARY
        assert result.warnings == ()

    def test_step_when_floor_still_overflows_then_moves_to_font_phase(self, dense_profile, oracle_factory):
        """A search that bottoms out at the floor hands over to font size."""
        probe = oracle_factory(lambda p: p.font_size_px > 10)
        controller = OptimizationController(dense_profile, probe=probe)
        params = LayoutParameters(font_size_px=20, line_spacing=1.0, columns=1)

        result = self._advance(controller, params, [True, True, True, True])

        assert result.outcome is Outcome.CONTINUE
        assert result.state.phase is Phase.FONT_SIZE
        assert result.state.hit_line_ceiling is True
        assert result.params.font_size_px == 18
        assert result.params.line_spacing == pytest.approx(0.1)
        assert result.warnings == ()


class TestStepwiseSearch:
    """Bracket search driven one reading per step() call."""

    def test_run_when_overflow_above_22_then_settles_below_boundary(self, scenario_a_params, scenario_a_profile):
        """The font bracket closes on the largest safe value found."""
        # Arrange
        controller = OptimizationController(scenario_a_profile)

        # Act
        results = drive(controller, scenario_a_params, lambda p: p.font_size_px > 22)

        # Assert
        final = results[-1]
        assert final.outcome is Outcome.DONE
        assert 21.5 <= final.params.font_size_px <= 22
        assert final.params.line_spacing >= 0.98
        assert final.state.hit_font_ceiling is True
        assert final.state.hit_line_ceiling is False
        assert final.state.searching is False
        assert len(results) < 50

    def test_run_when_everything_overflows_at_maximum_then_reduces_within_budget(self):
        """Sparse content started at both maximums shrinks to a fit before the cap."""
        # Arrange
        controller = OptimizationController(ContentProfile(item_count=4))
        params = LayoutParameters(font_size_px=48, line_spacing=1.0, columns=1)

        def overflows(p):
            return p.font_size_px * (1 + p.line_spacing) > 10.5

        # Act
        results = drive(controller, params, overflows)

        # Assert
        final = results[-1]
        assert final.outcome is Outcome.DONE
        assert overflows(final.params) is False
        assert final.params.font_size_px == 9.5
        assert final.params.line_spacing == pytest.approx(0.1)
        assert len(results) < 50

    def test_run_when_dense_content_starts_at_minimum_then_grows_within_budget(self):
        """Half-pixel growth steps hand over to the bracket search well before the cap."""
        # Arrange
        controller = OptimizationController(ContentProfile(item_count=30))
        params = LayoutParameters(font_size_px=8, line_spacing=0.1, columns=1)

        # Act
        results = drive(controller, params, lambda p: p.font_size_px > 40)

        # Assert
        fonts = [r.params.font_size_px for r in results[:4]]
        assert fonts == [8.5, 9, 9.5, 28.8]
        final = results[-1]
        assert final.outcome is Outcome.DONE
        assert 39.5 <= final.params.font_size_px <= 40
        assert final.params.line_spacing >= 0.98
        assert len(results) < 50

    def test_step_when_midpoint_overflows_in_reduction_then_bracket_keeps_safe_end(self, dense_profile):
        """An overflowing midpoint becomes the new upper end of the bracket."""
        # Arrange
        controller = OptimizationController(dense_profile)
        params = LayoutParameters(font_size_px=20, line_spacing=1.0, columns=1)
        result = None
        state = None
        for _ in range(4):
            result = controller.step(params, state, overflow=True)
            params, state = result.params, result.state

        # Act
        narrowed = controller.step(params, state, overflow=True)

        # Assert
        assert state.search_low == 0.1
        assert state.search_high == pytest.approx(0.55)
        assert 0.1 < params.line_spacing < 0.55
        assert narrowed.state.search_low == 0.1
        assert narrowed.state.search_high == params.line_spacing
        assert 0.1 < narrowed.params.line_spacing < params.line_spacing
        assert narrowed.state.hit_line_ceiling is False

    def test_run_when_floor_fits_after_search_then_completes_at_floor(self, dense_profile):
        """A bracket closing on the floor proposes the floor itself."""
        controller = OptimizationController(dense_profile)
        params = LayoutParameters(font_size_px=20, line_spacing=1.0, columns=1)

        results = drive(controller, params, lambda p: p.line_spacing > 0.1)

        final = results[-1]
        assert final.outcome is Outcome.DONE
        assert final.params.line_spacing == pytest.approx(0.1)
        assert final.params.font_size_px == 20
        assert final.state.phase is Phase.COMPLETE


class TestTermination:
    """Iteration cap, terminal idempotence and unknown transitions."""

    def test_step_when_budget_exceeded_then_fails(self, scenario_a_params, scenario_a_profile):
        """The call after the cap fails with IterationBudgetExceeded."""
        # Arrange
        controller = OptimizationController(scenario_a_profile, OptimizerConfig(max_iterations=3))

        # Act
        results = drive(controller, scenario_a_params, lambda p: False)

        # Assert
        assert len(results) == 4
        final = results[-1]
        assert final.outcome is Outcome.FAILED
        assert final.state.failure is FailureReason.ITERATION_BUDGET_EXCEEDED
        assert final.state.iteration_count == 4
        assert "3 steps" in final.message
        assert final.params == results[-2].params

    @pytest.mark.parametrize("columns,items,groups", [
        (1, 0, 0),
        (1, 200, 30),
        (2, 40, 4),
        (4, 90, 12),
    ])
    @pytest.mark.parametrize("capacity", [5.0, 20.0, 40.0, 200.0])
    @pytest.mark.parametrize("synchronous", [True, False])
    def test_run_when_monotonic_oracle_then_terminates_within_budget(
        self, columns, items, groups, capacity, synchronous
    ):
        """Every run against a monotonic oracle ends before the cap."""
        # Arrange
        def overflows(p):
            return p.font_size_px * (1 + p.line_spacing) > capacity

        controller = OptimizationController(
            ContentProfile(items, groups), probe=overflows if synchronous else None
        )
        params = LayoutParameters(font_size_px=14, line_spacing=0.3, columns=columns)

        # Act
        results = drive(controller, params, overflows)

        # Assert
        final = results[-1]
        assert final.outcome in (Outcome.DONE, Outcome.FAILED)
        assert final.state.failure is not FailureReason.ITERATION_BUDGET_EXCEEDED
        assert final.warnings == ()
        assert len(results) <= 50

    def test_step_when_terminal_then_returns_same_result(self):
        """Stepping a finished run changes nothing."""
        # Arrange
        controller = OptimizationController(ContentProfile(item_count=200, group_count=20))
        params = LayoutParameters(font_size_px=8, line_spacing=0.1, columns=2)
        failed = controller.step(params, None, overflow=True)

        # Act
        again = controller.step(failed.params, failed.state, overflow=False)

        # Assert
        assert again.outcome is Outcome.FAILED
        assert again.state == failed.state
        assert again.params == failed.params
        assert again.message == failed.message

    def test_step_when_done_then_returns_same_result(self, dense_profile):
        """Stepping a completed run changes nothing, whatever the reading."""
        # Arrange
        controller = OptimizationController(dense_profile)
        params = LayoutParameters(font_size_px=20, line_spacing=0.4, columns=1)
        first = controller.step(params, None, overflow=True)
        done = controller.step(first.params, first.state, overflow=False)

        # Act
        again = controller.step(done.params, done.state, overflow=True)

        # Assert
        assert done.outcome is Outcome.DONE
        assert again.outcome is Outcome.DONE
        assert again.params == done.params
        assert again.state == done.state
        assert again.message == done.message

    @pytest.mark.parametrize("phase", list(Phase))
    @pytest.mark.parametrize("mode", list(Mode))
    def test_tables_when_phase_not_terminal_then_cover_every_mode(self, phase, mode):
        """Every running (phase, mode) pair has a handler and a successor."""
        key = (phase, mode)

        if phase in (Phase.COMPLETE, Phase.FAILED):
            assert key not in controller_module._HANDLERS
            assert key not in controller_module._NEXT_PHASE
            return

        expected = {
            Mode.EXPANSION: OptimizationController._on_expansion_reading,
            Mode.REDUCTION: OptimizationController._on_reduction_reading,
        }[mode]
        assert controller_module._HANDLERS[key] is expected
        assert key in controller_module._NEXT_PHASE

    def test_step_when_no_handler_then_raises_optimizer_error(
        self, scenario_a_params, scenario_a_profile, monkeypatch
    ):
        """A (phase, mode) pair without a transition is a programming error."""
        monkeypatch.setattr(controller_module, "_HANDLERS", {})
        controller = OptimizationController(scenario_a_profile)

        with pytest.raises(OptimizerError, match="No transition"):
            controller.step(scenario_a_params, None, overflow=False)

    def test_step_when_params_out_of_range_then_raises_error(self, scenario_a_profile):
        """Parameters outside the configured ranges are rejected."""
        controller = OptimizationController(scenario_a_profile)
        params = LayoutParameters(font_size_px=60, line_spacing=0.3, columns=2)

        with pytest.raises(ValueError, match="font_size_px must lie"):
            controller.step(params, None, overflow=False)

    def test_step_when_running_then_columns_never_change(self, scenario_a_params, scenario_a_profile):
        """Column count is fixed for the whole run."""
        results = drive(
            OptimizationController(scenario_a_profile), scenario_a_params, lambda p: p.font_size_px > 20
        )

        assert {r.params.columns for r in results} == {2}
