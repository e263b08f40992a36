"""
Module: autoformat.trace

Purpose:
    Step-by-step record of an auto-format run for diagnostics. Captures
    every reading, the resulting proposal and how long the step took
    (including any boundary-search probes).

Key Classes:
    - TraceEntry: One recorded step
    - OptimizationTrace: Ordered collection of steps with summary/export

Dependencies:
    - json (std)
    - dataclasses (std)

Used By:
    - autoformat.controller: run_optimization()
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .models import LayoutParameters, OptimizationResult, Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceEntry:
    """
    One recorded step.

    Attributes:
        iteration: Iteration count after the step
        phase: Phase after the step
        mode: Run mode
        measured: Parameters the reading was taken at
        overflow: The reading
        proposed: Parameters returned by the step
        outcome: CONTINUE, DONE or FAILED
        message: Step message
        duration: Wall time of the step in seconds
    """
    iteration: int
    phase: str
    mode: str
    measured: LayoutParameters
    overflow: bool
    proposed: LayoutParameters
    outcome: Outcome
    message: str
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "phase": self.phase,
            "mode": self.mode,
            "measured": self.measured.to_dict(),
            "overflow": self.overflow,
            "proposed": self.proposed.to_dict(),
            "outcome": self.outcome.value,
            "message": self.message,
            "duration": self.duration,
        }


@dataclass
class OptimizationTrace:
    """
    Trace of one auto-format run.

    Attributes:
        entries: Recorded steps in order

    Example:
        >>> trace = OptimizationTrace()
        >>> result = run_optimization(params, oracle, profile, trace=trace)
        >>> print(trace.summary())
    """
    entries: List[TraceEntry] = field(default_factory=list)

    def record(
        self,
        measured: LayoutParameters,
        overflow: bool,
        result: OptimizationResult,
        duration: float,
    ) -> None:
        """Append one step."""
        self.entries.append(TraceEntry(
            iteration=result.state.iteration_count,
            phase=result.state.phase.value,
            mode=result.state.mode.value,
            measured=measured,
            overflow=overflow,
            proposed=result.params,
            outcome=result.outcome,
            message=result.message,
            duration=duration,
        ))

    @property
    def step_count(self) -> int:
        return len(self.entries)

    @property
    def total_duration(self) -> float:
        return sum(e.duration for e in self.entries)

    @property
    def final(self) -> TraceEntry | None:
        return self.entries[-1] if self.entries else None

    def get_phase_totals(self) -> Dict[str, float]:
        """Total time spent per phase (keyed by the phase after each step)."""
        totals: Dict[str, float] = {}
        for entry in self.entries:
            totals[entry.phase] = totals.get(entry.phase, 0.0) + entry.duration
        return totals

    def summary(self) -> str:
        """Generate human-readable run summary."""
        lines = ["", "=== Auto-Format Trace ==="]

        for entry in self.entries:
            reading = "overflow" if entry.overflow else "fits"
            lines.append(
                f"  #{entry.iteration:<3d} {entry.mode:9s} {entry.phase:11s} "
                f"{entry.measured.font_size_px:5g}px/{entry.measured.line_spacing:.2f} {reading:8s} "
                f"-> {entry.proposed.font_size_px:5g}px/{entry.proposed.line_spacing:.2f} "
                f"({entry.duration:.3f}s)"
            )

        final = self.final
        if final is not None:
            lines.append("")
            lines.append(f"Outcome: {final.outcome.value} after {self.step_count} steps "
                         f"({self.total_duration:.3f}s)")
            lines.append(f"  {final.message}")

        lines.append("")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Export trace as dictionary."""
        final = self.final
        return {
            "steps": [e.to_dict() for e in self.entries],
            "step_count": self.step_count,
            "total_duration": self.total_duration,
            "phase_totals": self.get_phase_totals(),
            "outcome": final.outcome.value if final else None,
        }

    def save(self, path: Path) -> None:
        """
        Save trace to a JSON file.

        Args:
            path: Destination file (parent directories are created)
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved auto-format trace to {path}")
