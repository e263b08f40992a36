import pytest
import sys
from pathlib import Path

# Add src to sys.path so we can import menufit
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if SRC_PATH.as_posix() not in sys.path:
    sys.path.insert(0, SRC_PATH.as_posix())

from menufit.autoformat import ContentProfile, LayoutParameters


class CountingOracle:
    """Overflow oracle over a pure predicate that records every call."""

    def __init__(self, overflows):
        self.overflows = overflows
        self.calls = []

    def __call__(self, params: LayoutParameters) -> bool:
        self.calls.append(params)
        return bool(self.overflows(params))

    @property
    def call_count(self) -> int:
        return len(self.calls)


# Common test fixtures
@pytest.fixture
def oracle_factory():
    """Factory for counting oracles from a predicate (True = overflow)."""
    def _create(overflows):
        return CountingOracle(overflows)
    return _create


@pytest.fixture
def capacity_oracle(oracle_factory):
    """Monotonic oracle: overflow when font * (1 + spacing) exceeds a capacity."""
    def _create(capacity: float):
        return oracle_factory(
            lambda p: p.font_size_px * (1 + p.line_spacing) > capacity
        )
    return _create


@pytest.fixture
def scenario_a_params() -> LayoutParameters:
    """14px / 0.3 spacing on a two-column page."""
    return LayoutParameters(font_size_px=14, line_spacing=0.3, columns=2)


@pytest.fixture
def scenario_a_profile() -> ContentProfile:
    """40 items in 4 groups: density 23 on two columns."""
    return ContentProfile(item_count=40, group_count=4)


@pytest.fixture
def dense_profile() -> ContentProfile:
    """Density 32 on a single column."""
    return ContentProfile(item_count=32, group_count=0)
