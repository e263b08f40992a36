"""
Module: autoformat.metrics

Purpose:
    Headless overflow oracle. Lays grouped item text into equal-width
    columns using PDF font metrics and reports whether it spills past
    the last column. Lets solve() run without a live document, and
    gives tests a realistic monotonic oracle.

Key Classes:
    - ContentGroup: A titled group of item lines
    - ColumnFill: Result of one layout measurement
    - ColumnFitOracle: OverflowOracle over a fixed page

Algorithm:
    Per candidate:
    1. Line height = font size * (1 + line spacing); headers are scaled
    2. Wrap every item to the column width (greedy word wrap)
    3. Flow blocks top to bottom, column by column; a group header
       always stays with its first item
    4. Overflow when a block does not fit in the last column

Dependencies:
    - reportlab: Standard font metrics and word wrapping

Used By:
    - autoformat.controller: solve() callers without a renderer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Sequence, Tuple

from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

from .config import DEFAULT_OVERFLOW_TOLERANCE_PX
from .models import ContentProfile, LayoutParameters
from .oracle import is_overflow_significant

logger = logging.getLogger(__name__)

DEFAULT_FONT = "Helvetica"
DEFAULT_HEADER_FONT = "Helvetica-Bold"
DEFAULT_HEADER_SCALE = 1.25
DEFAULT_GUTTER_PX = 12.0


@dataclass(frozen=True)
class ContentGroup:
    """
    Titled group of item lines (e.g. a shelf of a menu).

    Attributes:
        title: Group header text
        items: Item lines in display order
    """
    title: str
    items: Tuple[str, ...]


@dataclass(frozen=True)
class ColumnFill:
    """
    Result of laying content into columns.

    Attributes:
        column_heights: Height used in each column that received content
        overflowed: True if content did not fit in the available columns
        unplaced_height: Total height of blocks that did not fit
    """
    column_heights: Tuple[float, ...]
    overflowed: bool
    unplaced_height: float = 0.0

    @property
    def columns_used(self) -> int:
        return len(self.column_heights)


class ColumnFitOracle:
    """
    Overflow oracle backed by font metrics.

    Attributes:
        groups: Content to lay out
        page_width: Content area width in px
        page_height: Content area height in px
        gutter: Horizontal gap between columns in px
        tolerance: Overflow noise band in px

    Example:
        >>> oracle = ColumnFitOracle.from_mapping({"Indica": ["Item A", "Item B"]}, 800, 600)
        >>> oracle(LayoutParameters(font_size_px=14, line_spacing=0.3, columns=2))
        False
    """

    def __init__(
        self,
        groups: Sequence[ContentGroup],
        page_width: float,
        page_height: float,
        gutter: float = DEFAULT_GUTTER_PX,
        font_name: str = DEFAULT_FONT,
        header_font_name: str = DEFAULT_HEADER_FONT,
        header_scale: float = DEFAULT_HEADER_SCALE,
        tolerance: float = DEFAULT_OVERFLOW_TOLERANCE_PX,
    ):
        if page_width <= 0:
            raise ValueError(f"page_width must be positive: {page_width}")
        if page_height <= 0:
            raise ValueError(f"page_height must be positive: {page_height}")
        if gutter < 0:
            raise ValueError(f"gutter must be non-negative: {gutter}")
        self.groups = tuple(groups)
        self.page_width = page_width
        self.page_height = page_height
        self.gutter = gutter
        self.font_name = font_name
        self.header_font_name = header_font_name
        self.header_scale = header_scale
        self.tolerance = tolerance

    @classmethod
    def from_mapping(
        cls,
        content: Mapping[str, Iterable[str]],
        page_width: float,
        page_height: float,
        **kwargs,
    ) -> "ColumnFitOracle":
        """Build an oracle from ``{group title: item lines}``."""
        groups = [ContentGroup(title, tuple(items)) for title, items in content.items()]
        return cls(groups, page_width, page_height, **kwargs)

    def profile(self) -> ContentProfile:
        """Content profile matching this oracle's content."""
        return ContentProfile(
            item_count=sum(len(g.items) for g in self.groups),
            group_count=len(self.groups),
        )

    def column_width(self, columns: int) -> float:
        """Width of one column for a column count."""
        width = (self.page_width - self.gutter * (columns - 1)) / columns
        if width <= 0:
            raise ValueError(f"{columns} columns do not fit in {self.page_width}px")
        return width

    def __call__(self, params: LayoutParameters) -> bool:
        return self.measure(params).overflowed

    def measure(self, params: LayoutParameters) -> ColumnFill:
        """
        Lay content out at the candidate parameters.

        Args:
            params: Candidate layout

        Returns:
            ColumnFill describing the column usage
        """
        blocks = self._blocks(params)
        heights: List[float] = [0.0]
        unplaced = 0.0

        for block in blocks:
            current = heights[-1]
            if not is_overflow_significant(current + block, self.page_height, self.tolerance):
                heights[-1] = current + block
                continue
            if current > 0 and len(heights) < params.columns:
                heights.append(0.0)
                if not is_overflow_significant(block, self.page_height, self.tolerance):
                    heights[-1] = block
                    continue
            unplaced += block

        fill = ColumnFill(
            column_heights=tuple(h for h in heights if h > 0) or (0.0,),
            overflowed=unplaced > 0,
            unplaced_height=unplaced,
        )
        logger.debug(
            f"Measured {params.font_size_px:g}px/{params.line_spacing:.2f} "
            f"in {params.columns} columns: {fill.columns_used} used, "
            f"{fill.unplaced_height:.1f}px unplaced"
        )
        return fill

    def _blocks(self, params: LayoutParameters) -> List[float]:
        """Heights of the atomic blocks in flow order (header joined to first item)."""
        width = self.column_width(params.columns)
        size = params.font_size_px
        line_height = size * (1 + params.line_spacing)
        header_size = size * self.header_scale
        header_height = header_size * (1 + params.line_spacing)

        blocks: List[float] = []
        for group in self.groups:
            header_lines = self._wrap(group.title, self.header_font_name, header_size, width)
            pending = header_lines * header_height
            for item in group.items:
                block = self._wrap(item, self.font_name, size, width) * line_height
                blocks.append(pending + block)
                pending = 0.0
            if pending:
                blocks.append(pending)
        return blocks

    def _wrap(self, text: str, font_name: str, size: float, width: float) -> int:
        """Number of lines text occupies at a width."""
        if not text:
            return 1
        lines = simpleSplit(text, font_name, size, width)
        if not lines:
            return 1
        # simpleSplit leaves an unbreakable word on its own line; count its overhang
        extra = sum(
            int(stringWidth(line, font_name, size) // width) for line in lines
            if stringWidth(line, font_name, size) > width
        )
        return len(lines) + extra
