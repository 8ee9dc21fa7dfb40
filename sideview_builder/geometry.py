"""
Side-view layout engine.

Partitions a world rectangle into the 3 x 3 scintillator bar matrix and the
ring of crystal / internal / external vetoes surrounding it, and answers
"which element contains this world point".

World coordinates are device independent with y growing upward; the pixel
mapping belongs to whatever draws the regions (see export.py).

Veto numbering (single-crystal configuration, 1-based):
    1        crystal (multi-crystal: bottom to top)
    2-5      internal upstream, far bottom -> far top
    6-9      internal top, far left -> far right
    10-13    internal downstream, far top -> far bottom
    14-17    internal bottom, far right -> far left
    18, 19   internal left cap, internal right cap
    20, 21   external upstream, bottom -> top
    22-24    external top, left -> right
    25, 26   external downstream, top -> bottom
    27-29    external bottom, right -> left
    30, 31   external left cap, external right cap

License: MIT
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .elements import ElementCounts, ElementKind, ElementTag

logger = logging.getLogger(__name__)

GRID_SIZE = 3

# External ring: vertical strips per upstream/downstream side,
# horizontal strips per top/bottom side, plus one cap on each end.
EXTERNAL_VERTICAL_STRIPS = 2
EXTERNAL_HORIZONTAL_STRIPS = 3


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle; (x, y) is the lower-left corner."""
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + 0.5 * self.width, self.y + 0.5 * self.height

    def contains(self, px: float, py: float) -> bool:
        """Half-open containment: min edges inclusive, max edges exclusive."""
        return self.x <= px < self.max_x and self.y <= py < self.max_y

    def intersects(self, other: "Rect") -> bool:
        """True when the two rectangles share a positive-area overlap."""
        return (
            self.x < other.max_x
            and other.x < self.max_x
            and self.y < other.max_y
            and other.y < self.max_y
        )

    def scaled(self, factor: float, origin: Tuple[float, float] = (0.0, 0.0)) -> "Rect":
        ox, oy = origin
        return Rect(
            ox + (self.x - ox) * factor,
            oy + (self.y - oy) * factor,
            self.width * factor,
            self.height * factor,
        )


@dataclass(frozen=True)
class Region:
    """One labelled element of the layout."""
    kind: ElementKind
    index: int
    rect: Rect

    @property
    def number(self) -> int:
        return self.index + 1

    @property
    def tag(self) -> ElementTag:
        return ElementTag(self.kind, self.number)


@dataclass(frozen=True)
class Layout:
    """Result of compute_layout; immutable and safe to share."""
    bounds: Rect
    counts: ElementCounts
    bars: Tuple[Region, ...]
    vetoes: Tuple[Region, ...]

    @property
    def regions(self) -> Tuple[Region, ...]:
        return self.bars + self.vetoes

    def region(self, tag) -> Region:
        """Return the region for an ElementTag or a 'b3' / 'v17' string."""
        if not isinstance(tag, ElementTag):
            tag = ElementTag.parse(tag)
        family = self.bars if tag.kind == ElementKind.BAR else self.vetoes
        if not 1 <= tag.number <= len(family):
            raise KeyError(f"No region for tag '{tag}'")
        return family[tag.number - 1]

    def locate(self, px: float, py: float) -> Optional[ElementTag]:
        """
        Return the tag of the element containing (px, py), or None.

        Bars take precedence over vetoes; each family keeps its own 1-based
        numbering.
        """
        for region in self.bars:
            if region.rect.contains(px, py):
                return region.tag
        for region in self.vetoes:
            if region.rect.contains(px, py):
                return region.tag
        return None

    def locate_many(self, points) -> List[Optional[ElementTag]]:
        """Vectorised locate() for an (N, 2) array-like of world points."""
        pts = np.asarray(points, dtype=float)
        if pts.ndim != 2 or pts.shape[1] != 2:
            raise ValueError(f"Expected an (N, 2) array of world points, got shape {pts.shape}")
        regions = self.regions
        if not regions or pts.shape[0] == 0:
            return [None] * pts.shape[0]

        boxes = np.array([(r.rect.x, r.rect.y, r.rect.max_x, r.rect.max_y) for r in regions])
        px = pts[:, 0][:, None]
        py = pts[:, 1][:, None]
        inside = (
            (boxes[:, 0] <= px) & (px < boxes[:, 2])
            & (boxes[:, 1] <= py) & (py < boxes[:, 3])
        )
        # argmax picks the first True column, i.e. bars before vetoes
        first = inside.argmax(axis=1)
        hit = inside.any(axis=1)
        return [regions[j].tag if ok else None for j, ok in zip(first, hit)]

    def to_frame(self) -> pd.DataFrame:
        """One row per region, bars first."""
        rows = [
            {
                "tag": str(r.tag),
                "kind": r.kind.value,
                "number": r.number,
                "x": r.rect.x,
                "y": r.rect.y,
                "width": r.rect.width,
                "height": r.rect.height,
            }
            for r in self.regions
        ]
        return pd.DataFrame(rows, columns=["tag", "kind", "number", "x", "y", "width", "height"])


def _strip_offsets(start: float, length: float, n: int) -> List[float]:
    """Lower edges of n strips laid end to end from start."""
    offsets = []
    next_edge = start
    for _ in range(n):
        offsets.append(next_edge)
        next_edge = next_edge + length
    return offsets


def _check_counts(counts: ElementCounts) -> int:
    """Validate counts against the ring pattern; return internal strips per side."""
    if counts.bars != GRID_SIZE * GRID_SIZE:
        raise ValueError(f"The bar matrix is {GRID_SIZE}x{GRID_SIZE}; got bars={counts.bars}")
    if counts.crystal_vetoes < 1:
        raise ValueError("At least one crystal is required")

    internal_strips = counts.internal_vetoes - 2
    if internal_strips <= 0 or internal_strips % 4:
        raise ValueError(
            f"internal_vetoes must be 4 * strips_per_side + 2 caps (e.g. 18); got {counts.internal_vetoes}"
        )

    expected_external = 2 * (EXTERNAL_VERTICAL_STRIPS + EXTERNAL_HORIZONTAL_STRIPS) + 2
    if counts.external_vetoes != expected_external:
        raise ValueError(f"external_vetoes must be {expected_external}; got {counts.external_vetoes}")
    return internal_strips // 4


def compute_layout(bounds: Rect, counts: Optional[ElementCounts] = None) -> Layout:
    """
    Compute bar and veto regions for a world rectangle.

    Parameters
    ----------
    bounds:
        World bounding rectangle. Every dimension below is a linear function
        of its width/height, so uniformly scaling bounds scales the layout.
    counts:
        Element counts; only the crystal count and the internal strips per
        side may vary.

    Returns
    -------
    Layout with bars (row-major, top row first) and vetoes in ring order.
    """
    counts = counts or ElementCounts()
    if not all(math.isfinite(v) for v in (bounds.x, bounds.y, bounds.width, bounds.height)):
        raise ValueError(f"World bounds must be finite, got {bounds}")
    if bounds.width <= 0 or bounds.height <= 0:
        raise ValueError(f"World bounds must have positive width and height, got {bounds}")
    internal_per_side = _check_counts(counts)

    gap = bounds.width / 48
    box_w = bounds.width / 12 - 2 * gap
    box_h = bounds.height / 12 - 2 * gap
    n_crystals = counts.crystal_vetoes
    crystal_h = 3 * box_h / n_crystals - gap / 2
    if not all(math.isfinite(v) for v in (gap, box_w, box_h, crystal_h)):
        raise ValueError(f"World bounds {bounds} give non-finite element sizes")
    if box_w <= 0 or box_h <= 0 or crystal_h <= 0:
        raise ValueError(f"World bounds {bounds} are too flat for the side view")

    cx, cy = bounds.center
    grid_left = cx - GRID_SIZE * box_w / 2
    grid_bottom = cy - GRID_SIZE * box_h / 2
    grid_right = grid_left + GRID_SIZE * box_w
    grid_top = grid_bottom + GRID_SIZE * box_h

    # Bar matrix
    col_xs = _strip_offsets(grid_left, box_w, GRID_SIZE)
    row_ys = _strip_offsets(grid_bottom, box_h, GRID_SIZE)
    bar_rects = [Rect(x, y, box_w, box_h) for y in reversed(row_ys) for x in col_xs]

    veto_rects: List[Rect] = []

    # Crystals, bottom to top, between the grid and the internal downstream strips
    crystal_x = grid_right + gap - box_w / 2.75
    next_bottom = grid_bottom
    for _ in range(n_crystals):
        next_bottom = next_bottom + gap / 2
        veto_rects.append(Rect(crystal_x, next_bottom, gap / 2, crystal_h))
        next_bottom = next_bottom + crystal_h

    # Internal ring
    inner_strip_h = GRID_SIZE * box_h / internal_per_side
    inner_strip_w = GRID_SIZE * box_w / internal_per_side
    inner_ys = _strip_offsets(grid_bottom, inner_strip_h, internal_per_side)
    inner_xs = _strip_offsets(grid_left, inner_strip_w, internal_per_side)
    upstream_x = grid_left - 2 * gap
    downstream_x = grid_right + gap
    top_y = grid_top + gap
    bottom_y = grid_bottom - 2 * gap

    upstream = [Rect(upstream_x, y, gap, inner_strip_h) for y in inner_ys]
    veto_rects.extend(upstream)
    veto_rects.extend(Rect(x, top_y, inner_strip_w, gap) for x in inner_xs)
    veto_rects.extend(Rect(downstream_x, y, gap, inner_strip_h) for y in reversed(inner_ys))
    veto_rects.extend(Rect(x, bottom_y, inner_strip_w, gap) for x in reversed(inner_xs))

    # Caps sit outboard of the rings, one gap apart: external cap at the
    # world edge, internal cap beside it.
    cap_w = GRID_SIZE * box_w + gap
    outer_cap_left = bounds.x + gap
    inner_cap_left = outer_cap_left + cap_w + gap
    outer_cap_right = bounds.max_x - gap - cap_w
    inner_cap_right = outer_cap_right - gap - cap_w

    inner_span_y = upstream[0].y
    inner_span_h = upstream[-1].max_y - inner_span_y
    veto_rects.append(Rect(inner_cap_left, inner_span_y, cap_w, inner_span_h))
    veto_rects.append(Rect(inner_cap_right, inner_span_y, cap_w, inner_span_h))

    # External ring, starting from the internal ring's outer edges
    outer_strip_h = 5 * box_h / EXTERNAL_VERTICAL_STRIPS
    outer_strip_w = 2 * (2 * box_w + gap) / EXTERNAL_HORIZONTAL_STRIPS
    outer_ys = _strip_offsets(bottom_y, outer_strip_h, EXTERNAL_VERTICAL_STRIPS)
    outer_xs = _strip_offsets(upstream_x, outer_strip_w, EXTERNAL_HORIZONTAL_STRIPS)
    outer_upstream_x = upstream_x - 2 * gap
    outer_downstream_x = downstream_x + 2 * gap
    outer_top_y = top_y + 2 * gap
    outer_bottom_y = bottom_y - 2 * gap

    outer_upstream = [Rect(outer_upstream_x, y, gap, outer_strip_h) for y in outer_ys]
    veto_rects.extend(outer_upstream)
    veto_rects.extend(Rect(x, outer_top_y, outer_strip_w, gap) for x in outer_xs)
    veto_rects.extend(Rect(outer_downstream_x, y, gap, outer_strip_h) for y in reversed(outer_ys))
    veto_rects.extend(Rect(x, outer_bottom_y, outer_strip_w, gap) for x in reversed(outer_xs))

    outer_span_y = outer_upstream[0].y
    outer_span_h = outer_upstream[-1].max_y - outer_span_y
    veto_rects.append(Rect(outer_cap_left, outer_span_y, cap_w, outer_span_h))
    veto_rects.append(Rect(outer_cap_right, outer_span_y, cap_w, outer_span_h))

    assert len(veto_rects) == counts.total_vetoes

    layout = Layout(
        bounds=bounds,
        counts=counts,
        bars=tuple(Region(ElementKind.BAR, i, r) for i, r in enumerate(bar_rects)),
        vetoes=tuple(Region(ElementKind.VETO, i, r) for i, r in enumerate(veto_rects)),
    )
    logger.debug(
        "Computed layout for %s: %d bars, %d vetoes (gap=%.4g)",
        bounds, len(layout.bars), len(layout.vetoes), gap,
    )
    return layout

