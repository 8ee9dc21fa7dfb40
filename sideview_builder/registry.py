"""
Element registry: each layout region paired with its calibration record.

Calibration records are loaded lazily, on first access, and cached on the
element. The registry is what the viewer and the export helpers consume.

License: MIT
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pandas as pd

from .calibration import CalibrationRecord, Source, load_calibration, load_calibration_table
from .config import DEFAULT_WORLD_BOUNDS, DETECTOR_CONFIG
from .elements import ElementCounts, ElementKind, ElementTag
from .geometry import Layout, Rect, Region, compute_layout

logger = logging.getLogger(__name__)


class DetectorElement:
    """A bar or veto of the side view."""

    def __init__(
        self,
        region: Region,
        calibration_source: Optional[Source] = None,
        *,
        counts: ElementCounts,
        strict: bool = True,
    ):
        self.region = region
        self._source = calibration_source
        self._counts = counts
        self._strict = strict
        self._calibration: Optional[CalibrationRecord] = None

    def __repr__(self) -> str:
        return f"DetectorElement({self.tag})"

    @property
    def tag(self) -> ElementTag:
        return self.region.tag

    @property
    def kind(self) -> ElementKind:
        return self.region.kind

    @property
    def number(self) -> int:
        return self.region.number

    @property
    def rect(self) -> Rect:
        return self.region.rect

    @property
    def is_calibrated(self) -> bool:
        return self._source is not None

    @property
    def calibration(self) -> Optional[CalibrationRecord]:
        """Calibration record, loaded on first access; None without a source."""
        if self._source is None:
            return None
        if self._calibration is None:
            self._calibration = load_calibration(
                self._source,
                self.kind,
                self.number,
                counts=self._counts,
                strict=self._strict,
            )
        return self._calibration

    def annotation(self) -> str:
        """Text drawn next to the element in the side view."""
        cal = self.calibration
        if cal is None:
            return str(self.tag)
        return f"{self.tag}\nv={cal.effective_velocity:.3g}\nλ={cal.attenuation_length:.3g}"


class ElementRegistry:
    """All elements of one detector configuration."""

    def __init__(
        self,
        name: str,
        layout: Layout,
        *,
        calibration_source: Optional[Source] = None,
        strict: bool = True,
        info: str = "",
    ):
        self.name = name
        self.layout = layout
        self.info = info
        if isinstance(calibration_source, str):
            calibration_source = Path(calibration_source)
        elif calibration_source is not None and not isinstance(calibration_source, Path):
            # streams are consumed by the first read; keep the lines instead
            calibration_source = list(calibration_source)
        self.calibration_source = calibration_source
        self.strict = strict

        def make(region: Region) -> DetectorElement:
            return DetectorElement(region, self.calibration_source, counts=layout.counts, strict=strict)

        self.bars: List[DetectorElement] = [make(r) for r in layout.bars]
        self.vetoes: List[DetectorElement] = [make(r) for r in layout.vetoes]
        self._by_tag: Dict[str, DetectorElement] = {str(e.tag): e for e in self.elements}

    @property
    def counts(self) -> ElementCounts:
        return self.layout.counts

    @property
    def elements(self) -> List[DetectorElement]:
        return self.bars + self.vetoes

    def __iter__(self) -> Iterator[DetectorElement]:
        return iter(self.elements)

    def __len__(self) -> int:
        return len(self.bars) + len(self.vetoes)

    def get(self, tag) -> DetectorElement:
        """Element for an ElementTag or a 'b3' / 'v17' string."""
        key = str(tag if isinstance(tag, ElementTag) else ElementTag.parse(tag))
        try:
            return self._by_tag[key]
        except KeyError:
            raise KeyError(f"No element '{key}' in configuration '{self.name}'") from None

    def locate(self, px: float, py: float) -> Optional[DetectorElement]:
        tag = self.layout.locate(px, py)
        return None if tag is None else self._by_tag[str(tag)]

    def calibration_frame(self) -> pd.DataFrame:
        """
        Region table merged with the calibration constants.

        Reads the calibration file once; without a calibration source the
        region table is returned unchanged.
        """
        regions = self.layout.to_frame()
        if self.calibration_source is None:
            return regions
        table = load_calibration_table(self.calibration_source, counts=self.counts, strict=self.strict)
        return regions.merge(table, on="tag", how="left")


def build_registry(
    config_name: str,
    *,
    bounds: Rect = DEFAULT_WORLD_BOUNDS,
    calibration_source: Optional[Source] = None,
    strict: bool = True,
    config: Optional[Dict[str, dict]] = None,
) -> ElementRegistry:
    """
    Build the registry for one configuration.

    calibration_source (a path, or the lines of an uploaded file) overrides
    the configured calibration_path. When neither is available the
    registry is uncalibrated.
    """
    config = DETECTOR_CONFIG if config is None else config
    if config_name not in config:
        raise KeyError(f"Unknown configuration '{config_name}'. Available: {sorted(config)}")
    cfg = config[config_name]

    if calibration_source is None:
        configured = cfg.get("calibration_path")
        if configured is not None and Path(configured).exists():
            calibration_source = Path(configured)

    layout = compute_layout(bounds, cfg["counts"])
    logger.debug("Built registry '%s' (calibration: %s)", config_name, _describe(calibration_source))
    return ElementRegistry(
        config_name,
        layout,
        calibration_source=calibration_source,
        strict=strict,
        info=cfg.get("info", config_name),
    )


def _describe(source) -> str:
    if source is None:
        return "none"
    if isinstance(source, (str, Path)):
        return str(source)
    return "<in-memory lines>"
