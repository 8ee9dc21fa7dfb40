"""
Detector Side View Builder - Core Package

This package contains reusable, testable building blocks for:
- Computing the side-view layout (3 × 3 bar matrix plus veto rings)
- Hit-testing world points against the layout
- Validating and parsing per-element calibration files
- Pairing regions with calibration records and rendering the view

The Streamlit web UI in `app.py` uses this package as its backend.

License: MIT
"""

from .calibration import (
    FIELD_NAMES,
    CalibrationError,
    CalibrationRecord,
    ElementNotFound,
    InvalidCalibrationFile,
    MalformedRecord,
    load_calibration,
    load_calibration_table,
)
from .config import DEFAULT_CONFIG, DEFAULT_WORLD_BOUNDS, DETECTOR_CONFIG
from .elements import ElementCounts, ElementKind, ElementTag, tag_universe
from .export import frame_to_csv_bytes, render_side_view, side_view_to_png_bytes
from .geometry import Layout, Rect, Region, compute_layout
from .registry import DetectorElement, ElementRegistry, build_registry

__all__ = [
    "FIELD_NAMES",
    "CalibrationError",
    "CalibrationRecord",
    "ElementNotFound",
    "InvalidCalibrationFile",
    "MalformedRecord",
    "load_calibration",
    "load_calibration_table",
    "DEFAULT_CONFIG",
    "DEFAULT_WORLD_BOUNDS",
    "DETECTOR_CONFIG",
    "ElementCounts",
    "ElementKind",
    "ElementTag",
    "tag_universe",
    "frame_to_csv_bytes",
    "render_side_view",
    "side_view_to_png_bytes",
    "Layout",
    "Rect",
    "Region",
    "compute_layout",
    "DetectorElement",
    "ElementRegistry",
    "build_registry",
]
