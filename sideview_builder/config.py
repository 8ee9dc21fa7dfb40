"""
Configuration for the detector side view.

Edit calibration paths here if you reorganize your repository.

Important:
- Both configurations share the bar matrix and the internal/external veto
  rings; they differ only in the number of crystals.
- Element counts drive the layout AND the calibration tag universe, so a
  calibration file written for one configuration is rejected by the other.

License: MIT
"""

from pathlib import Path

from .elements import ElementCounts
from .geometry import Rect

DEFAULT_WORLD_BOUNDS = Rect(0.0, 0.0, 3.0, 3.0)

DEFAULT_CONFIG = "single_crystal"

DETECTOR_CONFIG = {
    "single_crystal": {
        "counts": ElementCounts(bars=9, crystal_vetoes=1, internal_vetoes=18, external_vetoes=12),
        "calibration_path": Path("data/calibration_single_crystal.txt"),
        "info": "3 × 3 scintillator bar matrix, one crystal, 30 internal/external vetoes.",
    },
    "quad_crystal": {
        "counts": ElementCounts(bars=9, crystal_vetoes=4, internal_vetoes=18, external_vetoes=12),
        "calibration_path": Path("data/calibration_quad_crystal.txt"),
        "info": "3 × 3 scintillator bar matrix, four crystals, 30 internal/external vetoes.",
    },
}
