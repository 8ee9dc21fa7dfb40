#!/usr/bin/env python3
"""
Side View Renderer - Batch (CLI)

Renders the detector side view of one or more configurations and writes
the region and calibration tables next to the image.

Output
------
For each configuration:
  - <out>/<config>.png               (side view, annotated)
  - <out>/<config>_regions.csv       (tag, kind, number, x, y, width, height)
  - <out>/<config>_calibration.csv   (regions + calibration constants, if calibrated)
  - <out>/<config>_hits.csv          (only with --points: x, y, tag per point)

Points CSV format (--points)
----------------------------
Required columns: x,y   (world coordinates, default world is 3 x 3)

How to run
----------
python scripts/render_side_view.py --out out/ --verbose
python scripts/render_side_view.py --config quad_crystal --calibration my_cal.txt --out out/

Notes
-----
- Configurations whose calibration cannot be loaded are rendered
  uncalibrated (reported with --verbose) unless --calibration was given
  explicitly, in which case the error is fatal.

License: MIT
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# -------------------------------------------------------------------------
# Make imports robust:
# Add the repository root to sys.path so `import sideview_builder` works
# regardless of how/where the script is invoked.
# -------------------------------------------------------------------------
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sideview_builder.calibration import CalibrationError  # noqa: E402
from sideview_builder.config import DETECTOR_CONFIG  # noqa: E402
from sideview_builder.export import frame_to_csv_bytes, side_view_to_png_bytes  # noqa: E402
from sideview_builder.registry import ElementRegistry, build_registry  # noqa: E402

IMAGE_SIGNATURE = "Detector Side View Builder"


def _err(msg: str, code: int = 1) -> None:
    """Print an error message to stderr and exit with a non-zero code."""
    print(f"ERROR: {msg}", file=sys.stderr)
    raise SystemExit(code)


def load_points_csv(path: Path) -> pd.DataFrame:
    """Load the hit-test points with friendly errors."""
    if not path.exists():
        _err(f"Points file not found: {path}")
    try:
        df = pd.read_csv(path)
    except Exception as e:
        _err(f"Failed to read points file '{path}': {e}")
    missing = {"x", "y"} - set(df.columns)
    if missing:
        _err(f"Points CSV missing required columns: {sorted(missing)}")
    return df


def ensure_out_dir(out_dir: Path) -> None:
    """Create output directory with friendly errors."""
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        _err(f"Cannot create output directory '{out_dir}': {e}")


def main() -> None:
    ap = argparse.ArgumentParser(description="Render detector side views.")
    ap.add_argument(
        "--config",
        action="append",
        choices=sorted(DETECTOR_CONFIG),
        help="Configuration to render (repeatable; default: all).",
    )
    ap.add_argument("--calibration", type=Path, default=None, help="Calibration file overriding the configured one.")
    ap.add_argument("--lookup-only", action="store_true", help="Skip tag-order validation of calibration files.")
    ap.add_argument("--points", type=Path, default=None, help="CSV of world points (x,y) to hit-test.")
    ap.add_argument("--no-annotate", action="store_true", help="Draw regions without labels.")
    ap.add_argument("--out", required=True, type=Path, help="Output directory.")
    ap.add_argument("--verbose", action="store_true", help="Print progress and debug logging.")
    args = ap.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    configs = args.config or list(DETECTOR_CONFIG)
    points = load_points_csv(args.points) if args.points is not None else None
    ensure_out_dir(args.out)

    created = 0
    for name in configs:
        registry = build_registry(name, calibration_source=args.calibration, strict=not args.lookup_only)

        calibration_df = None
        if registry.calibration_source is not None:
            try:
                calibration_df = registry.calibration_frame()
            except CalibrationError as e:
                if args.calibration is not None:
                    _err(str(e))
                if args.verbose:
                    print(f"[SKIP {name}] Calibration not loaded, rendering uncalibrated: {e}")
                registry = ElementRegistry(registry.name, registry.layout, info=registry.info)
        elif args.verbose:
            print(f"[INFO] No calibration file for '{name}'")

        png_path = args.out / f"{name}.png"
        png_path.write_bytes(
            side_view_to_png_bytes(
                registry,
                title=f"Full Side View ({name})",
                signature=IMAGE_SIGNATURE,
                annotate=not args.no_annotate,
            )
        )
        (args.out / f"{name}_regions.csv").write_bytes(frame_to_csv_bytes(registry.layout.to_frame()))
        if calibration_df is not None:
            (args.out / f"{name}_calibration.csv").write_bytes(frame_to_csv_bytes(calibration_df))

        if points is not None:
            tags = registry.layout.locate_many(points[["x", "y"]].to_numpy(dtype=float))
            hits = points[["x", "y"]].copy()
            hits["tag"] = [str(t) if t is not None else "" for t in tags]
            (args.out / f"{name}_hits.csv").write_bytes(frame_to_csv_bytes(hits))

        created += 1
        if args.verbose:
            print(
                f"[OK {name}] Wrote {png_path.name} | {len(registry.bars)} bars, "
                f"{len(registry.vetoes)} vetoes | calibrated={calibration_df is not None}"
            )

    print(f"Rendering completed. Configurations: {created}. Output dir: {args.out}")


if __name__ == "__main__":
    main()
