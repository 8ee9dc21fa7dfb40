#!/usr/bin/env python3
"""
Calibration file validator (CLI)

Checks that a calibration file lists every element of a detector
configuration, in order, and that every record parses.

How to run
----------
python scripts/validate_calibration.py --config single_crystal \
  --file data/calibration_single_crystal.txt --verbose

python scripts/validate_calibration.py --config quad_crystal --tag v3

Exit status
-----------
0 if the file is valid (and the requested tag was found), 1 otherwise.

Notes
-----
- --lookup-only skips the tag-order validation (only useful with --tag).
- Without --file the path from DETECTOR_CONFIG is used.
- --tag prints the record as it would be written in a calibration file.

License: MIT
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# -------------------------------------------------------------------------
# Make imports robust:
# Add the repository root to sys.path so `import sideview_builder` works
# regardless of how/where the script is invoked.
# -------------------------------------------------------------------------
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sideview_builder.calibration import (  # noqa: E402
    FIELD_NAMES,
    CalibrationError,
    format_record,
    load_calibration,
    load_calibration_table,
)
from sideview_builder.config import DEFAULT_CONFIG, DETECTOR_CONFIG  # noqa: E402
from sideview_builder.elements import ElementTag  # noqa: E402


def _err(msg: str, code: int = 1) -> None:
    """Print an error message to stderr and exit with a non-zero code."""
    print(f"ERROR: {msg}", file=sys.stderr)
    raise SystemExit(code)


def main() -> None:
    ap = argparse.ArgumentParser(description="Validate a detector calibration file.")
    ap.add_argument("--config", default=DEFAULT_CONFIG, choices=sorted(DETECTOR_CONFIG), help="Detector configuration.")
    ap.add_argument("--file", type=Path, default=None, help="Calibration file (default: configured path).")
    ap.add_argument("--tag", default=None, help="Print the record of one element, e.g. b5 or v17.")
    ap.add_argument("--lookup-only", action="store_true", help="Skip tag-order validation.")
    ap.add_argument("--verbose", action="store_true", help="Print every record and debug logging.")
    args = ap.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    cfg = DETECTOR_CONFIG[args.config]
    counts = cfg["counts"]
    path = args.file if args.file is not None else Path(cfg["calibration_path"])
    strict = not args.lookup_only

    if args.verbose:
        print(f"[INFO] Configuration '{args.config}': {counts.bars} bars, {counts.total_vetoes} vetoes")
        print(f"[INFO] Calibration file: {path} (strict={strict})")

    if args.tag is not None:
        try:
            tag = ElementTag.parse(args.tag)
        except ValueError as e:
            _err(str(e))
        try:
            record = load_calibration(path, tag.kind, tag.number, counts=counts, strict=strict)
        except CalibrationError as e:
            _err(str(e))
        if args.verbose:
            for name in FIELD_NAMES:
                print(f"[INFO] {record.tag} {name} = {getattr(record, name)!r}")
        print(format_record(record))
        return

    if args.lookup_only:
        _err("--lookup-only requires --tag (a full check always validates the tag order).")

    try:
        table = load_calibration_table(path, counts=counts, strict=True)
    except CalibrationError as e:
        _err(str(e))

    if args.verbose:
        for _, row in table.iterrows():
            print(f"[OK {row['tag']}] " + " ".join(f"{row[name]:g}" for name in FIELD_NAMES))

    print(f"Calibration file is valid. Records: {len(table)}. Configuration: {args.config}")


if __name__ == "__main__":
    main()
