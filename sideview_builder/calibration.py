"""
Calibration file parsing and validation.

Expected format (plain text, one record per element):

    # comment lines start with '#'
    b1 <v_eff> <a_left> <a_right> <lambda> <delta_L> <delta_R> <t_left> <t_right> <length>
    ...
    v<total_vetoes> ...

Notes:
- Tokens are separated by a single space; tabs or repeated spaces are
  format errors.
- Comment and blank lines carry no positional meaning.
- In strict mode the record tags must follow tag_universe() exactly.
  Lines after the last expected tag are ignored.
- Values are returned as written (no unit conversion, no range checks).

License: MIT
"""

from __future__ import annotations

import logging
import numbers
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import pandas as pd

from .elements import ElementCounts, ElementKind, ElementTag, tag_universe

logger = logging.getLogger(__name__)

COMMENT = "#"
DELIMITER = " "

# decimal or scientific notation; nan/inf spellings are let through unchecked
NUMBER_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?|[+-]?(nan|inf|infinity)", re.IGNORECASE)

FIELD_NAMES = (
    "effective_velocity",
    "left_adc_factor",
    "right_adc_factor",
    "attenuation_length",
    "left_shift",
    "right_shift",
    "left_tdc_factor",
    "right_tdc_factor",
    "length",
)

Source = Union[str, Path, Iterable[str]]


class CalibrationError(ValueError):
    """Base class for calibration loading failures."""


class InvalidCalibrationFile(CalibrationError):
    """File missing, unreadable, or its tag sequence does not match the universe."""


class MalformedRecord(CalibrationError):
    """The requested record has the wrong token count or a non-numeric field."""


class ElementNotFound(CalibrationError, KeyError):
    """The scan reached the end of the file without finding the tag."""

    def __str__(self) -> str:
        return ValueError.__str__(self)


@dataclass(frozen=True)
class CalibrationRecord:
    """Nine calibration constants of one element, in file order."""
    tag: str
    effective_velocity: float
    left_adc_factor: float
    right_adc_factor: float
    attenuation_length: float
    left_shift: float
    right_shift: float
    left_tdc_factor: float
    right_tdc_factor: float
    length: float

    @property
    def values(self) -> Tuple[float, ...]:
        return tuple(getattr(self, name) for name in FIELD_NAMES)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def _is_record(line: str) -> bool:
    return len(line) > 0 and not line.startswith(COMMENT)


def _record_lines(lines: Iterable[str]) -> Iterator[List[str]]:
    """Yield the tokens of every non-comment, non-blank line."""
    for raw in lines:
        line = raw.rstrip("\r\n")
        if _is_record(line):
            yield line.split(DELIMITER)


def parse_record(tokens: List[str]) -> CalibrationRecord:
    """Convert '<tag> <v1> ... <v9>' tokens into a CalibrationRecord."""
    tag = tokens[0]
    n_expected = len(FIELD_NAMES) + 1
    if len(tokens) != n_expected:
        raise MalformedRecord(
            f"Record '{tag}' has {len(tokens)} tokens, expected {n_expected} "
            f"(tag plus {len(FIELD_NAMES)} values separated by single spaces)"
        )

    values = []
    for i, token in enumerate(tokens[1:], start=1):
        if not NUMBER_RE.fullmatch(token):
            raise MalformedRecord(
                f"Record '{tag}' field {i} ({FIELD_NAMES[i - 1]}) is not a number: {token!r}"
            )
        values.append(float(token))
    return CalibrationRecord(tag, *values)


def _open_lines(source: Source):
    """Return (lines, handle_to_close)."""
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            fh = path.open("r", encoding="utf-8")
        except OSError as e:
            raise InvalidCalibrationFile(f"Cannot open calibration file '{path}': {e}") from e
        return fh, fh
    return source, None


def _source_name(source: Source) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    return getattr(source, "name", "<stream>")


def _scan(
    source: Source,
    universe: List[str],
    wanted: set,
    *,
    strict: bool,
) -> Dict[str, List[str]]:
    """
    Single pass over the source.

    Validates the tag sequence against universe (strict mode) and captures
    the raw tokens of the first line for each wanted tag. Nothing is
    converted to float here.
    """
    name = _source_name(source)
    lines, handle = _open_lines(source)
    captured: Dict[str, List[str]] = {}
    position = 0
    try:
        try:
            for tokens in _record_lines(lines):
                tag = tokens[0]
                if strict and position < len(universe) and tag != universe[position]:
                    logger.warning("Calibration file %s: tag mismatch at record %d", name, position + 1)
                    raise InvalidCalibrationFile(
                        f"Calibration file '{name}' record {position + 1}: "
                        f"expected '{universe[position]}', found '{tag}'"
                    )
                position += 1
                if tag in wanted and tag not in captured:
                    captured[tag] = tokens
                if not strict and wanted.issubset(captured):
                    break
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidCalibrationFile(f"Cannot read calibration file '{name}': {e}") from e
    finally:
        if handle is not None:
            handle.close()

    if strict and position < len(universe):
        logger.warning("Calibration file %s: only %d of %d records", name, position, len(universe))
        raise InvalidCalibrationFile(
            f"Calibration file '{name}' has {position} records, expected {len(universe)} "
            f"(first missing: '{universe[position]}')"
        )
    return captured


def _target_tag(kind, number: int) -> str:
    kind = ElementKind(kind)
    if isinstance(number, bool) or not isinstance(number, numbers.Integral):
        raise ValueError(f"Element numbers must be integers, got {number!r}")
    if number < 1:
        raise ValueError(f"Element numbers are 1-based, got {number}")
    return str(ElementTag(kind, int(number)))


def load_calibration(
    source: Source,
    kind,
    number: int,
    *,
    counts: Optional[ElementCounts] = None,
    strict: bool = True,
) -> CalibrationRecord:
    """
    Load the calibration record of one element.

    Parameters
    ----------
    source:
        Path to the calibration file, or an iterable of text lines (an open
        text stream is used as-is and not closed).
    kind, number:
        Element kind ('b' / 'v' or ElementKind) and 1-based number.
    counts:
        Element counts defining the expected tag universe.
    strict:
        Validate the full tag sequence before returning the record. With
        strict=False the file is only scanned up to the requested tag.

    Raises
    ------
    InvalidCalibrationFile, MalformedRecord, ElementNotFound
    """
    counts = counts or ElementCounts()
    tag = _target_tag(kind, number)
    universe = tag_universe(counts)

    captured = _scan(source, universe, {tag}, strict=strict)
    if tag not in captured:
        raise ElementNotFound(f"Tag '{tag}' not found in calibration file '{_source_name(source)}'")

    record = parse_record(captured[tag])
    logger.debug("Loaded calibration for %s from %s", tag, _source_name(source))
    return record


def load_calibration_table(
    source: Source,
    *,
    counts: Optional[ElementCounts] = None,
    strict: bool = True,
) -> pd.DataFrame:
    """
    Load every element of the universe in one pass.

    Returns a DataFrame with columns: tag, <FIELD_NAMES...>, one row per
    universe tag in universe order.
    """
    counts = counts or ElementCounts()
    universe = tag_universe(counts)

    captured = _scan(source, universe, set(universe), strict=strict)
    missing = [t for t in universe if t not in captured]
    if missing:
        raise ElementNotFound(
            f"Calibration file '{_source_name(source)}' has no records for: {missing}"
        )

    records = [parse_record(captured[t]) for t in universe]
    return pd.DataFrame([r.as_dict() for r in records], columns=["tag", *FIELD_NAMES])


def format_record(record: CalibrationRecord) -> str:
    """Inverse of parse_record: one calibration file line (no newline)."""
    return DELIMITER.join([record.tag, *(repr(v) for v in record.values)])
