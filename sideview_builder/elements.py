"""
Detector element bookkeeping.

The same four counts drive both the side-view layout and the calibration
file validation, so they live here in one place:

- ElementCounts: bars, crystal vetoes, internal vetoes, external vetoes
- ElementTag: "b<N>" / "v<N>" identifiers (1-based)
- tag_universe: the ordered list of tags a calibration file must contain

Crystals are not vetoes, but they are numbered as vetoes (v1.. first).

License: MIT
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple


class ElementKind(str, Enum):
    BAR = "b"
    VETO = "v"


@dataclass(frozen=True)
class ElementCounts:
    """Number of elements of each family."""
    bars: int = 9
    crystal_vetoes: int = 1
    internal_vetoes: int = 18
    external_vetoes: int = 12

    def __post_init__(self) -> None:
        for name in ("bars", "crystal_vetoes", "internal_vetoes", "external_vetoes"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    @property
    def total_vetoes(self) -> int:
        return self.crystal_vetoes + self.internal_vetoes + self.external_vetoes

    @property
    def total(self) -> int:
        return self.bars + self.total_vetoes

    def count(self, kind: ElementKind) -> int:
        return self.bars if kind == ElementKind.BAR else self.total_vetoes


class ElementTag(NamedTuple):
    """Kind plus 1-based number, e.g. ElementTag(ElementKind.VETO, 17) -> 'v17'."""
    kind: ElementKind
    number: int

    def __str__(self) -> str:
        return f"{self.kind.value}{self.number}"

    @classmethod
    def parse(cls, text: str) -> "ElementTag":
        """Parse 'b3' / 'v17' into an ElementTag."""
        text = str(text).strip()
        if len(text) < 2:
            raise ValueError(f"Invalid element tag '{text}'")
        try:
            kind = ElementKind(text[0])
        except ValueError:
            raise ValueError(f"Invalid element tag '{text}' (use b<N> or v<N>)") from None
        digits = text[1:]
        if not digits.isdigit() or int(digits) < 1:
            raise ValueError(f"Invalid element number in tag '{text}'")
        return cls(kind, int(digits))


def tag_universe(counts: ElementCounts) -> List[str]:
    """
    Ordered tags expected in a calibration file.

    Bars first, then crystal, internal and external vetoes sharing one
    running veto number.
    """
    tags = [str(ElementTag(ElementKind.BAR, i)) for i in range(1, counts.bars + 1)]

    veto_number = 0
    for family_size in (counts.crystal_vetoes, counts.internal_vetoes, counts.external_vetoes):
        for _ in range(family_size):
            veto_number += 1
            tags.append(str(ElementTag(ElementKind.VETO, veto_number)))
    return tags
