# vimshottari/core/sequence.py
# -*- coding: utf-8 -*-
"""
Vimshottari sequence table: the nine rulers and their years

Purpose
-------
Single source of truth for:
- the nine period-bearing grahas (Ruler)
- their fixed cyclic order and integer weights in years (sum = 120)
- the two derived lookups used at every subdivision step

Design
------
- Pure-Python, no external dependencies; safe to import from any module.
- SEQUENCE is a module-level tuple of frozen entries, built once at import.
  Every subdivision in the process reads this same object, so every level
  sees an identical ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

__all__ = [
    "Ruler", "SequenceEntry", "SEQUENCE", "TOTAL_YEARS",
    "ruler_after", "weight_of", "sequence_from", "position_of", "parse_ruler",
]


class Ruler(Enum):
    """Period-bearing graha. Ordered only by its position in SEQUENCE."""
    KETU = ("Ketu", "Ke")
    VENUS = ("Venus", "Ve")
    SUN = ("Sun", "Su")
    MOON = ("Moon", "Mo")
    MARS = ("Mars", "Ma")
    RAHU = ("Rahu", "Ra")
    JUPITER = ("Jupiter", "Ju")
    SATURN = ("Saturn", "Sa")
    MERCURY = ("Mercury", "Me")

    @property
    def display_name(self) -> str:
        return self.value[0]

    @property
    def symbol(self) -> str:
        return self.value[1]

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True)
class SequenceEntry:
    ruler: Ruler
    years: int


# ── the table ────────────────────────────────────────────────────────────────
SEQUENCE: Tuple[SequenceEntry, ...] = (
    SequenceEntry(Ruler.KETU, 7),
    SequenceEntry(Ruler.VENUS, 20),
    SequenceEntry(Ruler.SUN, 6),
    SequenceEntry(Ruler.MOON, 10),
    SequenceEntry(Ruler.MARS, 7),
    SequenceEntry(Ruler.RAHU, 18),
    SequenceEntry(Ruler.JUPITER, 16),
    SequenceEntry(Ruler.SATURN, 19),
    SequenceEntry(Ruler.MERCURY, 17),
)

TOTAL_YEARS: int = sum(e.years for e in SEQUENCE)
assert TOTAL_YEARS == 120, "Vimshottari weights must sum to 120"

# index lookups derived once from SEQUENCE
_POSITION: Dict[Ruler, int] = {e.ruler: i for i, e in enumerate(SEQUENCE)}
_ROTATIONS: Dict[Ruler, Tuple[Ruler, ...]] = {
    e.ruler: tuple(SEQUENCE[(i + k) % len(SEQUENCE)].ruler for k in range(len(SEQUENCE)))
    for i, e in enumerate(SEQUENCE)
}
_BY_NAME: Dict[str, Ruler] = {}
for _r in Ruler:
    _BY_NAME[_r.name.lower()] = _r
    _BY_NAME[_r.display_name.lower()] = _r
    _BY_NAME[_r.symbol.lower()] = _r


# ── lookups ──────────────────────────────────────────────────────────────────
def position_of(ruler: Ruler) -> int:
    return _POSITION[ruler]


def weight_of(ruler: Ruler) -> int:
    """Full Mahadasha length of `ruler` in years."""
    return SEQUENCE[_POSITION[ruler]].years


def ruler_after(ruler: Ruler) -> Ruler:
    """Next ruler in cyclic order (Mercury wraps to Ketu)."""
    return SEQUENCE[(_POSITION[ruler] + 1) % len(SEQUENCE)].ruler


def sequence_from(ruler: Ruler) -> Tuple[Ruler, ...]:
    """The nine rulers starting at `ruler`; item i is its i-th successor."""
    return _ROTATIONS[ruler]


def parse_ruler(value: object) -> Ruler:
    """
    Resolve a Ruler from an enum value, its name ("JUPITER"), display name
    ("Jupiter") or symbol ("Ju"), case-insensitive. Raises ValueError.
    """
    if isinstance(value, Ruler):
        return value
    if isinstance(value, str):
        hit = _BY_NAME.get(value.strip().lower())
        if hit is not None:
            return hit
    raise ValueError(f"unknown ruler: {value!r}")
