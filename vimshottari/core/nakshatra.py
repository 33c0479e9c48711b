from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Tuple

from vimshottari.core.sequence import SEQUENCE, Ruler, weight_of

NAKSHATRA_COUNT = 27
NAKSHATRA_SPAN = 360.0 / NAKSHATRA_COUNT  # 13°20'

NAKSHATRA_NAMES: Tuple[str, ...] = (
    "Ashwini", "Bharani", "Krittika", "Rohini", "Mrigashira", "Ardra",
    "Punarvasu", "Pushya", "Ashlesha", "Magha", "Purva Phalguni", "Uttara Phalguni",
    "Hasta", "Chitra", "Swati", "Vishakha", "Anuradha", "Jyeshtha",
    "Mula", "Purva Ashadha", "Uttara Ashadha", "Shravana", "Dhanishtha", "Shatabhisha",
    "Purva Bhadrapada", "Uttara Bhadrapada", "Revati",
)

# largest fraction the builder accepts; a Moon exactly on a nakshatra cusp maps here
_MAX_FRACTION = math.nextafter(1.0, 0.0)


@dataclass(frozen=True)
class BirthNakshatra:
    index: int
    name: str
    pada: int
    lord: Ruler
    progress: float          # share of the nakshatra already traversed
    balance_fraction: float  # share of the lord's Mahadasha left at birth

    @property
    def balance_years(self) -> float:
        return weight_of(self.lord) * self.balance_fraction


def moon_nakshatra(moon_lon_sidereal: float) -> Tuple[int, float]:
    """(nakshatra index 0..26, fraction already traversed within it)."""
    lon = float(moon_lon_sidereal)
    if not math.isfinite(lon):
        raise ValueError(f"moon longitude must be finite, got {moon_lon_sidereal!r}")
    lon %= 360.0
    idx = int(lon // NAKSHATRA_SPAN) % NAKSHATRA_COUNT
    within = (lon - idx * NAKSHATRA_SPAN) / NAKSHATRA_SPAN
    return idx, min(max(within, 0.0), 1.0)


def nakshatra_lord(index: int) -> Ruler:
    return SEQUENCE[index % len(SEQUENCE)].ruler


def birth_nakshatra(moon_lon_sidereal: float) -> BirthNakshatra:
    """Everything the dasha builder needs from a sidereal Moon longitude."""
    idx, within = moon_nakshatra(moon_lon_sidereal)
    pada = min(int(within * 4.0) + 1, 4)
    return BirthNakshatra(
        index=idx,
        name=NAKSHATRA_NAMES[idx],
        pada=pada,
        lord=nakshatra_lord(idx),
        progress=within,
        balance_fraction=min(1.0 - within, _MAX_FRACTION),
    )
