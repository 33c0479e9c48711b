# vimshottari/core/model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from vimshottari.core.sequence import Ruler

__all__ = ["PeriodLevel", "Period", "DashaSandhi", "parse_level", "day_to_us", "us_since"]

_US = timedelta(microseconds=1)


def day_to_us(day: float) -> int:
    """Whole microseconds in `day` days, rounded exactly as `timedelta(days=day)` rounds."""
    return timedelta(days=day) // _US


def us_since(epoch: datetime, t: datetime) -> int:
    """Microseconds from `epoch` to the aware instant `t`."""
    if t.tzinfo is None or t.utcoffset() is None:
        raise ValueError("query instants must be timezone-aware")
    return (t - epoch) // _US


class PeriodLevel(IntEnum):
    """Recursion depth of a period; 0 = Mahadasha, 5 = Dehadasha."""
    MAHADASHA = 0
    ANTARDASHA = 1
    PRATYANTARDASHA = 2
    SOOKSHMADASHA = 3
    PRANADASHA = 4
    DEHADASHA = 5

    @property
    def display_name(self) -> str:
        return _LEVEL_NAMES[self]

    @property
    def short_name(self) -> str:
        return _LEVEL_SHORT[self]

    @property
    def level_number(self) -> int:
        return int(self) + 1

    @property
    def is_leaf(self) -> bool:
        return self is PeriodLevel.DEHADASHA

    def deeper(self) -> "PeriodLevel":
        if self.is_leaf:
            raise ValueError("Dehadasha has no sub-level")
        return PeriodLevel(int(self) + 1)


_LEVEL_NAMES = {
    PeriodLevel.MAHADASHA: "Mahadasha",
    PeriodLevel.ANTARDASHA: "Antardasha/Bhukti",
    PeriodLevel.PRATYANTARDASHA: "Pratyantardasha",
    PeriodLevel.SOOKSHMADASHA: "Sookshmadasha",
    PeriodLevel.PRANADASHA: "Pranadasha",
    PeriodLevel.DEHADASHA: "Dehadasha",
}

# used in chain descriptions ("Venus Mahadasha → Sun Bhukti → …")
_LEVEL_SHORT = {
    PeriodLevel.MAHADASHA: "Mahadasha",
    PeriodLevel.ANTARDASHA: "Bhukti",
    PeriodLevel.PRATYANTARDASHA: "Pratyantar",
    PeriodLevel.SOOKSHMADASHA: "Sookshma",
    PeriodLevel.PRANADASHA: "Prana",
    PeriodLevel.DEHADASHA: "Deha",
}

_LEVEL_ALIASES = {
    "maha": PeriodLevel.MAHADASHA, "md": PeriodLevel.MAHADASHA,
    "antar": PeriodLevel.ANTARDASHA, "bhukti": PeriodLevel.ANTARDASHA, "ad": PeriodLevel.ANTARDASHA,
    "pratyantar": PeriodLevel.PRATYANTARDASHA, "pd": PeriodLevel.PRATYANTARDASHA,
    "sookshma": PeriodLevel.SOOKSHMADASHA, "sukshma": PeriodLevel.SOOKSHMADASHA,
    "prana": PeriodLevel.PRANADASHA,
    "deha": PeriodLevel.DEHADASHA,
}


def parse_level(value: Any) -> PeriodLevel:
    """Accept a PeriodLevel, its depth (0..5), or a name / common alias."""
    if isinstance(value, PeriodLevel):
        return value
    if isinstance(value, bool):
        raise ValueError(f"unknown period level: {value!r}")
    if isinstance(value, int):
        return PeriodLevel(value)
    if isinstance(value, str):
        s = value.strip().lower()
        for lvl in PeriodLevel:
            if s == lvl.name.lower():
                return lvl
        if s in _LEVEL_ALIASES:
            return _LEVEL_ALIASES[s]
        if s.isdigit():
            return PeriodLevel(int(s))
    raise ValueError(f"unknown period level: {value!r}")


@dataclass(frozen=True)
class Period:
    """
    One interval [start, end) at one level.

    Boundaries are stored as float days since the owning timeline's birth
    instant (`epoch`); `start` / `end` convert at the edge. Membership of an
    instant is decided on the microsecond grid those datetimes live on
    (`start_us` / `end_us`), so a period always contains its own reported
    `start`. `path` is the tuple of child indices from the root and is the
    only link to the parent: the parent is looked up on the timeline by
    `path[:-1]`.
    """
    ruler: Ruler
    level: PeriodLevel
    path: Tuple[int, ...]
    start_day: float
    end_day: float
    duration_years: float
    epoch: datetime = field(repr=False, compare=False)

    @property
    def start_us(self) -> int:
        return day_to_us(self.start_day)

    @property
    def end_us(self) -> int:
        return day_to_us(self.end_day)

    @property
    def start(self) -> datetime:
        return self.epoch + timedelta(microseconds=self.start_us)

    @property
    def end(self) -> datetime:
        return self.epoch + timedelta(microseconds=self.end_us)

    @property
    def duration_days(self) -> float:
        return self.end_day - self.start_day

    @property
    def is_leaf(self) -> bool:
        return self.level.is_leaf

    @property
    def parent_path(self) -> Optional[Tuple[int, ...]]:
        return self.path[:-1] if len(self.path) > 1 else None

    @property
    def is_empty(self) -> bool:
        """True when no instant can fall inside (zero-length birth period)."""
        return self.end_us <= self.start_us

    def contains_us(self, us: int) -> bool:
        return self.start_us <= us < self.end_us

    def contains(self, t: datetime) -> bool:
        """Half-open membership [start, end) of an aware instant."""
        return self.contains_us(us_since(self.epoch, t))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruler": self.ruler.display_name,
            "symbol": self.ruler.symbol,
            "level": self.level.name.lower(),
            "level_name": self.level.display_name,
            "path": list(self.path),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_years": self.duration_years,
            "duration_days": self.duration_days,
        }


@dataclass(frozen=True)
class DashaSandhi:
    """Junction between two consecutive periods at one level; derived, never stored."""
    level: PeriodLevel
    from_ruler: Ruler
    to_ruler: Ruler
    transition_instant: datetime
    sandhi_start: datetime
    sandhi_end: datetime
    from_path: Tuple[int, ...] = ()
    to_path: Tuple[int, ...] = ()

    def is_within_sandhi(self, now: datetime) -> bool:
        return self.sandhi_start <= now <= self.sandhi_end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.name.lower(),
            "level_name": self.level.display_name,
            "from_ruler": self.from_ruler.display_name,
            "to_ruler": self.to_ruler.display_name,
            "transition": self.transition_instant.isoformat(),
            "sandhi_start": self.sandhi_start.isoformat(),
            "sandhi_end": self.sandhi_end.isoformat(),
            "from_path": list(self.from_path),
            "to_path": list(self.to_path),
        }
