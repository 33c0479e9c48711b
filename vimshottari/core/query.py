# vimshottari/core/query.py
from __future__ import annotations

"""
Read-only queries over a DashaTimeline.

- period_at / chain_at: nine-way bisect at each level, root to leaf; a query
  outside [first Mahadasha start, last Mahadasha end) finds nothing and is
  not an error.
- progress_fraction / elapsed / remaining: per-period arithmetic in the
  canonical day unit, converted to the caller's unit at the end.
- Duration strings follow the level's convention: years/months for the two
  coarse levels, days/hours for Pratyantardasha, minutes for the fine levels.
"""

import bisect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from vimshottari.core.builder import DashaTimeline
from vimshottari.core.model import Period, PeriodLevel, parse_level, us_since
from vimshottari.core.sequence import Ruler

__all__ = [
    "Unit", "UNITS", "PeriodChain",
    "period_at", "chain_at", "next_mahadasha",
    "progress_fraction", "elapsed", "remaining", "default_unit",
    "duration_string", "remaining_string", "period_summary",
]

Unit = Literal["years", "months", "days", "hours", "minutes"]
UNITS: Tuple[str, ...] = ("years", "months", "days", "hours", "minutes")

_DEFAULT_UNITS: Dict[PeriodLevel, str] = {
    PeriodLevel.MAHADASHA: "years",
    PeriodLevel.ANTARDASHA: "days",
    PeriodLevel.PRATYANTARDASHA: "days",
    PeriodLevel.SOOKSHMADASHA: "hours",
    PeriodLevel.PRANADASHA: "minutes",
    PeriodLevel.DEHADASHA: "minutes",
}


# ───────────────────────── search ─────────────────────────

def _find(periods: Tuple[Period, ...], us: int) -> Optional[Period]:
    if not periods:
        return None
    starts = [p.start_us for p in periods]
    i = bisect.bisect_right(starts, us) - 1
    if i < 0:
        return None
    p = periods[i]
    return p if p.contains_us(us) else None


@dataclass(frozen=True)
class PeriodChain:
    """Active period at each level from Mahadasha down; empty when nothing is active."""
    at: datetime
    periods: Tuple[Period, ...] = ()

    def __len__(self) -> int:
        return len(self.periods)

    def __bool__(self) -> bool:
        return bool(self.periods)

    def get(self, level: PeriodLevel) -> Optional[Period]:
        lvl = parse_level(level)
        return self.periods[lvl] if lvl < len(self.periods) else None

    @property
    def mahadasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.MAHADASHA)

    @property
    def antardasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.ANTARDASHA)

    @property
    def pratyantardasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.PRATYANTARDASHA)

    @property
    def sookshmadasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.SOOKSHMADASHA)

    @property
    def pranadasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.PRANADASHA)

    @property
    def dehadasha(self) -> Optional[Period]:
        return self.get(PeriodLevel.DEHADASHA)

    @property
    def deepest(self) -> Optional[Period]:
        return self.periods[-1] if self.periods else None

    def parent_of(self, period: Period) -> Optional[Period]:
        """Parent within this chain, resolved by path (weak link)."""
        pp = period.parent_path
        if pp is None:
            return None
        for p in self.periods:
            if p.path == pp:
                return p
        return None

    def lords(self) -> List[Ruler]:
        return [p.ruler for p in self.periods]

    def active_rulers(self) -> List[Tuple[PeriodLevel, Ruler]]:
        return [(p.level, p.ruler) for p in self.periods]

    def combined(self) -> str:
        return "-".join(r.display_name for r in self.lords())

    def description(self) -> str:
        if not self.periods:
            return "No active Dasha period"
        return " → ".join(f"{p.ruler.display_name} {p.level.short_name}" for p in self.periods)

    def short_description(self) -> str:
        if not self.periods:
            return "--"
        return "-".join(p.ruler.symbol for p in self.periods)


def chain_at(
    timeline: DashaTimeline,
    t: datetime,
    depth: PeriodLevel | str | int = PeriodLevel.DEHADASHA,
) -> PeriodChain:
    """Descend from the Mahadashas to `depth`, one nine-way search per level."""
    target = parse_level(depth)
    us = timeline.to_us(t)
    found: List[Period] = []
    siblings = timeline.mahadashas
    while True:
        p = _find(siblings, us)
        if p is None:
            break
        found.append(p)
        if p.level >= target:
            break
        siblings = timeline.children(p)
    return PeriodChain(at=t, periods=tuple(found))


def period_at(
    timeline: DashaTimeline,
    t: datetime,
    level: PeriodLevel | str | int = PeriodLevel.MAHADASHA,
) -> Optional[Period]:
    """Period active at `t` on `level`, or None outside coverage."""
    lvl = parse_level(level)
    chain = chain_at(timeline, t, lvl)
    return chain.get(lvl)


def next_mahadasha(timeline: DashaTimeline, t: datetime) -> Optional[Period]:
    us = timeline.to_us(t)
    for p in timeline.mahadashas:
        if p.start_us > us:
            return p
    return None


# ───────────────────────── progress / remaining ─────────────────────────

def _day_of(period: Period, t: datetime) -> float:
    if t.tzinfo is None or t.utcoffset() is None:
        raise ValueError("query instants must be timezone-aware")
    return (t - period.epoch).total_seconds() / 86400.0


def _edge(period: Period, t: datetime) -> int:
    """-1 at or before start, 1 at or after end, 0 strictly inside (microsecond grid)."""
    us = us_since(period.epoch, t)
    if us <= period.start_us:
        return -1
    if us >= period.end_us:
        return 1
    return 0


def progress_fraction(period: Period, t: datetime) -> float:
    """(t − start) / duration, clamped to [0, 1]."""
    edge = _edge(period, t)
    if edge:
        return 0.0 if edge < 0 else 1.0
    span = period.duration_days
    return min(1.0, max(0.0, (_day_of(period, t) - period.start_day) / span))


def default_unit(level: PeriodLevel) -> str:
    return _DEFAULT_UNITS[parse_level(level)]


def _convert(days: float, period: Period, unit: str) -> float:
    if unit == "days":
        return days
    if unit == "hours":
        return days * 24.0
    if unit == "minutes":
        return days * 1440.0
    # years/months via the period's own year:day ratio; no calendar assumption
    span = period.duration_days
    years = 0.0 if span <= 0.0 else days / span * period.duration_years
    if unit == "years":
        return years
    if unit == "months":
        return years * 12.0
    raise ValueError(f"unknown unit {unit!r}; expected one of {', '.join(UNITS)}")


def elapsed(period: Period, t: datetime, unit: Optional[str] = None) -> float:
    u = unit or default_unit(period.level)
    return _convert(progress_fraction(period, t) * period.duration_days, period, u)


def remaining(period: Period, t: datetime, unit: Optional[str] = None) -> float:
    """end − t in `unit` (level default when omitted), clamped to [0, duration]."""
    u = unit or default_unit(period.level)
    edge = _edge(period, t)
    if edge:
        left = period.duration_days if edge < 0 else 0.0
    else:
        left = min(period.duration_days, max(0.0, period.end_day - _day_of(period, t)))
    return _convert(left, period, u)


# ───────────────────────── duration strings ─────────────────────────

def _years_months(years: float) -> str:
    total_m = int(round(years * 12.0))
    y, m = divmod(total_m, 12)
    if y and m:
        return f"{y}y {m}m"
    if y:
        return f"{y}y"
    return f"{m}m"


def _dhm(minutes_total: int) -> str:
    hours, mins = divmod(max(0, minutes_total), 60)
    if hours >= 24:
        days, hours = divmod(hours, 24)
        return f"{days}d {hours}h {mins}m"
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def _span_string(level: PeriodLevel, days: float, years: float) -> str:
    if level <= PeriodLevel.ANTARDASHA:
        return _years_months(years)
    if level == PeriodLevel.PRATYANTARDASHA:
        hours_total = int(round(days * 24.0))
        d, h = divmod(hours_total, 24)
        return f"{d}d {h}h" if h else f"{d}d"
    return _dhm(int(round(days * 1440.0)))


def duration_string(period: Period) -> str:
    return _span_string(period.level, period.duration_days, period.duration_years)


def remaining_string(period: Period, t: datetime) -> str:
    return _span_string(period.level, remaining(period, t, "days"), remaining(period, t, "years"))


def period_summary(period: Period, t: datetime) -> Dict[str, Any]:
    """Period dict enriched with progress/remaining at `t`, for display layers."""
    unit = default_unit(period.level)
    out = period.to_dict()
    out.update({
        "progress": progress_fraction(period, t),
        "remaining": remaining(period, t, unit),
        "remaining_unit": unit,
        "remaining_text": remaining_string(period, t),
        "duration_text": duration_string(period),
        "active": period.contains(t),
    })
    return out
