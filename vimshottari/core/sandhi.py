# vimshottari/core/sandhi.py
from __future__ import annotations

"""
Sandhi (period junction) detection.

A sandhi is the boundary between two consecutive periods at one level. The
flattened, time-ordered sequence at that level is walked across parent
boundaries, so a Bhukti junction that coincides with a Mahadasha change is
found like any other. Only branches overlapping the search range are expanded.

Zone policy (SandhiPolicy)
--------------------------
mode="fraction": width = fractions[level] × duration of the outgoing period
mode="fixed":    width = fixed_days
Either width is clamped to [min_days, max_days]; `before_share` of it lies
before the transition, the rest after. A zone never extends outside the
timeline (birth .. last Mahadasha end).

Transitions are matched against the query window on the same microsecond
grid the reported datetimes use.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from numbers import Real
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from vimshottari.core.builder import DashaTimeline
from vimshottari.core.model import DashaSandhi, Period, PeriodLevel, day_to_us, parse_level

__all__ = [
    "DEFAULT_LOOKAHEAD_DAYS", "DEFAULT_FRACTIONS", "DEFAULT_MAX_WINDOW_DAYS", "SandhiPolicy", "DEFAULT_POLICY",
    "upcoming_sandhis", "active_sandhis", "is_within_sandhi", "sandhi_between", "max_window_days",
]

DEFAULT_LOOKAHEAD_DAYS: float = 90.0

# Mahadasha … Dehadasha
DEFAULT_FRACTIONS: Tuple[float, ...] = (0.05, 0.10, 0.15, 0.20, 0.20, 0.20)

# longest lookahead accepted per level; a Dehadasha changes about twelve times a day
DEFAULT_MAX_WINDOW_DAYS: Tuple[float, ...] = (36525.0, 36525.0, 36525.0, 3652.5, 365.25, 90.0)

US_PER_DAY = 86_400_000_000
_SLACK_DAYS = 1e-6

SandhiMode = Literal["fraction", "fixed"]


@dataclass(frozen=True)
class SandhiPolicy:
    mode: SandhiMode = "fraction"
    fractions: Tuple[float, ...] = field(default=DEFAULT_FRACTIONS)
    fixed_days: float = 7.0
    min_days: float = 1.0
    max_days: float = 30.0
    before_share: float = 0.5

    def __post_init__(self) -> None:
        if self.mode not in ("fraction", "fixed"):
            raise ValueError(f"sandhi mode must be 'fraction' or 'fixed', got {self.mode!r}")
        if len(self.fractions) != len(PeriodLevel):
            raise ValueError(f"sandhi fractions needs {len(PeriodLevel)} entries, got {len(self.fractions)}")
        for f in self.fractions:
            if not (0.0 <= float(f) <= 1.0):
                raise ValueError(f"sandhi fraction out of [0, 1]: {f!r}")
        if not (0.0 <= self.min_days <= self.max_days) or not math.isfinite(self.max_days):
            raise ValueError("sandhi bounds need 0 <= min_days <= max_days < inf")
        if self.fixed_days < 0.0:
            raise ValueError("fixed_days must be >= 0")
        if not (0.0 <= self.before_share <= 1.0):
            raise ValueError("before_share must lie in [0, 1]")

    def width_days(self, outgoing: Period) -> float:
        if self.mode == "fixed":
            raw = self.fixed_days
        else:
            raw = self.fractions[outgoing.level] * outgoing.duration_days
        return min(self.max_days, max(self.min_days, raw))

    def split(self, outgoing: Period) -> Tuple[float, float]:
        """(days before, days after) the transition."""
        w = self.width_days(outgoing)
        before = w * self.before_share
        return before, w - before

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "fractions": {lvl.name.lower(): self.fractions[lvl] for lvl in PeriodLevel},
            "fixed_days": self.fixed_days,
            "min_days": self.min_days,
            "max_days": self.max_days,
            "before_share": self.before_share,
        }


DEFAULT_POLICY = SandhiPolicy()


def _window_days(window: timedelta | float | int) -> float:
    if isinstance(window, timedelta):
        days = window.total_seconds() / 86400.0
    elif isinstance(window, Real) and not isinstance(window, bool):
        days = float(window)
    else:
        raise ValueError(f"window must be a timedelta or a number of days, got {window!r}")
    if not (0.0 <= days < math.inf):
        raise ValueError(f"window must be a finite, non-negative span, got {window!r}")
    return days


def sandhi_between(
    timeline: DashaTimeline,
    outgoing: Period,
    incoming: Period,
    policy: SandhiPolicy = DEFAULT_POLICY,
) -> DashaSandhi:
    """Junction from `outgoing` into `incoming`; the zone is clipped to the timeline's coverage."""
    before, after = policy.split(outgoing)
    edge = outgoing.end_day
    return DashaSandhi(
        level=outgoing.level,
        from_ruler=outgoing.ruler,
        to_ruler=incoming.ruler,
        transition_instant=outgoing.end,
        sandhi_start=timeline.to_instant(max(edge - before, timeline.start_day)),
        sandhi_end=timeline.to_instant(min(edge + after, timeline.end_day)),
        from_path=outgoing.path,
        to_path=incoming.path,
    )


def _scan(
    timeline: DashaTimeline,
    level: PeriodLevel,
    from_us: int,
    to_us: int,
    policy: SandhiPolicy,
) -> List[DashaSandhi]:
    out: List[DashaSandhi] = []
    prev: Optional[Period] = None
    # prune in days with a little slack, decide on the microsecond grid
    lo = from_us / US_PER_DAY - _SLACK_DAYS
    hi = to_us / US_PER_DAY + _SLACK_DAYS
    for p in timeline.iter_level(level, lo, hi):
        if prev is not None and from_us <= prev.end_us <= to_us:
            out.append(sandhi_between(timeline, prev, p, policy))
        prev = p
    return out


def max_window_days(
    level: PeriodLevel | str | int,
    limits: Tuple[float, ...] = DEFAULT_MAX_WINDOW_DAYS,
) -> float:
    return limits[parse_level(level)]


def upcoming_sandhis(
    timeline: DashaTimeline,
    level: PeriodLevel | str | int,
    now: datetime,
    window: timedelta | float | int = DEFAULT_LOOKAHEAD_DAYS,
    policy: SandhiPolicy = DEFAULT_POLICY,
    limits: Tuple[float, ...] = DEFAULT_MAX_WINDOW_DAYS,
) -> List[DashaSandhi]:
    """
    Every junction at `level` whose transition lies in [now, now + window]
    (window in days when numeric), in time order.

    Raises ValueError when the window is longer than the level's entry in
    `limits`.
    """
    lvl = parse_level(level)
    days = _window_days(window)
    cap = max_window_days(lvl, limits)
    if days > cap:
        raise ValueError(f"window of {days:g} days exceeds the {lvl.name.lower()} limit of {cap:g} days")
    from_us = timeline.to_us(now)
    return _scan(timeline, lvl, from_us, from_us + day_to_us(days), policy)


def is_within_sandhi(sandhi: DashaSandhi, now: datetime) -> bool:
    return sandhi.is_within_sandhi(now)


def active_sandhis(
    timeline: DashaTimeline,
    now: datetime,
    levels: Iterable[PeriodLevel | str | int] = (PeriodLevel.MAHADASHA, PeriodLevel.ANTARDASHA),
    policy: SandhiPolicy = DEFAULT_POLICY,
) -> List[DashaSandhi]:
    """Junctions whose zone contains `now`, across the given levels."""
    us = timeline.to_us(now)
    reach = day_to_us(policy.max_days)
    out: List[DashaSandhi] = []
    for level in levels:
        lvl = parse_level(level)
        for s in _scan(timeline, lvl, us - reach, us + reach, policy):
            if s.is_within_sandhi(now):
                out.append(s)
    out.sort(key=lambda s: (s.transition_instant, s.level))
    return out
