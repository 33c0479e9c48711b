# vimshottari/core/builder.py
# -----------------------------------------------------------------------------
# Vimshottari period tree builder
#
# Public API:
#   build_timeline(birth_instant, birth_ruler, birth_balance_fraction, ...) -> DashaTimeline
#   build_mahadashas(epoch, birth_ruler, birth_balance_fraction, year_days) -> 9 Periods
#   subdivide(parent) -> 9 Periods at parent.level + 1
#
# Guarantees:
#   • One subdivision rule for every level: child i is the i-th successor of
#     the parent ruler, duration = parent × weight / 120.
#   • Boundaries come from the running cumulative weight, never from adding
#     each child's own duration; the last child ends on the parent's end value
#     and neighbours share one boundary value (end == next.start exactly).
#   • Levels up to `eager_level` are built at construction; deeper branches
#     are expanded on first access and memoized in a bounded LRU. Eviction is
#     harmless: re-expansion yields an identical subtree.
#   • Inputs are never clamped: a bad fraction / ruler / naive instant raises
#     DashaInputError.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from numbers import Real
from typing import Dict, Iterator, List, Optional, Tuple

from vimshottari.core.model import Period, PeriodLevel, day_to_us, parse_level, us_since
from vimshottari.core.sequence import (
    SEQUENCE,
    TOTAL_YEARS,
    Ruler,
    parse_ruler,
    ruler_after,
    sequence_from,
    weight_of,
)
from vimshottari.utils.cache import LRUCache
from vimshottari.utils.metrics import MET_EXPANSIONS, MET_INPUT_ERRORS, MET_TIMELINES

__all__ = [
    "DAYS_PER_YEAR",
    "DEFAULT_EAGER_LEVEL",
    "DEFAULT_CACHE_CAPACITY",
    "DashaInputError",
    "DashaTimeline",
    "build_mahadashas",
    "build_timeline",
    "subdivide",
]

log = logging.getLogger(__name__)

DAYS_PER_YEAR: float = 365.25  # Julian year
DEFAULT_EAGER_LEVEL: PeriodLevel = PeriodLevel.ANTARDASHA
DEFAULT_CACHE_CAPACITY: int = 4096  # branches (9 periods each)


class DashaInputError(ValueError):
    """Upstream contract violation in the birth inputs."""
    def __init__(self, field: str, msg: str):
        self.field = field
        super().__init__(f"{field}: {msg}")


# ───────────────────────────── the subdivision rule ─────────────────────────────

def subdivide(parent: Period) -> Tuple[Period, ...]:
    """Split `parent` into its nine children; a Dehadasha has none."""
    if parent.is_leaf:
        return ()
    level = parent.level.deeper()
    span = parent.end_day - parent.start_day
    rulers = sequence_from(parent.ruler)
    last = len(rulers) - 1

    out: List[Period] = []
    start = parent.start_day
    cum_weight = 0
    for i, ruler in enumerate(rulers):
        weight = weight_of(ruler)
        cum_weight += weight
        end = parent.end_day if i == last else parent.start_day + span * cum_weight / TOTAL_YEARS
        out.append(Period(
            ruler=ruler,
            level=level,
            path=parent.path + (i,),
            start_day=start,
            end_day=end,
            duration_years=parent.duration_years * weight / TOTAL_YEARS,
            epoch=parent.epoch,
        ))
        start = end
    return tuple(out)


def build_mahadashas(
    epoch: datetime,
    birth_ruler: Ruler,
    birth_balance_fraction: float,
    year_days: float = DAYS_PER_YEAR,
) -> Tuple[Period, ...]:
    """
    Nine root periods: the birth ruler's unexpired balance, then eight full
    periods in cyclic order. Total span = 120 − weight × (1 − fraction) years.
    """
    out: List[Period] = []
    ruler = birth_ruler
    start = 0.0
    cum_years = 0.0
    for i in range(len(SEQUENCE)):
        years = weight_of(ruler) * birth_balance_fraction if i == 0 else float(weight_of(ruler))
        cum_years += years
        end = cum_years * year_days
        out.append(Period(
            ruler=ruler,
            level=PeriodLevel.MAHADASHA,
            path=(i,),
            start_day=start,
            end_day=end,
            duration_years=years,
            epoch=epoch,
        ))
        start = end
        ruler = ruler_after(ruler)
    return tuple(out)


# ───────────────────────────── the aggregate ─────────────────────────────

class DashaTimeline:
    """
    Root aggregate for one birth input. Immutable once built; the only
    internal mutation is memoizing lazily expanded branches.
    """

    def __init__(
        self,
        birth_instant: datetime,
        birth_ruler: Ruler,
        birth_balance_fraction: float,
        mahadashas: Tuple[Period, ...],
        *,
        year_days: float,
        eager_level: PeriodLevel,
        eager: Dict[Tuple[int, ...], Tuple[Period, ...]],
        cache_capacity: int,
    ):
        self._birth_instant = birth_instant
        self._birth_ruler = birth_ruler
        self._fraction = birth_balance_fraction
        self._mahadashas = mahadashas
        self._year_days = year_days
        self._eager_level = eager_level
        self._eager = eager
        self._branches = LRUCache(cache_capacity)
        self._expand_lock = threading.Lock()

    # ── identity ──────────────────────────────────────────────────────────
    @property
    def birth_instant(self) -> datetime:
        return self._birth_instant

    @property
    def birth_ruler(self) -> Ruler:
        return self._birth_ruler

    @property
    def birth_balance_fraction(self) -> float:
        return self._fraction

    @property
    def mahadashas(self) -> Tuple[Period, ...]:
        return self._mahadashas

    @property
    def year_days(self) -> float:
        return self._year_days

    @property
    def eager_level(self) -> PeriodLevel:
        return self._eager_level

    # ── coverage ──────────────────────────────────────────────────────────
    @property
    def elapsed_years(self) -> float:
        """Part of the birth ruler's period already spent before birth."""
        return weight_of(self._birth_ruler) * (1.0 - self._fraction)

    @property
    def balance_years(self) -> float:
        return self._mahadashas[0].duration_years

    @property
    def coverage_years(self) -> float:
        return math.fsum(p.duration_years for p in self._mahadashas)

    @property
    def start_day(self) -> float:
        return self._mahadashas[0].start_day

    @property
    def end_day(self) -> float:
        return self._mahadashas[-1].end_day

    @property
    def end(self) -> datetime:
        return self._mahadashas[-1].end

    # ── unit conversion (edge only) ─────────────────────────────────────────
    def to_day(self, t: datetime) -> float:
        if t.tzinfo is None or t.utcoffset() is None:
            raise ValueError("query instants must be timezone-aware")
        return (t - self._birth_instant).total_seconds() / 86400.0

    def to_us(self, t: datetime) -> int:
        """Whole microseconds since birth; the grid every membership test uses."""
        return us_since(self._birth_instant, t)

    def to_instant(self, day: float) -> datetime:
        return self._birth_instant + timedelta(microseconds=day_to_us(day))

    def covers(self, t: datetime) -> bool:
        us = self.to_us(t)
        return self._mahadashas[0].start_us <= us < self._mahadashas[-1].end_us

    # ── tree navigation ─────────────────────────────────────────────────────
    def children(self, period: Period) -> Tuple[Period, ...]:
        """Nine children of `period` (empty for Dehadasha), expanding on demand."""
        if period.is_leaf:
            return ()
        hit = self._eager.get(period.path)
        if hit is not None:
            return hit
        hit = self._branches.get(period.path)
        if hit is not None:
            return hit
        with self._expand_lock:
            hit = self._branches.get(period.path)
            if hit is None:
                hit = subdivide(period)
                self._branches.set(period.path, hit)
                MET_EXPANSIONS.labels(level=hit[0].level.name.lower()).inc()
                log.debug("expanded %s %s at path %s", period.ruler, period.level.display_name, period.path)
        return hit

    def period_by_path(self, path: Tuple[int, ...]) -> Period:
        """Resolve a period from its child-index path; ValueError if invalid."""
        if not path or len(path) > len(PeriodLevel):
            raise ValueError(f"invalid period path: {path!r}")
        siblings = self._mahadashas
        node: Optional[Period] = None
        for idx in path:
            if node is not None:
                siblings = self.children(node)
            if not (0 <= idx < len(siblings)):
                raise ValueError(f"invalid period path: {path!r}")
            node = siblings[idx]
        assert node is not None
        return node

    def parent_of(self, period: Period) -> Optional[Period]:
        pp = period.parent_path
        return self.period_by_path(pp) if pp is not None else None

    def iter_level(
        self,
        level: PeriodLevel,
        from_day: float = -math.inf,
        to_day: float = math.inf,
    ) -> Iterator[Period]:
        """
        Periods at `level` in time order, across all parents, that touch
        [from_day, to_day]. Branches outside the range are never expanded.
        Empty periods (the zero-length birth Mahadasha and its subtree) are
        skipped, since no instant can ever fall inside them.
        """
        def walk(periods: Tuple[Period, ...]) -> Iterator[Period]:
            for p in periods:
                if p.end_day < from_day or p.is_empty:
                    continue
                if p.start_day > to_day:
                    return
                if p.level == level:
                    yield p
                else:
                    yield from walk(self.children(p))

        yield from walk(self._mahadashas)

    @property
    def cached_branches(self) -> int:
        return len(self._branches)

    def __repr__(self) -> str:
        return (
            f"DashaTimeline(birth={self._birth_instant.isoformat()}, ruler={self._birth_ruler}, "
            f"fraction={self._fraction!r}, coverage_years={self.coverage_years:.6f})"
        )


# ───────────────────────────── construction ─────────────────────────────

def _reject(field: str, msg: str) -> DashaInputError:
    MET_INPUT_ERRORS.labels(kind=field).inc()
    return DashaInputError(field, msg)


def _check_fraction(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise _reject("birth_balance_fraction", f"must be a real number, got {type(value).__name__}")
    f = float(value)
    if not math.isfinite(f):
        raise _reject("birth_balance_fraction", "must be finite")
    if not (0.0 <= f < 1.0):
        raise _reject("birth_balance_fraction", f"must lie in [0, 1), got {f!r}")
    return f


def build_timeline(
    birth_instant: datetime,
    birth_ruler: Ruler | str,
    birth_balance_fraction: float,
    *,
    year_days: float = DAYS_PER_YEAR,
    eager_level: PeriodLevel | str | int = DEFAULT_EAGER_LEVEL,
    cache_capacity: int = DEFAULT_CACHE_CAPACITY,
) -> DashaTimeline:
    """
    Build the timeline for one birth.

    Args:
        birth_instant: timezone-aware birth moment (normalized to UTC).
        birth_ruler: lord of the birth Moon's nakshatra.
        birth_balance_fraction: share of that lord's period left at birth, [0, 1).
        year_days: days per dasha year.
        eager_level: deepest level materialized up front (Antardasha by default;
            Dehadasha builds the whole tree).
        cache_capacity: max lazily expanded branches kept in memory.

    Raises:
        DashaInputError on any contract violation.
    """
    if not isinstance(birth_instant, datetime):
        raise _reject("birth_instant", "must be a datetime")
    if birth_instant.tzinfo is None or birth_instant.utcoffset() is None:
        raise _reject("birth_instant", "must be timezone-aware")
    try:
        ruler = parse_ruler(birth_ruler)
    except ValueError as e:
        raise _reject("birth_ruler", str(e)) from e
    fraction = _check_fraction(birth_balance_fraction)
    if isinstance(year_days, bool) or not isinstance(year_days, Real) or not (0.0 < float(year_days) < math.inf):
        raise _reject("year_days", f"must be a positive number, got {year_days!r}")
    try:
        eager_at = parse_level(eager_level)
    except ValueError as e:
        raise _reject("eager_level", str(e)) from e

    epoch = birth_instant.astimezone(timezone.utc)
    roots = build_mahadashas(epoch, ruler, fraction, float(year_days))

    eager: Dict[Tuple[int, ...], Tuple[Period, ...]] = {}
    frontier: List[Period] = list(roots)
    while frontier:
        nxt: List[Period] = []
        for p in frontier:
            if p.level >= eager_at:
                continue
            kids = subdivide(p)
            eager[p.path] = kids
            nxt.extend(kids)
        frontier = nxt

    MET_TIMELINES.labels(eager_level=eager_at.name.lower()).inc()
    log.debug(
        "built timeline ruler=%s fraction=%.9f eager=%s branches=%d",
        ruler, fraction, eager_at.name, len(eager),
    )
    return DashaTimeline(
        epoch, ruler, fraction, roots,
        year_days=float(year_days),
        eager_level=eager_at,
        eager=eager,
        cache_capacity=cache_capacity,
    )
