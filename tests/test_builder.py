# tests/test_builder.py
from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from hypothesis import given, strategies as st

from vimshottari.core.builder import (
    DashaInputError,
    build_mahadashas,
    build_timeline,
    subdivide,
)
from vimshottari.core.model import PeriodLevel
from vimshottari.core.sequence import Ruler, ruler_after, sequence_from, weight_of

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
UTC = timezone.utc


def _assert_branch_ok(parent, kids) -> None:
    assert len(kids) == 9
    assert kids[0].ruler is parent.ruler
    assert [k.ruler for k in kids] == list(sequence_from(parent.ruler))
    assert kids[0].start_day == parent.start_day
    assert kids[-1].end_day == parent.end_day
    for a, b in zip(kids, kids[1:]):
        assert a.end_day == b.start_day
        assert a.end == b.start
    assert all(k.level == parent.level + 1 for k in kids)
    assert all(k.path[:-1] == parent.path for k in kids)
    assert math.isclose(math.fsum(k.duration_years for k in kids), parent.duration_years, rel_tol=1e-12, abs_tol=1e-12)
    assert math.isclose(math.fsum(k.duration_days for k in kids), parent.duration_days, rel_tol=1e-12, abs_tol=1e-9)


def _descend(tl, path):
    """Yield (parent, children) pairs along `path` from a Mahadasha down."""
    node = tl.mahadashas[path[0]]
    for idx in path[1:]:
        kids = tl.children(node)
        yield node, kids
        node = kids[idx]
    kids = tl.children(node)
    if kids:
        yield node, kids


# ─────────────────────────────────────────────────────────────────────────────
# Unit tests
# ─────────────────────────────────────────────────────────────────────────────

def test_mahadashas_from_birth_ruler(venus_timeline, t0) -> None:
    mds = venus_timeline.mahadashas
    assert len(mds) == 9
    assert [p.ruler for p in mds] == list(sequence_from(Ruler.VENUS))
    assert mds[0].duration_years == 10.0
    assert mds[0].start == t0
    assert mds[0].end_day == 10 * 365.25
    assert mds[1].ruler is Ruler.SUN
    assert mds[1].end_day == 16 * 365.25
    for a, b in zip(mds, mds[1:]):
        assert a.end_day == b.start_day
    assert [p.duration_years for p in mds[1:]] == [float(weight_of(p.ruler)) for p in mds[1:]]


def test_coverage_totals(venus_timeline, t0) -> None:
    assert venus_timeline.elapsed_years == 10.0
    assert venus_timeline.balance_years == 10.0
    assert math.isclose(venus_timeline.coverage_years, 110.0, rel_tol=0, abs_tol=1e-12)
    assert math.isclose(venus_timeline.end_day, 110 * 365.25, abs_tol=1e-9)
    assert venus_timeline.end == t0 + timedelta(days=110 * 365.25)


@pytest.mark.parametrize("path", [
    (0, 0, 0, 0, 0),
    (8, 8, 8, 8, 8),
    (0, 8, 0, 8, 0),
    (4, 5, 6, 7, 3),
])
def test_conservation_and_contiguity_on_sampled_branches(venus_timeline, path) -> None:
    levels_seen = set()
    for parent, kids in _descend(venus_timeline, path):
        _assert_branch_ok(parent, kids)
        levels_seen.add(kids[0].level)
    assert levels_seen == set(PeriodLevel) - {PeriodLevel.MAHADASHA}


def test_dehadasha_is_leaf(venus_timeline) -> None:
    deha = venus_timeline.period_by_path((2, 3, 4, 5, 6, 7))
    assert deha.level is PeriodLevel.DEHADASHA
    assert deha.is_leaf
    assert venus_timeline.children(deha) == ()
    assert subdivide(deha) == ()


def test_flattened_level_is_contiguous(venus_timeline) -> None:
    ads = list(venus_timeline.iter_level(PeriodLevel.ANTARDASHA))
    assert len(ads) == 81
    assert ads[0].start_day == venus_timeline.start_day
    assert ads[-1].end_day == venus_timeline.end_day
    for a, b in zip(ads, ads[1:]):
        assert a.end_day == b.start_day


def test_iter_level_prunes_to_range(venus_timeline) -> None:
    before = venus_timeline.cached_branches
    pds = list(venus_timeline.iter_level(PeriodLevel.PRATYANTARDASHA, 100.0, 200.0))
    assert pds
    assert all(p.end_day >= 100.0 and p.start_day <= 200.0 for p in pds)
    # only Antardashas overlapping the range were expanded
    assert venus_timeline.cached_branches - before <= 2


def test_parent_lookup_by_path(venus_timeline) -> None:
    pd = venus_timeline.period_by_path((1, 2, 3))
    ad = venus_timeline.parent_of(pd)
    md = venus_timeline.parent_of(ad)
    assert ad.path == (1, 2)
    assert md.path == (1,)
    assert md.ruler is Ruler.SUN
    assert ad.ruler is sequence_from(Ruler.SUN)[2]
    assert venus_timeline.parent_of(md) is None


@pytest.mark.parametrize("bad", [(), (9,), (0, 9), (0, 0, 0, 0, 0, 0, 0), (-1,)])
def test_period_by_path_rejects_bad_paths(venus_timeline, bad) -> None:
    with pytest.raises(ValueError):
        venus_timeline.period_by_path(bad)


def test_idempotent_rebuild(t0) -> None:
    a = build_timeline(t0, Ruler.MOON, 0.3141592653589793)
    b = build_timeline(t0, Ruler.MOON, 0.3141592653589793)
    assert a.mahadashas == b.mahadashas
    assert list(a.iter_level(PeriodLevel.PRATYANTARDASHA)) == list(b.iter_level(PeriodLevel.PRATYANTARDASHA))
    deep = (3, 1, 4, 1, 5, 8)
    assert a.period_by_path(deep) == b.period_by_path(deep)


def test_zero_fraction_keeps_empty_first_mahadasha(t0) -> None:
    tl = build_timeline(t0, Ruler.KETU, 0.0)
    assert len(tl.mahadashas) == 9
    assert tl.mahadashas[0].ruler is Ruler.KETU
    assert tl.mahadashas[0].duration_days == 0.0
    assert tl.mahadashas[1].ruler is Ruler.VENUS
    assert tl.mahadashas[1].start_day == 0.0
    assert math.isclose(tl.coverage_years, 113.0, abs_tol=1e-12)
    assert tl.mahadashas[0].is_empty
    # the empty root and its subtree never show up in a level walk
    assert [p.path for p in tl.iter_level(PeriodLevel.MAHADASHA)] == [(i,) for i in range(1, 9)]
    assert len(list(tl.iter_level(PeriodLevel.ANTARDASHA))) == 72


def test_epoch_normalized_to_utc() -> None:
    local = datetime(2001, 7, 1, 14, 45, tzinfo=ZoneInfo("Europe/Berlin"))
    tl = build_timeline(local, "Saturn", 0.25)
    assert tl.birth_instant.utcoffset() == timedelta(0)
    assert tl.birth_instant == local
    assert tl.mahadashas[0].start == local


def test_eager_level_controls_prebuilt_depth(t0) -> None:
    tl = build_timeline(t0, Ruler.RAHU, 0.75, eager_level=PeriodLevel.PRATYANTARDASHA)
    list(tl.iter_level(PeriodLevel.PRATYANTARDASHA))
    assert tl.cached_branches == 0
    tl.children(tl.period_by_path((0, 0, 0)))
    assert tl.cached_branches == 1

    shallow = build_timeline(t0, Ruler.RAHU, 0.75, eager_level="mahadasha")
    shallow.children(shallow.mahadashas[0])
    assert shallow.cached_branches == 1


def test_lru_eviction_reexpands_identically(t0) -> None:
    tl = build_timeline(t0, Ruler.MARS, 0.6, cache_capacity=1)
    p1 = tl.period_by_path((0, 0, 0))
    p2 = tl.period_by_path((0, 0, 1))
    first = tl.children(p1)
    tl.children(p2)  # evicts p1's branch
    assert tl.cached_branches == 1
    assert tl.children(p1) == first


def test_lazy_expansion_under_threads(venus_timeline) -> None:
    target = venus_timeline.period_by_path((5, 4, 3, 2))
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: venus_timeline.children(target), range(64)))
    assert all(r is results[0] for r in results)
    _assert_branch_ok(target, results[0])


def test_build_mahadashas_direct(t0) -> None:
    mds = build_mahadashas(t0, Ruler.MERCURY, 0.5, year_days=360.0)
    assert mds[0].end_day == 8.5 * 360.0
    assert mds[1].ruler is ruler_after(Ruler.MERCURY) is Ruler.KETU


# ─────────────────────────────────────────────────────────────────────────────
# Input contract
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("fraction", [-0.1, 1.0, 1.5, math.nan, math.inf, True, "0.5", None])
def test_invalid_fraction_rejected(t0, fraction) -> None:
    with pytest.raises(DashaInputError) as ei:
        build_timeline(t0, Ruler.VENUS, fraction)
    assert ei.value.field == "birth_balance_fraction"


def test_naive_instant_rejected() -> None:
    with pytest.raises(DashaInputError) as ei:
        build_timeline(datetime(1990, 1, 1), Ruler.VENUS, 0.5)
    assert ei.value.field == "birth_instant"


def test_unknown_ruler_rejected(t0) -> None:
    with pytest.raises(DashaInputError) as ei:
        build_timeline(t0, "Pluto", 0.5)
    assert ei.value.field == "birth_ruler"


@pytest.mark.parametrize("year_days", [0, -365.25, math.inf, math.nan])
def test_bad_year_days_rejected(t0, year_days) -> None:
    with pytest.raises(DashaInputError):
        build_timeline(t0, Ruler.VENUS, 0.5, year_days=year_days)


def test_input_error_is_value_error(t0) -> None:
    with pytest.raises(ValueError):
        build_timeline(t0, Ruler.VENUS, 2.0)


def test_naive_query_instant_rejected(venus_timeline) -> None:
    with pytest.raises(ValueError):
        venus_timeline.to_day(datetime(2000, 1, 1))


# ─────────────────────────────────────────────────────────────────────────────
# Property tests (Hypothesis)
# ─────────────────────────────────────────────────────────────────────────────
_idx = st.integers(min_value=0, max_value=8)


@given(
    ruler=st.sampled_from(list(Ruler)),
    fraction=st.floats(min_value=0.0, max_value=1.0, exclude_max=True, allow_nan=False),
    path=st.tuples(_idx, _idx, _idx, _idx, _idx),
)
def test_property_branch_conservation(ruler, fraction, path) -> None:
    tl = build_timeline(datetime(1985, 6, 15, 3, 30, tzinfo=UTC), ruler, fraction)
    for parent, kids in _descend(tl, path):
        _assert_branch_ok(parent, kids)


@given(
    ruler=st.sampled_from(list(Ruler)),
    fraction=st.floats(min_value=0.0, max_value=1.0, exclude_max=True, allow_nan=False),
)
def test_property_coverage_total(ruler, fraction) -> None:
    tl = build_timeline(datetime(1970, 1, 1, tzinfo=UTC), ruler, fraction)
    expected = 120.0 - weight_of(ruler) * (1.0 - fraction)
    assert math.isclose(tl.coverage_years, expected, rel_tol=1e-12, abs_tol=1e-9)
    assert math.isclose(tl.end_day, expected * 365.25, rel_tol=1e-12, abs_tol=1e-6)
    assert [p.ruler for p in tl.mahadashas] == list(sequence_from(ruler))
