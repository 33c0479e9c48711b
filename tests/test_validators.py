# tests/test_validators.py
from __future__ import annotations

import math
from datetime import datetime, time, timedelta, timezone

import pytest

from vimshottari.core.model import PeriodLevel
from vimshottari.core.sequence import Ruler
from vimshottari.core.validators import (
    ValidationError,
    parse_at,
    parse_bool_field,
    parse_birth_payload,
    parse_instant,
    parse_level_field,
    parse_path,
    parse_time_str,
    parse_window,
)


def _locs(exc: ValidationError):
    return [tuple(e["loc"]) for e in exc.errors()]


# ─────────────────────────────────────────────────────────────────────────────
# Atomic parsers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw,expected", [
    ("05:25", time(5, 25)),
    ("23:59:59", time(23, 59, 59)),
    ("12:00:00.1234567", time(12, 0, 0, 123456)),
])
def test_time_parsing(raw, expected) -> None:
    assert parse_time_str(raw, ["t"]) == expected


@pytest.mark.parametrize("raw", ["24:00", "23:60", "12:00:60", "noon", "", None, 1200])
def test_time_rejects(raw) -> None:
    with pytest.raises(ValidationError):
        parse_time_str(raw, ["t"])


def test_instant_requires_offset() -> None:
    dt = parse_instant("1990-05-21T14:30:00Z", ["at"])
    assert dt == datetime(1990, 5, 21, 14, 30, tzinfo=timezone.utc)
    dt = parse_instant("1990-05-21T14:30:00+05:30", ["at"])
    assert dt.utcoffset() == timedelta(hours=5, minutes=30)
    with pytest.raises(ValidationError) as ei:
        parse_instant("1990-05-21T14:30:00", ["at"])
    assert _locs(ei.value) == [("at",)]
    with pytest.raises(ValidationError):
        parse_instant("yesterday", ["at"])


def test_level_field() -> None:
    assert parse_level_field(None, ["level"], PeriodLevel.ANTARDASHA) is PeriodLevel.ANTARDASHA
    assert parse_level_field("bhukti", ["level"], PeriodLevel.MAHADASHA) is PeriodLevel.ANTARDASHA
    assert parse_level_field(3, ["level"], PeriodLevel.MAHADASHA) is PeriodLevel.SOOKSHMADASHA
    for bad in ("tenth", 6, -1, True):
        with pytest.raises(ValidationError):
            parse_level_field(bad, ["level"], PeriodLevel.MAHADASHA)


def test_path_field() -> None:
    assert parse_path([0, 8, 3], ["path"]) == (0, 8, 3)
    for bad in (None, [], [9], [0, "1"], [True], [0] * 7, "0,1"):
        with pytest.raises(ValidationError):
            parse_path(bad, ["path"])


def test_window_field() -> None:
    assert parse_window({}, 90.0) == timedelta(days=90)
    assert parse_window({"window_days": 7.5}, 90.0) == timedelta(days=7.5)
    for bad in (-1, "x", math.nan, 40000, True):
        with pytest.raises(ValidationError):
            parse_window({"window_days": bad}, 90.0)
    assert parse_window({}, 90.0, 30.0) == timedelta(days=30)
    assert parse_window({"window_days": 30}, 90.0, 30.0) == timedelta(days=30)
    with pytest.raises(ValidationError) as ei:
        parse_window({"window_days": 31}, 90.0, 30.0)
    assert _locs(ei.value) == [("window_days",)]


def test_bool_field() -> None:
    assert parse_bool_field(None, ["flag"], True) is True
    assert parse_bool_field(False, ["flag"], True) is False
    for bad in ("false", "true", 0, 1, []):
        with pytest.raises(ValidationError) as ei:
            parse_bool_field(bad, ["flag"], True)
        assert _locs(ei.value) == [("flag",)]


def test_at_defaults_to_now() -> None:
    fixed = datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert parse_at({}, "at", now_utc=fixed) == fixed
    assert parse_at({"at": "2031-01-01T00:00:00Z"}, "at", now_utc=fixed).year == 2031
    assert parse_at({}, "now").tzinfo is not None


# ─────────────────────────────────────────────────────────────────────────────
# Birth payload
# ─────────────────────────────────────────────────────────────────────────────

def test_birth_with_ruler_and_fraction() -> None:
    br = parse_birth_payload({
        "birth": {"instant": "1990-01-01T00:00:00Z"},
        "ruler": "venus",
        "balance_fraction": 0.5,
    })
    assert br.ruler is Ruler.VENUS
    assert br.balance_fraction == 0.5
    assert br.instant == datetime(1990, 1, 1, tzinfo=timezone.utc)
    assert br.nakshatra is None


def test_birth_civil_time_with_zone() -> None:
    br = parse_birth_payload({
        "birth": {"date": "1992-11-04", "time": "05:25", "place_tz": "Asia/Kolkata"},
        "ruler": "Ju",
        "balance_fraction": "0.25",
    })
    assert br.instant.utcoffset() == timedelta(hours=5, minutes=30)
    assert br.instant.astimezone(timezone.utc) == datetime(1992, 11, 3, 23, 55, tzinfo=timezone.utc)
    assert br.ruler is Ruler.JUPITER
    assert br.balance_fraction == 0.25


def test_birth_from_moon_longitude() -> None:
    br = parse_birth_payload({
        "birth": {"instant": "2000-01-01T12:00:00+00:00"},
        "moon_longitude": 20.0,
    })
    assert br.nakshatra is not None
    assert br.nakshatra.name == "Bharani"
    assert br.ruler is Ruler.VENUS
    assert 0.0 < br.balance_fraction < 1.0


def test_birth_collects_errors() -> None:
    with pytest.raises(ValidationError) as ei:
        parse_birth_payload({"birth": {"instant": "2000-01-01T00:00:00Z"}, "ruler": "Pluto"})
    assert set(_locs(ei.value)) == {("ruler",), ("balance_fraction",)}


@pytest.mark.parametrize("body,loc", [
    ({}, ("birth",)),
    ({"birth": {"date": "1990-13-01", "time": "10:00", "tz": "UTC"}}, ("birth", "date")),
    ({"birth": {"date": "1990-01-01", "time": "10:00"}}, ("birth", "tz")),
    ({"birth": {"date": "1990-01-01", "time": "10:00", "tz": "Mars/Olympus"}}, ("birth", "tz")),
    ({"birth": {"instant": "2000-01-01T00:00:00Z"}, "moon_longitude": "north"}, ("moon_longitude",)),
])
def test_birth_shape_errors(body, loc) -> None:
    with pytest.raises(ValidationError) as ei:
        parse_birth_payload(body)
    assert loc in _locs(ei.value)


def test_fraction_range_left_to_builder() -> None:
    br = parse_birth_payload({"birth": {"instant": "2000-01-01T00:00:00Z"}, "ruler": "Sun", "balance_fraction": 1.5})
    assert br.balance_fraction == 1.5


def test_validation_error_shapes() -> None:
    assert ValidationError("boom").errors() == [{"loc": [], "msg": "boom", "type": "value_error"}]
    e = ValidationError({"loc": ["x"], "msg": "bad", "type": "t"})
    assert str(e) == "bad"
    assert isinstance(e, ValueError)
