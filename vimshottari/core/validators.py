# vimshottari/core/validators.py
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vimshottari.core.model import PeriodLevel, parse_level
from vimshottari.core.nakshatra import BirthNakshatra, birth_nakshatra
from vimshottari.core.sequence import Ruler, parse_ruler

# ───────────────────────── errors ─────────────────────────

class ValidationError(ValueError):
    """Structured payload error (has .errors() -> list of {loc, msg, type})."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "validation_error"))
        elif isinstance(details, list):
            self._details = details
            super().__init__(self._details[0]["msg"] if self._details else "validation_error")
        else:
            self._details = [{"loc": [], "msg": "validation_error", "type": "value_error"}]
            super().__init__("validation_error")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    if x != x:  # NaN
        return None
    return x

def _validate_iana_tz(tz: str, loc: List[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError([{
            "loc": loc,
            "msg": "must be a valid IANA zone like 'Asia/Kolkata'",
            "type": "value_error",
        }])


# ───────────────────────── atomic parsers ─────────────────────────

_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d+))?)?\s*$")

def parse_time_str(s: Any, loc: List[str]) -> time:
    """
    Accept 'HH:MM', 'HH:MM:SS' or 'HH:MM:SS.frac'. Fractions beyond
    microseconds are truncated; leap seconds and 24:00 are not representable.
    """
    m = _TIME_RE.match(s if isinstance(s, str) else "")
    if not m:
        raise ValidationError(_err(loc, "time must be 'HH:MM' or 'HH:MM:SS[.frac]'", "value_error.time"))
    hh = int(m.group("h")); mm = int(m.group("m")); ss = int(m.group("s") or 0)
    frac = (m.group("f") or "")[:6].ljust(6, "0")
    if not (0 <= hh <= 23 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise ValidationError(_err(loc, "time fields out of range", "value_error.time"))
    return time(hh, mm, ss, int(frac))

def parse_date(s: Any, loc: List[str]) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(_err(loc, "date must be 'YYYY-MM-DD'", "value_error.date"))

def parse_instant(value: Any, loc: List[str]) -> datetime:
    """ISO-8601 timestamp with an explicit offset ('Z' accepted)."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(_err(loc, "required ISO-8601 string", "value_error"))
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(_err(loc, "must be ISO-8601 like '1990-05-21T14:30:00+05:30'", "value_error.datetime"))
    if dt.tzinfo is None:
        raise ValidationError(_err(loc, "must carry a UTC offset", "value_error.datetime"))
    return dt

def parse_level_field(value: Any, loc: List[str], default: PeriodLevel) -> PeriodLevel:
    if value is None:
        return default
    try:
        return parse_level(value)
    except ValueError:
        raise ValidationError(_err(loc, "must be a level name (mahadasha … dehadasha) or 0..5", "value_error.level"))

def parse_window_days(value: Any, loc: List[str], default: float, max_days: float = 36525.0) -> float:
    if value is None:
        return min(default, max_days)
    x = _as_float(value)
    if x is None or not (0.0 <= x <= max_days):
        raise ValidationError(_err(loc, f"must be a number of days in [0, {max_days:g}]", "value_error.window"))
    return x

def parse_bool_field(value: Any, loc: List[str], default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(_err(loc, "must be a JSON boolean (true or false)", "type_error.bool"))
    return value

def parse_path(value: Any, loc: List[str]) -> Tuple[int, ...]:
    if not isinstance(value, list) or not value or len(value) > len(PeriodLevel):
        raise ValidationError(_err(loc, f"must be a list of 1..{len(PeriodLevel)} child indices", "type_error.list"))
    out: List[int] = []
    for i, v in enumerate(value):
        if isinstance(v, bool) or not isinstance(v, int) or not (0 <= v <= 8):
            raise ValidationError(_err(loc + [str(i)], "must be an integer in 0..8", "value_error.path"))
        out.append(v)
    return tuple(out)


# ───────────────────────── birth payload ─────────────────────────

@dataclass(frozen=True)
class BirthRequest:
    instant: datetime
    ruler: Ruler
    balance_fraction: float  # range is checked by build_timeline
    nakshatra: Optional[BirthNakshatra] = None

def _parse_birth_instant(birth: Any) -> datetime:
    if not isinstance(birth, dict):
        raise ValidationError(_err("birth", "field required (object)", "value_error.missing"))
    if "instant" in birth:
        return parse_instant(birth.get("instant"), ["birth", "instant"])
    d = parse_date(birth.get("date"), ["birth", "date"])
    t = parse_time_str(birth.get("time"), ["birth", "time"])
    tz_s = birth.get("tz") or birth.get("place_tz") or birth.get("timezone")
    if not isinstance(tz_s, str) or not tz_s.strip():
        raise ValidationError(_err(["birth", "tz"], "required IANA zone string", "value_error.missing"))
    tz = _validate_iana_tz(tz_s.strip(), ["birth", "tz"])
    return datetime.combine(d, t).replace(tzinfo=tz)

def parse_birth_payload(body: Any) -> BirthRequest:
    """
    Normalize a birth payload:
      birth: {instant} | {date, time, tz}
      plus either {ruler, balance_fraction} or {moon_longitude} (sidereal deg).
    Shape problems raise ValidationError; the fraction's range is left to
    build_timeline, which rejects it with DashaInputError.
    """
    if not isinstance(body, dict):
        raise ValidationError("payload must be an object")
    instant = _parse_birth_instant(body.get("birth"))

    if body.get("moon_longitude") is not None:
        lon = _as_float(body.get("moon_longitude"))
        if lon is None or not math.isfinite(lon):
            raise ValidationError(_err("moon_longitude", "must be a finite number (degrees)", "type_error.float"))
        nak = birth_nakshatra(lon)
        return BirthRequest(instant, nak.lord, nak.balance_fraction, nak)

    errs: List[Dict[str, Any]] = []
    ruler: Optional[Ruler] = None
    try:
        ruler = parse_ruler(body.get("ruler"))
    except ValueError:
        errs.append(_err("ruler", "must name one of the nine rulers (e.g. 'Venus')", "value_error.ruler"))
    frac = _as_float(body.get("balance_fraction"))
    if frac is None:
        errs.append(_err("balance_fraction", "required number", "type_error.float"))
    if errs:
        raise ValidationError(errs)
    assert ruler is not None
    return BirthRequest(instant, ruler, frac)

def parse_at(body: Dict[str, Any], key: str, now_utc: Optional[datetime] = None) -> datetime:
    """Optional instant field; defaults to the current UTC time."""
    if body.get(key) is None:
        return now_utc or datetime.now(timezone.utc)
    return parse_instant(body.get(key), [key])

def parse_window(body: Dict[str, Any], default_days: float, max_days: float = 36525.0) -> timedelta:
    return timedelta(days=parse_window_days(body.get("window_days"), ["window_days"], default_days, max_days))
