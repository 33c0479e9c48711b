# vimshottari/utils/config.py
import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from vimshottari.core.builder import DAYS_PER_YEAR, DEFAULT_CACHE_CAPACITY, DEFAULT_EAGER_LEVEL
from vimshottari.core.model import PeriodLevel, parse_level
from vimshottari.core.sandhi import DEFAULT_LOOKAHEAD_DAYS, DEFAULT_MAX_WINDOW_DAYS, DEFAULT_POLICY, SandhiPolicy

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/defaults.yaml"

class AttrDict(dict):
    """Dict that also supports attribute access: cfg.engine and cfg['engine'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _load_json_if(path):
    if not path:
        return {}
    if not os.path.exists(path):
        log.warning("optional config file not found: %s", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f) or {}

def load_config(path: Optional[str] = None):
    """
    Load YAML config from `path` (or $DASHA_CONFIG, or config/defaults.yaml)
    and apply env overrides:
      - DASHA_YEAR_DAYS      (engine.year_days)
      - DASHA_EAGER_LEVEL    (engine.eager_level)
      - DASHA_SANDHI_POLICY  (JSON file merged over the 'sandhi' section)
    Returns an AttrDict for convenient access.
    """
    path = path or os.getenv("DASHA_CONFIG", DEFAULT_CONFIG_PATH)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    engine = data.setdefault("engine", {}) or {}
    data["engine"] = engine
    year_days = os.getenv("DASHA_YEAR_DAYS")
    if year_days:
        engine["year_days"] = float(year_days)
    eager = os.getenv("DASHA_EAGER_LEVEL")
    if eager:
        engine["eager_level"] = eager

    policy_path = os.getenv("DASHA_SANDHI_POLICY")
    if policy_path:
        sandhi = dict(data.get("sandhi") or {})
        sandhi.update(_load_json_if(policy_path))
        data["sandhi"] = sandhi

    return _to_attr(data)


@dataclass(frozen=True)
class EngineSettings:
    year_days: float = DAYS_PER_YEAR
    eager_level: PeriodLevel = DEFAULT_EAGER_LEVEL
    cache_capacity: int = DEFAULT_CACHE_CAPACITY
    lookahead_days: float = DEFAULT_LOOKAHEAD_DAYS
    sandhi: SandhiPolicy = field(default=DEFAULT_POLICY)
    max_window_days: Tuple[float, ...] = DEFAULT_MAX_WINDOW_DAYS

    def build_kwargs(self) -> Dict[str, Any]:
        return {
            "year_days": self.year_days,
            "eager_level": self.eager_level,
            "cache_capacity": self.cache_capacity,
        }


def _per_level(value: Any, default: Tuple[float, ...]) -> Tuple[float, ...]:
    """Per-level floats given as a {level: value} map (partial) or a full list."""
    if isinstance(value, dict):
        out = list(default)
        for k, v in value.items():
            out[parse_level(k)] = float(v)
        return tuple(out)
    if isinstance(value, list):
        return tuple(float(x) for x in value)
    return default


def _window_limits(section: Dict[str, Any]) -> Tuple[float, ...]:
    limits = _per_level(section.get("max_window_days"), DEFAULT_MAX_WINDOW_DAYS)
    if len(limits) != len(PeriodLevel) or not all(0.0 < x < float("inf") for x in limits):
        raise ValueError(f"sandhi.max_window_days needs {len(PeriodLevel)} positive, finite entries")
    return limits


def _sandhi_policy(section: Dict[str, Any]) -> SandhiPolicy:
    if not section:
        return DEFAULT_POLICY
    fractions_t = _per_level(section.get("fractions"), DEFAULT_POLICY.fractions)
    return SandhiPolicy(
        mode=str(section.get("mode", DEFAULT_POLICY.mode)),  # type: ignore[arg-type]
        fractions=fractions_t,
        fixed_days=float(section.get("fixed_days", DEFAULT_POLICY.fixed_days)),
        min_days=float(section.get("min_days", DEFAULT_POLICY.min_days)),
        max_days=float(section.get("max_days", DEFAULT_POLICY.max_days)),
        before_share=float(section.get("before_share", DEFAULT_POLICY.before_share)),
    )


def engine_settings(cfg: Optional[Dict[str, Any]]) -> EngineSettings:
    """Typed engine settings from a loaded config; missing keys use defaults."""
    cfg = cfg or {}
    engine = cfg.get("engine") or {}
    sandhi = cfg.get("sandhi") or {}
    return EngineSettings(
        year_days=float(engine.get("year_days", DAYS_PER_YEAR)),
        eager_level=parse_level(engine.get("eager_level", DEFAULT_EAGER_LEVEL)),
        cache_capacity=int(engine.get("cache_capacity", DEFAULT_CACHE_CAPACITY)),
        lookahead_days=float(sandhi.get("lookahead_days", DEFAULT_LOOKAHEAD_DAYS)),
        sandhi=_sandhi_policy(sandhi),
        max_window_days=_window_limits(sandhi),
    )
