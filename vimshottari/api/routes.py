# vimshottari/api/routes.py
"""
Vimshottari: API routes
- Timeline (nine Mahadashas, optional Antardashas)
- Current chain at an instant (progress / remaining per level)
- Children of any period by path (lazy expansion on demand)
- Upcoming sandhis at a level within a lookahead window (capped per level)
- Ops: /api/health, /api/dasha/config

Notes:
- "now"/"at" default to the current UTC time when the caller omits them;
  the engine itself never reads the clock.
- Payload shape errors → 400 validation_error (with .errors() details);
  birth-input contract errors → 400 invalid_birth_input.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from flask import Blueprint, current_app, jsonify, request

from vimshottari.version import VERSION
from vimshottari.utils.config import EngineSettings, engine_settings
from vimshottari.core.builder import DashaInputError, DashaTimeline, build_timeline
from vimshottari.core.model import PeriodLevel
from vimshottari.core.query import chain_at, next_mahadasha, period_summary
from vimshottari.core.sandhi import active_sandhis, upcoming_sandhis
from vimshottari.core.sequence import SEQUENCE, TOTAL_YEARS
from vimshottari.core.validators import (
    BirthRequest,
    ValidationError,
    parse_at,
    parse_bool_field,
    parse_birth_payload,
    parse_level_field,
    parse_path,
    parse_window,
)

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)


# ───────────────────────── helpers ─────────────────────────
def _json_error(code: str, details: Any = None, http: int = 400):
    out: Dict[str, Any] = {"ok": False, "error": code}
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def _settings() -> EngineSettings:
    s = current_app.config.get("DASHA_SETTINGS")
    return s if isinstance(s, EngineSettings) else engine_settings(None)


def _body() -> Dict[str, Any]:
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


def _timeline_for(body: Dict[str, Any]) -> Tuple[BirthRequest, DashaTimeline]:
    birth = parse_birth_payload(body)
    tl = build_timeline(birth.instant, birth.ruler, birth.balance_fraction, **_settings().build_kwargs())
    return birth, tl


def _birth_blob(birth: BirthRequest, tl: DashaTimeline) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "instant": tl.birth_instant.isoformat(),
        "ruler": tl.birth_ruler.display_name,
        "balance_fraction": tl.birth_balance_fraction,
        "balance_years": tl.balance_years,
        "elapsed_years": tl.elapsed_years,
        "coverage_years": tl.coverage_years,
        "coverage_end": tl.end.isoformat(),
    }
    if birth.nakshatra is not None:
        nk = birth.nakshatra
        out["nakshatra"] = {"index": nk.index, "name": nk.name, "pada": nk.pada, "progress": nk.progress}
    return out


def _input_error(e: DashaInputError):
    log.info("rejected birth input: %s", e)
    return _json_error("invalid_birth_input", {"field": e.field, "msg": str(e)}, 400)


# ───────────────────────── health / ops ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


@api.get("/api/dasha/config")
def config_info():
    s = _settings()
    return jsonify({
        "ok": True,
        "sequence": [{"ruler": e.ruler.display_name, "symbol": e.ruler.symbol, "years": e.years} for e in SEQUENCE],
        "total_years": TOTAL_YEARS,
        "year_days": s.year_days,
        "eager_level": s.eager_level.name.lower(),
        "cache_capacity": s.cache_capacity,
        "lookahead_days": s.lookahead_days,
        "max_window_days": {lvl.name.lower(): s.max_window_days[lvl] for lvl in PeriodLevel},
        "sandhi": s.sandhi.to_dict(),
        "version": VERSION,
    }), 200


# ───────────────────────── timeline ─────────────────────────
@api.post("/api/dasha/timeline")
def timeline_endpoint():
    try:
        body = _body()
        birth, tl = _timeline_for(body)
        with_antar = parse_bool_field(body.get("include_antardasha"), ["include_antardasha"], True)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaInputError as e:
        return _input_error(e)

    rows: List[Dict[str, Any]] = []
    for md in tl.mahadashas:
        row = md.to_dict()
        if with_antar:
            row["antardashas"] = [ad.to_dict() for ad in tl.children(md)]
        rows.append(row)
    return jsonify({"ok": True, "birth": _birth_blob(birth, tl), "mahadashas": rows}), 200


# ───────────────────────── current chain ─────────────────────────
@api.post("/api/dasha/current")
def current_endpoint():
    try:
        body = _body()
        birth, tl = _timeline_for(body)
        at = parse_at(body, "at")
        depth = parse_level_field(body.get("depth"), ["depth"], PeriodLevel.DEHADASHA)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaInputError as e:
        return _input_error(e)

    chain = chain_at(tl, at, depth)
    nxt = next_mahadasha(tl, at)
    sandhis = active_sandhis(tl, at, policy=_settings().sandhi) if chain else []
    return jsonify({
        "ok": True,
        "at": at.isoformat(),
        "birth": _birth_blob(birth, tl),
        "active": bool(chain),
        "chain": [period_summary(p, at) for p in chain.periods],
        "description": chain.description(),
        "short_description": chain.short_description(),
        "next_mahadasha": nxt.to_dict() if nxt is not None else None,
        "within_sandhi": [s.to_dict() for s in sandhis],
    }), 200


# ───────────────────────── children by path ─────────────────────────
@api.post("/api/dasha/children")
def children_endpoint():
    try:
        body = _body()
        _, tl = _timeline_for(body)
        path = parse_path(body.get("path"), ["path"])
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaInputError as e:
        return _input_error(e)

    try:
        parent = tl.period_by_path(path)
    except ValueError as e:
        return _json_error("unknown_path", {"path": list(path), "msg": str(e)}, 404)
    kids = tl.children(parent)
    return jsonify({
        "ok": True,
        "parent": parent.to_dict(),
        "children": [k.to_dict() for k in kids],
    }), 200


# ───────────────────────── sandhi ─────────────────────────
@api.post("/api/dasha/sandhi")
def sandhi_endpoint():
    s = _settings()
    try:
        body = _body()
        _, tl = _timeline_for(body)
        now = parse_at(body, "now")
        level = parse_level_field(body.get("level"), ["level"], PeriodLevel.ANTARDASHA)
        limit = s.max_window_days[level]
        window = parse_window(body, s.lookahead_days, limit)
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except DashaInputError as e:
        return _input_error(e)

    found = upcoming_sandhis(tl, level, now, window, s.sandhi, s.max_window_days)
    rows = []
    for sd in found:
        row = sd.to_dict()
        row["within_sandhi"] = sd.is_within_sandhi(now)
        rows.append(row)
    return jsonify({
        "ok": True,
        "now": now.isoformat(),
        "level": level.name.lower(),
        "window_days": window.total_seconds() / 86400.0,
        "count": len(rows),
        "sandhis": rows,
    }), 200
