# vimshottari/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter

import yaml
from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from vimshottari.api.routes import api as _routes_bp
from vimshottari.utils.config import AttrDict, engine_settings, load_config
from vimshottari.utils.metrics import GAUGE_APP_UP, MET_REQUESTS, REQ_LATENCY
from vimshottari.version import VERSION

_SEEDED_ROUTES = (
    "/", "/health", "/healthz", "/metrics",
    "/api/health", "/api/dasha/config",
    "/api/dasha/timeline", "/api/dasha/current",
    "/api/dasha/children", "/api/dasha/sandhi",
)


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _register_errors(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            message=str(e),
            path=request.path,
        ), 500


# ───────────────────────── health ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="vimshottari-dasha", health="/health", version=VERSION), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200


def _metrics_auth_ok() -> bool:
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )


def _tracked(path: str) -> bool:
    return path.startswith("/api/") or path in ("/", "/health", "/healthz", "/metrics")


def _load_settings(app: Flask, cfg_path: str | None):
    try:
        cfg = load_config(cfg_path)
    except (OSError, yaml.YAMLError) as e:
        app.logger.warning("config not loaded (%s); using built-in engine defaults", e)
        cfg = AttrDict()
    return cfg, engine_settings(cfg)


# ───────────────────────── app factory ─────────────────────────
def create_app(config_path: str | None = None) -> Flask:
    app = Flask(__name__)
    app.config["JSON_SORT_KEYS"] = False
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    cfg, settings = _load_settings(app, config_path)
    app.config["DASHA_CONFIG"] = cfg
    app.config["DASHA_SETTINGS"] = settings

    for route in _SEEDED_ROUTES:
        MET_REQUESTS.labels(route=route).inc(0)
    GAUGE_APP_UP.set(1.0)

    @app.before_request
    def _before():
        p = request.path or ""
        if _tracked(p):
            MET_REQUESTS.labels(route=p).inc()
            request.environ["dasha.t0"] = perf_counter()

    @app.after_request
    def _after(resp):
        t0 = request.environ.get("dasha.t0")
        if t0 is not None:
            REQ_LATENCY.labels(route=request.path).observe(perf_counter() - t0)
        return resp

    _register_health(app)
    _register_errors(app)
    app.register_blueprint(_routes_bp)

    @app.get("/favicon.ico")
    def _noop_favicon():
        return ("", 204)

    # /metrics (Basic Auth)
    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)

    # CORS for browser UIs
    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info(
        "App initialized; version=%s year_days=%s eager_level=%s sandhi_mode=%s",
        VERSION, settings.year_days, settings.eager_level.name.lower(), settings.sandhi.mode,
    )
    return app


# ───────────────────────── app instance ─────────────────────────
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
